"""
Product, batch, sale and waste schemas.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    brand: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    brand: Optional[str] = None


class ProductResponse(BaseModel):
    id: int
    barcode: str
    name: str
    brand: Optional[str] = None

    class Config:
        from_attributes = True


class BatchCreate(BaseModel):
    """Stock received for a barcode; name is needed only the first time it is scanned."""
    barcode: str = Field(min_length=1, max_length=64)
    lot_number: str = Field(min_length=1, max_length=100)
    expiration_date: date
    quantity: int = Field(gt=0)
    location: Optional[str] = None
    name: Optional[str] = None
    brand: Optional[str] = None


class BatchUpdate(BaseModel):
    lot_number: Optional[str] = None
    expiration_date: Optional[date] = None
    location: Optional[str] = None


class BatchResponse(BaseModel):
    id: int
    product_id: int
    lot_number: str
    expiration_date: date
    quantity: int
    quantity_remaining: int
    location: Optional[str] = None
    status: Optional[str] = None

    class Config:
        from_attributes = True


class LoadStockResponse(BaseModel):
    product: ProductResponse
    batch: BatchResponse
    product_created: bool


class SaleCreate(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)
    sale_date: Optional[date] = None
    source: str = "api"
    external_ref: Optional[str] = None


class ManualDeduction(BaseModel):
    barcode: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)


class SaleEventResponse(BaseModel):
    id: int
    barcode: str
    quantity: int
    sale_date: date
    source: str
    external_ref: Optional[str] = None
    processed: bool
    processed_at: Optional[datetime] = None
    product_id: Optional[int] = None

    class Config:
        from_attributes = True


class ImportResponse(BaseModel):
    import_id: Optional[str] = None
    success: bool
    processed: int
    total_rows: int
    errors: List[Dict]


class WasteCreate(BaseModel):
    batch_id: int
    quantity: int = Field(gt=0)
    reason: str
    event_date: Optional[date] = None
    notes: Optional[str] = None


class BulkExpireRequest(BaseModel):
    batch_ids: List[int] = Field(min_length=1)


class WasteEventResponse(BaseModel):
    id: int
    batch_id: Optional[int] = None
    product_id: int
    quantity: int
    reason: str
    event_date: date
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ExpiryTextRequest(BaseModel):
    text: str


class ExpiryTextResponse(BaseModel):
    text: str
    expiration_date: Optional[date] = None
    valid: bool


class NotificationRuleUpdate(BaseModel):
    threshold: Optional[float] = None
    enabled: Optional[bool] = None


class NotificationRuleResponse(BaseModel):
    rule_type: str
    threshold: float
    enabled: bool

    class Config:
        from_attributes = True


class NotificationToggle(BaseModel):
    enabled: bool
