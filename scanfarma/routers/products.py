"""
Products router: catalog, per-product metrics, sale and waste history.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.stock import (
    BatchResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    SaleEventResponse,
    WasteEventResponse,
)
from scanfarma.services.batch_store import BatchStore
from scanfarma.services.metrics import MetricsAggregator
from scanfarma.services.sales import FifoSaleProcessor
from scanfarma.services.suggestions import generate_suggestions
from scanfarma.services.waste import WasteRecorder

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductResponse])
def list_products(
    search: Optional[str] = Query(None, description="Match on name or barcode"),
    limit: int = Query(100, ge=1, le=500),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return BatchStore(db, pharmacy.id).list_products(search=search, limit=limit)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product: ProductCreate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    store = BatchStore(db, pharmacy.id)
    created = store.create_product(product.barcode, product.name, product.brand)
    store.commit()
    return created


@router.get("/by-barcode/{barcode}", response_model=ProductResponse)
def get_product_by_barcode(
    barcode: str,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Look up a scanned barcode. A 404 means the product must be created first."""
    return BatchStore(db, pharmacy.id).get_product_by_barcode(barcode)


@router.get("/by-barcode/{barcode}/batches", response_model=List[BatchResponse])
def get_product_batches(
    barcode: str,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Batches of a product in the order sales consume them."""
    return FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone).product_batches(barcode)


@router.get("/by-barcode/{barcode}/sales", response_model=List[SaleEventResponse])
def get_sale_history(
    barcode: str,
    limit: int = Query(50, ge=1, le=500),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone).sale_history(barcode, limit=limit)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: int,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return BatchStore(db, pharmacy.id).get_product(product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: int,
    changes: ProductUpdate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Edit name or brand. The barcode cannot change."""
    store = BatchStore(db, pharmacy.id)
    product = store.update_product(product_id, name=changes.name, brand=changes.brand)
    store.commit()
    return product


@router.get("/{product_id}/metrics")
def get_product_metrics(
    product_id: int,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Stock, waste and expiration metrics for one product, with suggestions."""
    aggregator = MetricsAggregator(db, pharmacy.id, pharmacy.timezone)
    result = aggregator.product_metrics(product_id)
    result["suggestions"] = generate_suggestions(
        result["metrics"], aggregator.settings.PRODUCT_EXPIRING_WINDOW_DAYS
    )
    return result


@router.get("/{product_id}/waste")
def get_product_waste(
    product_id: int,
    limit: int = Query(50, ge=1, le=500),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Waste summary by reason plus the most recent waste events."""
    recorder = WasteRecorder(db, pharmacy.id, pharmacy.timezone)
    return {
        "summary": recorder.waste_summary(product_id),
        "history": [
            WasteEventResponse.model_validate(event)
            for event in recorder.waste_history(product_id, limit=limit)
        ],
    }
