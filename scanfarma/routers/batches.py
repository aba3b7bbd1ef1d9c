"""
Batches router: load received stock and manage batch records.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import today_for
from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.batch import Batch
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.stock import (
    BatchCreate,
    BatchResponse,
    BatchUpdate,
    LoadStockResponse,
    ProductResponse,
)
from scanfarma.services.batch_store import BatchStore
from scanfarma.services.expiration import classify
from scanfarma.services.notification_rules import NotificationRuleService

router = APIRouter(prefix="/batches", tags=["batches"])


def _with_status(batch: Batch, pharmacy: Pharmacy, threshold_days: int) -> BatchResponse:
    response = BatchResponse.model_validate(batch)
    response.status = classify(batch, today_for(pharmacy.timezone), threshold_days).value
    return response


@router.post("", response_model=LoadStockResponse, status_code=status.HTTP_201_CREATED)
def load_stock(
    batch: BatchCreate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Record a received batch for a scanned barcode.

    The product is created on the fly when the barcode is new and a name is
    supplied; without a name an unknown barcode returns 404.
    """
    store = BatchStore(db, pharmacy.id)
    product, created_batch, product_created = store.load_stock(
        barcode=batch.barcode,
        lot_number=batch.lot_number,
        expiration_date=batch.expiration_date,
        quantity=batch.quantity,
        location=batch.location,
        name=batch.name,
        brand=batch.brand,
    )
    store.commit()

    threshold_days = NotificationRuleService(db, pharmacy.id).expiring_days()
    return LoadStockResponse(
        product=ProductResponse.model_validate(product),
        batch=_with_status(created_batch, pharmacy, threshold_days),
        product_created=product_created,
    )


@router.get("", response_model=List[BatchResponse])
def list_batches(
    product_id: Optional[int] = Query(None),
    active_only: bool = Query(False, description="Hide depleted batches"),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Batches ordered by expiration date, each with its current alert status."""
    threshold_days = NotificationRuleService(db, pharmacy.id).expiring_days()
    batches = BatchStore(db, pharmacy.id).list_batches(product_id=product_id, active_only=active_only)
    return [_with_status(batch, pharmacy, threshold_days) for batch in batches]


@router.get("/{batch_id}", response_model=BatchResponse)
def get_batch(
    batch_id: int,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    threshold_days = NotificationRuleService(db, pharmacy.id).expiring_days()
    return _with_status(BatchStore(db, pharmacy.id).get_batch(batch_id), pharmacy, threshold_days)


@router.patch("/{batch_id}", response_model=BatchResponse)
def update_batch(
    batch_id: int,
    changes: BatchUpdate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Correct lot number, expiration date or location. Quantities are not editable."""
    store = BatchStore(db, pharmacy.id)
    batch = store.update_batch(
        batch_id,
        lot_number=changes.lot_number,
        expiration_date=changes.expiration_date,
        location=changes.location,
    )
    store.commit()
    threshold_days = NotificationRuleService(db, pharmacy.id).expiring_days()
    return _with_status(batch, pharmacy, threshold_days)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_batch(
    batch_id: int,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    store = BatchStore(db, pharmacy.id)
    store.delete_batch(batch_id)
    store.commit()
