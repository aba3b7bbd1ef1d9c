"""
Waste router: record losses and retire expired batches.
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.stock import BulkExpireRequest, WasteCreate, WasteEventResponse
from scanfarma.services.waste import WasteRecorder

router = APIRouter(prefix="/waste", tags=["waste"])


@router.post("", response_model=WasteEventResponse, status_code=status.HTTP_201_CREATED)
def record_waste(
    waste: WasteCreate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Record units lost from a batch (expired, returned, discounted, damaged).

    Answers 409 when the batch holds fewer units than requested.
    """
    recorder = WasteRecorder(db, pharmacy.id, pharmacy.timezone)
    return recorder.record_waste(
        waste.batch_id,
        waste.quantity,
        waste.reason,
        waste.event_date,
        waste.notes,
    )


@router.post("/batches/{batch_id}/expire", response_model=Optional[WasteEventResponse])
def mark_batch_expired(
    batch_id: int,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Write off a batch's remaining units as expired. Returns null for a depleted batch."""
    return WasteRecorder(db, pharmacy.id, pharmacy.timezone).mark_batch_expired(batch_id)


@router.post("/bulk-expire")
def bulk_mark_expired(
    request: BulkExpireRequest,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Write off several batches; failures are reported per batch."""
    return WasteRecorder(db, pharmacy.id, pharmacy.timezone).bulk_mark_expired(request.batch_ids)
