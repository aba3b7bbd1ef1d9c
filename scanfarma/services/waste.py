"""
Waste recording: stock that leaves a batch without being sold.
"""
import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import DateLike, as_calendar_date, today_for
from scanfarma.core.errors import (
    InsufficientStockError,
    PersistenceError,
    ScanFarmaError,
    ValidationError,
)
from scanfarma.models.waste_event import WasteEvent
from scanfarma.services.batch_store import BatchStore, positive_int

logger = logging.getLogger(__name__)


class WasteReason(str, Enum):
    EXPIRED = "expired"
    RETURNED = "returned"
    DISCOUNTED = "discounted"
    DAMAGED = "damaged"


MARKED_EXPIRED_NOTE = "Marked as expired manually"


def empty_reason_breakdown() -> Dict[str, int]:
    return {reason.value: 0 for reason in WasteReason}


class WasteRecorder:
    """Records waste events for one pharmacy with the same atomic decrement as sales."""

    def __init__(self, db: Session, pharmacy_id: UUID, pharmacy_timezone: Optional[str] = None):
        self.db = db
        self.pharmacy_id = pharmacy_id
        self.pharmacy_timezone = pharmacy_timezone
        self.store = BatchStore(db, pharmacy_id)

    def record_waste(
        self,
        batch_id: int,
        quantity: int,
        reason: str,
        event_date: Optional[DateLike] = None,
        notes: Optional[str] = None,
    ) -> WasteEvent:
        """
        Take wasted units off a batch and log the event.

        Args:
            batch_id: Batch the units come from
            quantity: Units lost (positive, at most the batch's remaining units)
            reason: expired, returned, discounted or damaged
            event_date: Day of the loss (defaults to today for the pharmacy)
            notes: Free text

        Returns:
            The created WasteEvent

        Raises:
            NotFoundError: Batch not in this pharmacy
            ValidationError: Bad quantity, reason or date
            InsufficientStockError: Batch holds fewer units than requested
            PersistenceError: Database failure (rolled back)
        """
        quantity = positive_int(quantity, "quantity")
        try:
            reason = WasteReason(reason).value
        except ValueError:
            raise ValidationError(
                f"Invalid reason {reason!r}, expected one of {', '.join(r.value for r in WasteReason)}",
                field="reason",
            )
        if event_date is None:
            event_date = today_for(self.pharmacy_timezone)
        else:
            event_date = as_calendar_date(event_date, field="event_date")

        batch = self.store.get_batch(batch_id)

        try:
            if not self.store.decrement(batch.id, quantity):
                available = self.store.current_remaining(batch.id)
                self.db.rollback()
                raise InsufficientStockError(
                    f"Insufficient stock. Available: {available}",
                    available=available,
                    requested=quantity,
                )

            event = WasteEvent(
                pharmacy_id=self.pharmacy_id,
                batch_id=batch.id,
                product_id=batch.product_id,
                quantity=quantity,
                reason=reason,
                event_date=event_date,
                notes=notes,
            )
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record waste on batch {batch_id}: {e}", exc_info=True)
            raise PersistenceError() from e

        logger.info(f"Recorded waste {event.id}: {quantity} units from batch {batch_id} ({reason})")
        return event

    def mark_batch_expired(self, batch_id: int) -> Optional[WasteEvent]:
        """
        Waste a batch's whole remainder as expired, dated at its expiration date.

        Returns:
            The WasteEvent, or None if the batch was already depleted
        """
        batch = self.store.get_batch(batch_id)
        remaining = batch.quantity_remaining
        if remaining == 0:
            return None
        return self.record_waste(
            batch.id,
            remaining,
            WasteReason.EXPIRED.value,
            batch.expiration_date,
            MARKED_EXPIRED_NOTE,
        )

    def bulk_mark_expired(self, batch_ids: Iterable[int]) -> Dict:
        """
        Mark several batches expired, continuing past failures.

        Returns:
            {"processed": n, "units": total_units, "errors": [{"batch_id", "error"}]}
        """
        processed = 0
        units = 0
        errors: List[Dict] = []

        for batch_id in batch_ids:
            try:
                event = self.mark_batch_expired(batch_id)
            except ScanFarmaError as e:
                errors.append({"batch_id": batch_id, "error": e.message})
                continue
            processed += 1
            if event is not None:
                units += event.quantity

        logger.info(f"Bulk expired {processed} batch(es), {units} units, {len(errors)} error(s)")
        return {"processed": processed, "units": units, "errors": errors}

    def waste_summary(self, product_id: int) -> Dict:
        """Total wasted units of a product, broken down by reason."""
        self.store.get_product(product_id)
        stmt = select(WasteEvent.quantity, WasteEvent.reason).where(
            WasteEvent.pharmacy_id == self.pharmacy_id,
            WasteEvent.product_id == product_id,
        )

        summary = {"total": 0, "by_reason": empty_reason_breakdown()}
        for quantity, reason in self.db.execute(stmt).all():
            summary["total"] += quantity
            if reason in summary["by_reason"]:
                summary["by_reason"][reason] += quantity
        return summary

    def waste_history(self, product_id: int, limit: int = 50) -> List[WasteEvent]:
        """Waste events of a product, most recent first."""
        self.store.get_product(product_id)
        stmt = (
            select(WasteEvent)
            .where(
                WasteEvent.pharmacy_id == self.pharmacy_id,
                WasteEvent.product_id == product_id,
            )
            .order_by(WasteEvent.event_date.desc(), WasteEvent.id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
