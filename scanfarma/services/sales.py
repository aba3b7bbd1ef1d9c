"""
FIFO sale processing.

A sale for a barcode is deducted from the product's batches nearest to
expiration first. Every sale is logged as a SaleEvent before any stock moves,
and every per-batch deduction goes through the batch store's conditional
decrement so concurrent sales can never push a batch below zero.
"""
import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import DateLike, as_calendar_date, today_for
from scanfarma.core.errors import PersistenceError, ValidationError
from scanfarma.models.batch import Batch
from scanfarma.models.sale_event import SaleEvent
from scanfarma.services.batch_store import BatchStore, positive_int

logger = logging.getLogger(__name__)

SALE_SOURCES = ("manual", "csv", "api")
PRODUCT_NOT_FOUND = "product_not_found"


class Deduction(BaseModel):
    """Units taken from one batch by a sale."""
    batch_id: int
    lot_number: str
    expiration_date: date
    quantity: int
    remaining_after: int


class SaleResult(BaseModel):
    """Outcome of processing one sale."""
    success: bool
    barcode: str
    quantity_requested: int
    quantity_deducted: int = 0
    shortfall: int = 0
    product_id: Optional[int] = None
    sale_event_id: Optional[int] = None
    deductions: List[Deduction] = []
    warning: Optional[str] = None
    error: Optional[str] = None


class FifoSaleProcessor:
    """
    Applies sales to stock for one pharmacy.

    Usage:
        processor = FifoSaleProcessor(db, pharmacy.id, pharmacy.timezone)
        result = processor.process_sale("7790001", 8, date(2026, 1, 20))
    """

    def __init__(self, db: Session, pharmacy_id: UUID, pharmacy_timezone: Optional[str] = None):
        self.db = db
        self.pharmacy_id = pharmacy_id
        self.pharmacy_timezone = pharmacy_timezone
        self.store = BatchStore(db, pharmacy_id)

    def today(self) -> date:
        return today_for(self.pharmacy_timezone)

    def process_sale(
        self,
        barcode: str,
        quantity: int,
        sale_date: Optional[DateLike] = None,
        source: str = "manual",
        external_ref: Optional[str] = None,
    ) -> SaleResult:
        """
        Record a sale and deduct it from stock, earliest expiration first.

        Args:
            barcode: Product barcode
            quantity: Units sold (positive integer)
            sale_date: Day of the sale (defaults to today for the pharmacy)
            source: manual, csv or api
            external_ref: Identifier from the external stock system

        Returns:
            SaleResult. An unknown barcode gives success=False with
            error="product_not_found". Insufficient stock still succeeds:
            everything available is deducted and ``warning`` names the shortfall.

        Raises:
            ValidationError: Invalid quantity, source or date
            PersistenceError: Database failure (rolled back)
        """
        barcode = (barcode or "").strip()
        if not barcode:
            raise ValidationError("barcode is required", field="barcode")
        quantity = positive_int(quantity, "quantity")
        if source not in SALE_SOURCES:
            raise ValidationError(
                f"Invalid source {source!r}, expected one of {', '.join(SALE_SOURCES)}",
                field="source",
            )
        sale_date = self.today() if sale_date is None else as_calendar_date(sale_date, field="sale_date")

        try:
            event = SaleEvent(
                pharmacy_id=self.pharmacy_id,
                barcode=barcode,
                quantity=quantity,
                sale_date=sale_date,
                source=source,
                external_ref=external_ref,
                processed=False,
            )
            self.db.add(event)
            self.db.flush()

            product = self.store.find_product_by_barcode(barcode)
            if product is None:
                self.db.commit()
                logger.warning(
                    f"Sale of {quantity} for unknown barcode {barcode} logged unprocessed "
                    f"(pharmacy {self.pharmacy_id})"
                )
                return SaleResult(
                    success=False,
                    barcode=barcode,
                    quantity_requested=quantity,
                    sale_event_id=event.id,
                    error=PRODUCT_NOT_FOUND,
                )

            deductions = self._deduct_fifo(product.id, quantity)
            deducted = sum(d.quantity for d in deductions)
            shortfall = quantity - deducted

            event.product_id = product.id
            event.processed = True
            event.processed_at = func.now()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to process sale for {barcode}: {e}", exc_info=True)
            raise PersistenceError() from e

        warning = None
        if shortfall > 0:
            warning = (
                f"Insufficient stock: {shortfall} of {quantity} units could not be deducted "
                f"(available: {deducted})"
            )
            logger.warning(f"Sale {event.id} for {barcode}: {warning}")

        logger.info(
            f"Processed sale {event.id}: {barcode} x{quantity} ({source}), "
            f"deducted {deducted} from {len(deductions)} batch(es)"
        )
        return SaleResult(
            success=True,
            barcode=barcode,
            quantity_requested=quantity,
            quantity_deducted=deducted,
            shortfall=shortfall,
            product_id=product.id,
            sale_event_id=event.id,
            deductions=deductions,
            warning=warning,
        )

    def _deduct_fifo(self, product_id: int, quantity: int) -> List[Deduction]:
        """
        Greedily consume active batches in (expiration_date, id) order.

        When a conditional decrement loses a race against another writer the
        batch is re-read and the deduction retried against what is left.
        """
        needed = quantity
        deductions: List[Deduction] = []

        for batch in self.store.fifo_batches(product_id):
            if needed == 0:
                break

            batch_id = batch.id
            available = batch.quantity_remaining
            while needed > 0 and available > 0:
                take = min(needed, available)
                if self.store.decrement(batch_id, take):
                    needed -= take
                    deductions.append(Deduction(
                        batch_id=batch_id,
                        lot_number=batch.lot_number,
                        expiration_date=batch.expiration_date,
                        quantity=take,
                        remaining_after=self.store.current_remaining(batch_id),
                    ))
                    break
                logger.warning(f"Lost decrement race on batch {batch_id}, re-reading")
                available = self.store.current_remaining(batch_id)

        return deductions

    def manual_deduction(self, barcode: str, quantity: int) -> SaleResult:
        """Take units off stock without an external stock system (today, source=manual)."""
        return self.process_sale(barcode, quantity, self.today(), "manual")

    def sale_history(self, barcode: str, limit: int = 50) -> List[SaleEvent]:
        """Processed sales of a product, most recent first."""
        product = self.store.get_product_by_barcode(barcode)
        stmt = (
            select(SaleEvent)
            .where(
                SaleEvent.pharmacy_id == self.pharmacy_id,
                SaleEvent.product_id == product.id,
            )
            .order_by(SaleEvent.sale_date.desc(), SaleEvent.id.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def product_batches(self, barcode: str) -> List[Batch]:
        """All batches of a product in the order FIFO consumes them."""
        product = self.store.get_product_by_barcode(barcode)
        return self.store.list_batches(product_id=product.id)
