"""
Batch store: tenant-scoped persistence for products and stock batches.

Every query is filtered by pharmacy_id. The only way stock leaves a batch is
``decrement``, a single conditional UPDATE that cannot over-deduct even when
several devices record sales against the same batch at the same time.
"""
import logging
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import DateLike, as_calendar_date
from scanfarma.core.errors import NotFoundError, PersistenceError, ValidationError
from scanfarma.models.batch import Batch
from scanfarma.models.product import Product

logger = logging.getLogger(__name__)


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def positive_int(value, field: str = "quantity") -> int:
    """Accept ints and integer-valued strings/floats; reject zero, negatives and fractions."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number", field=field)
        value = int(value)
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return number


class BatchStore:
    """
    Products and batches of a single pharmacy.

    Writes are committed by the caller through ``commit`` so that a sale or a
    waste event and its batch decrements land in one unit of work.
    """

    def __init__(self, db: Session, pharmacy_id: UUID):
        self.db = db
        self.pharmacy_id = pharmacy_id

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def commit(self) -> None:
        """Commit the session, turning backend failures into PersistenceError."""
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Commit failed for pharmacy {self.pharmacy_id}: {e}", exc_info=True)
            raise PersistenceError() from e

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def find_product_by_barcode(self, barcode: str) -> Optional[Product]:
        stmt = select(Product).where(
            Product.pharmacy_id == self.pharmacy_id,
            Product.barcode == barcode.strip(),
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_product_by_barcode(self, barcode: str) -> Product:
        product = self.find_product_by_barcode(barcode)
        if product is None:
            raise NotFoundError(f"Product with barcode {barcode!r} not found", field="barcode")
        return product

    def get_product(self, product_id: int) -> Product:
        stmt = select(Product).where(
            Product.pharmacy_id == self.pharmacy_id,
            Product.id == product_id,
        )
        product = self.db.execute(stmt).scalar_one_or_none()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", field="product_id")
        return product

    def list_products(self, search: Optional[str] = None, limit: Optional[int] = None) -> List[Product]:
        stmt = select(Product).where(Product.pharmacy_id == self.pharmacy_id)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))
        stmt = stmt.order_by(Product.name, Product.id)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def create_product(self, barcode: str, name: str, brand: Optional[str] = None) -> Product:
        barcode = _require_text(barcode, "barcode")
        name = _require_text(name, "name")
        if self.find_product_by_barcode(barcode) is not None:
            raise ValidationError(f"A product with barcode {barcode!r} already exists", field="barcode")

        product = Product(
            pharmacy_id=self.pharmacy_id,
            barcode=barcode,
            name=name,
            brand=(brand or "").strip() or None,
        )
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.id} ({barcode}) for pharmacy {self.pharmacy_id}")
        return product

    def update_product(self, product_id: int, name: Optional[str] = None, brand: Optional[str] = None) -> Product:
        """Edit descriptive metadata. The barcode is immutable."""
        product = self.get_product(product_id)
        if name is not None:
            product.name = _require_text(name, "name")
        if brand is not None:
            product.brand = brand.strip() or None
        return product

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: int) -> Batch:
        stmt = select(Batch).where(
            Batch.pharmacy_id == self.pharmacy_id,
            Batch.id == batch_id,
        )
        batch = self.db.execute(stmt).scalar_one_or_none()
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", field="batch_id")
        return batch

    def create_batch(
        self,
        product: Product,
        lot_number: str,
        expiration_date: DateLike,
        quantity: int,
        location: Optional[str] = None,
    ) -> Batch:
        quantity = positive_int(quantity, "quantity")
        batch = Batch(
            pharmacy_id=self.pharmacy_id,
            product_id=product.id,
            lot_number=_require_text(lot_number, "lot_number"),
            expiration_date=as_calendar_date(expiration_date, field="expiration_date"),
            quantity=quantity,
            quantity_remaining=quantity,
            location=(location or "").strip() or None,
        )
        self.db.add(batch)
        self.db.flush()
        return batch

    def load_stock(
        self,
        barcode: str,
        lot_number: str,
        expiration_date: DateLike,
        quantity: int,
        location: Optional[str] = None,
        name: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> Tuple[Product, Batch, bool]:
        """
        Record a received batch, creating the product on first scan.

        Returns:
            Tuple of (product, batch, product_created)
        """
        product = self.find_product_by_barcode(_require_text(barcode, "barcode"))
        created = False
        if product is None:
            if not (name or "").strip():
                raise NotFoundError(
                    f"Product with barcode {barcode!r} not found; provide a name to create it",
                    field="barcode",
                )
            product = self.create_product(barcode, name, brand)
            created = True

        batch = self.create_batch(product, lot_number, expiration_date, quantity, location)
        logger.info(
            f"Loaded batch {batch.id} lot={batch.lot_number} qty={batch.quantity} "
            f"exp={batch.expiration_date.isoformat()} for product {product.id}"
        )
        return product, batch, created

    def list_batches(
        self,
        product_id: Optional[int] = None,
        active_only: bool = False,
    ) -> List[Batch]:
        """Batches ordered by expiration date, then insertion order."""
        stmt = select(Batch).where(Batch.pharmacy_id == self.pharmacy_id)
        if product_id is not None:
            stmt = stmt.where(Batch.product_id == product_id)
        if active_only:
            stmt = stmt.where(Batch.quantity_remaining > 0)
        stmt = stmt.order_by(Batch.expiration_date.asc(), Batch.id.asc())
        # decrements bypass the identity map, so reload attribute values
        stmt = stmt.execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def fifo_batches(self, product_id: int) -> List[Batch]:
        """Active batches of a product in first-expiry-first-out order."""
        return self.list_batches(product_id=product_id, active_only=True)

    def update_batch(
        self,
        batch_id: int,
        lot_number: Optional[str] = None,
        expiration_date: Optional[DateLike] = None,
        location: Optional[str] = None,
    ) -> Batch:
        """Edit batch metadata. Quantities only change through decrements."""
        batch = self.get_batch(batch_id)
        if lot_number is not None:
            batch.lot_number = _require_text(lot_number, "lot_number")
        if expiration_date is not None:
            batch.expiration_date = as_calendar_date(expiration_date, field="expiration_date")
        if location is not None:
            batch.location = location.strip() or None
        return batch

    def delete_batch(self, batch_id: int) -> None:
        batch = self.get_batch(batch_id)
        self.db.delete(batch)
        logger.info(f"Deleted batch {batch_id} for pharmacy {self.pharmacy_id}")

    # ------------------------------------------------------------------
    # Atomic stock mutation
    # ------------------------------------------------------------------

    def decrement(self, batch_id: int, delta: int) -> bool:
        """
        Atomically take ``delta`` units from a batch.

        Executes a single conditional UPDATE:
            quantity_remaining = quantity_remaining - delta
            WHERE id = :batch_id AND quantity_remaining >= delta

        Returns:
            True if the row was updated, False if the batch no longer holds
            ``delta`` units (another writer got there first) or does not exist.
        """
        delta = positive_int(delta, "quantity")
        stmt = (
            update(Batch)
            .where(
                Batch.id == batch_id,
                Batch.pharmacy_id == self.pharmacy_id,
                Batch.quantity_remaining >= delta,
            )
            .values(
                quantity_remaining=Batch.quantity_remaining - delta,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def current_remaining(self, batch_id: int) -> int:
        """Fresh read of a batch's remaining units, bypassing the identity map."""
        stmt = select(Batch.quantity_remaining).where(
            Batch.id == batch_id,
            Batch.pharmacy_id == self.pharmacy_id,
        )
        value = self.db.execute(stmt).scalar_one_or_none()
        return int(value or 0)

    def available_stock(self, product_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Batch.quantity_remaining), 0)).where(
            Batch.pharmacy_id == self.pharmacy_id,
            Batch.product_id == product_id,
        )
        return int(self.db.execute(stmt).scalar_one())

    def batches_expiring_between(self, start: date, end: date) -> List[Batch]:
        stmt = (
            select(Batch)
            .where(
                Batch.pharmacy_id == self.pharmacy_id,
                Batch.quantity_remaining > 0,
                Batch.expiration_date > start,
                Batch.expiration_date <= end,
            )
            .order_by(Batch.expiration_date.asc(), Batch.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())
