"""
Stock batch model.
"""
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from scanfarma.db.base import Base


class Batch(Base):
    """
    A received lot of a product with its own expiration date.

    quantity is what was loaded; quantity_remaining is decremented by sales and
    waste events and never re-incremented. Depleted batches (remaining = 0)
    stay in the table for history and metrics.
    """
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_batches_quantity_positive'),
        CheckConstraint(
            'quantity_remaining >= 0 AND quantity_remaining <= quantity',
            name='ck_batches_remaining_bounds',
        ),
        Index('idx_batches_fifo', 'pharmacy_id', 'product_id', 'expiration_date', 'id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    lot_number = Column(String(100), nullable=False)
    expiration_date = Column(Date, nullable=False)
    quantity = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    location = Column(String(100))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="batches")
    waste_events = relationship("WasteEvent", back_populates="batch")

    @property
    def is_active(self) -> bool:
        return (self.quantity_remaining or 0) > 0
