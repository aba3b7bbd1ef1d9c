"""
Waste event log.
"""
from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import relationship

from scanfarma.db.base import Base


class WasteEvent(Base):
    """A recorded loss of stock (expired, returned, discounted, damaged), distinct from a sale."""
    __tablename__ = "waste_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False)
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="SET NULL"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    reason = Column(String(20), nullable=False)  # expired, returned, discounted, damaged
    event_date = Column(Date, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    batch = relationship("Batch", back_populates="waste_events")
    product = relationship("Product")
