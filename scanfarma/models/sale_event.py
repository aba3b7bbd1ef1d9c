"""
Sale event log.
"""
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import relationship

from scanfarma.db.base import Base


class SaleEvent(Base):
    """
    Append-only log of demand.

    Every sale is recorded before it is applied, so an unknown barcode still
    leaves an audit row (processed=False, product_id=NULL).
    """
    __tablename__ = "sale_events"
    __table_args__ = (
        Index('idx_sale_events_pharmacy_date', 'pharmacy_id', 'sale_date'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False)
    barcode = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False)
    sale_date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False, default="manual")  # manual, csv, api
    external_ref = Column(String(255))
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    product = relationship("Product")
