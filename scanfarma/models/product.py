"""
Product catalog model.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Uuid, UniqueConstraint, func
from sqlalchemy.orm import relationship

from scanfarma.db.base import Base


class Product(Base):
    """
    A product identified by its barcode within a pharmacy.

    Created the first time an unknown barcode is scanned while loading stock.
    Only the descriptive metadata (name, brand) changes afterwards.
    """
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint('pharmacy_id', 'barcode', name='uq_products_pharmacy_barcode'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False, index=True)
    barcode = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    brand = Column(String(255))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    pharmacy = relationship("Pharmacy", back_populates="products")
    batches = relationship("Batch", back_populates="product", cascade="all, delete-orphan")
