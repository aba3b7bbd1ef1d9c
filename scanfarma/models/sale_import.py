import uuid
from sqlalchemy import Column, Integer, String, DateTime, func, ForeignKey, JSON, Uuid
from scanfarma.db.base import Base

class SaleImport(Base):
    __tablename__ = "sale_imports"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False, default="PROCESSING")
    file_hash = Column(String(64), nullable=True, index=True)
    rows_processed = Column(Integer, nullable=False, default=0)
    errors = Column(JSON)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())
