import uuid
from sqlalchemy import Boolean, Column, String, DateTime, Uuid, func, ForeignKey
from sqlalchemy.orm import relationship
from scanfarma.db.base import Base

class Pharmacy(Base):
    """Tenant scope: every product, batch and event belongs to exactly one pharmacy."""
    __tablename__ = "pharmacies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    timezone = Column(String(50), nullable=False, server_default='UTC', default='UTC')
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    owner = relationship("User", back_populates="pharmacies")
    products = relationship("Product", back_populates="pharmacy", cascade="all, delete-orphan")
    notification_rules = relationship("NotificationRule", back_populates="pharmacy", cascade="all, delete-orphan")
