"""
Per-pharmacy alert thresholds.
"""
from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from scanfarma.db.base import Base


class NotificationRule(Base):
    """
    Threshold for one alert type.

    - EXPIRING_SOON: days ahead that count as "expiring" (7-90)
    - HIGH_WASTE: waste percentage that flags a product
    - HIGH_RISK: risk score that flags a product
    """
    __tablename__ = "notification_rules"
    __table_args__ = (
        UniqueConstraint('pharmacy_id', 'rule_type', name='uq_notification_rules_pharmacy_type'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pharmacy_id = Column(Uuid(as_uuid=True), ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False)
    rule_type = Column(String(30), nullable=False)
    threshold = Column(Float, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)

    pharmacy = relationship("Pharmacy", back_populates="notification_rules")
