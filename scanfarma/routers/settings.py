"""
Pharmacy notification settings endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.auth import PharmacyResponse
from scanfarma.schemas.stock import (
    NotificationRuleResponse,
    NotificationRuleUpdate,
    NotificationToggle,
)
from scanfarma.services.notification_rules import NotificationRuleService

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/notification-rules", response_model=List[NotificationRuleResponse])
def get_notification_rules(
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Alert thresholds for the current pharmacy (defaults are created on first read)."""
    return NotificationRuleService(db, pharmacy.id).ensure_default_rules()


@router.put("/notification-rules/{rule_type}", response_model=NotificationRuleResponse)
def update_notification_rule(
    rule_type: str,
    changes: NotificationRuleUpdate,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """
    Change a threshold or switch a rule off.

    EXPIRING_SOON takes 7-90 days; HIGH_WASTE and HIGH_RISK take 0-100.
    """
    return NotificationRuleService(db, pharmacy.id).update_rule(
        rule_type.upper(), threshold=changes.threshold, enabled=changes.enabled
    )


@router.put("/notifications", response_model=PharmacyResponse)
def toggle_notifications(
    toggle: NotificationToggle,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return NotificationRuleService(db, pharmacy.id).set_notifications_enabled(pharmacy, toggle.enabled)
