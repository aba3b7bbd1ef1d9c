"""
Per-pharmacy alert thresholds.
"""
import logging
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scanfarma.core.config import MAX_THRESHOLD_DAYS, MIN_THRESHOLD_DAYS, get_settings
from scanfarma.core.errors import PersistenceError, ValidationError
from scanfarma.models.notification_rule import NotificationRule
from scanfarma.models.pharmacy import Pharmacy

logger = logging.getLogger(__name__)


class RuleType(str, Enum):
    EXPIRING_SOON = "EXPIRING_SOON"
    HIGH_WASTE = "HIGH_WASTE"
    HIGH_RISK = "HIGH_RISK"


def default_thresholds() -> Dict[str, float]:
    settings = get_settings()
    return {
        RuleType.EXPIRING_SOON.value: float(settings.EXPIRING_THRESHOLD_DAYS),
        RuleType.HIGH_WASTE.value: float(settings.HIGH_WASTE_THRESHOLD),
        RuleType.HIGH_RISK.value: float(settings.HIGH_RISK_SCORE),
    }


def validate_rule_threshold(rule_type: RuleType, threshold: float) -> float:
    if rule_type == RuleType.EXPIRING_SOON:
        if threshold != int(threshold) or not MIN_THRESHOLD_DAYS <= threshold <= MAX_THRESHOLD_DAYS:
            raise ValidationError(
                f"EXPIRING_SOON threshold must be a whole number of days between "
                f"{MIN_THRESHOLD_DAYS} and {MAX_THRESHOLD_DAYS}",
                field="threshold",
            )
    elif not 0 <= threshold <= 100:
        raise ValidationError(f"{rule_type.value} threshold must be between 0 and 100", field="threshold")
    return float(threshold)


class NotificationRuleService:
    """Reads and edits the thresholds that drive alerts and risk flags."""

    def __init__(self, db: Session, pharmacy_id: UUID):
        self.db = db
        self.pharmacy_id = pharmacy_id

    def _rules(self) -> Dict[str, NotificationRule]:
        stmt = select(NotificationRule).where(NotificationRule.pharmacy_id == self.pharmacy_id)
        return {rule.rule_type: rule for rule in self.db.execute(stmt).scalars().all()}

    def ensure_default_rules(self) -> List[NotificationRule]:
        """Create any missing rule with its default threshold."""
        existing = self._rules()
        created = False
        for rule_type, threshold in default_thresholds().items():
            if rule_type not in existing:
                rule = NotificationRule(
                    pharmacy_id=self.pharmacy_id,
                    rule_type=rule_type,
                    threshold=threshold,
                    enabled=True,
                )
                self.db.add(rule)
                existing[rule_type] = rule
                created = True

        if created:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Could not create default rules: {e}", exc_info=True)
                raise PersistenceError() from e

        return [existing[rule_type.value] for rule_type in RuleType]

    def threshold(self, rule_type: RuleType) -> float:
        """
        Effective threshold for a rule: the stored one when enabled,
        otherwise the configured default.
        """
        rule = self._rules().get(rule_type.value)
        if rule is not None and rule.enabled:
            return rule.threshold
        return default_thresholds()[rule_type.value]

    def expiring_days(self) -> int:
        return int(self.threshold(RuleType.EXPIRING_SOON))

    def update_rule(
        self,
        rule_type: str,
        threshold: Optional[float] = None,
        enabled: Optional[bool] = None,
    ) -> NotificationRule:
        try:
            rule_type = RuleType(rule_type)
        except ValueError:
            raise ValidationError(f"Unknown rule type {rule_type!r}", field="rule_type")

        rules = {rule.rule_type: rule for rule in self.ensure_default_rules()}
        rule = rules[rule_type.value]
        if threshold is not None:
            rule.threshold = validate_rule_threshold(rule_type, threshold)
        if enabled is not None:
            rule.enabled = enabled

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not update rule {rule_type.value}: {e}", exc_info=True)
            raise PersistenceError() from e

        logger.info(
            f"Pharmacy {self.pharmacy_id} rule {rule_type.value}: "
            f"threshold={rule.threshold} enabled={rule.enabled}"
        )
        return rule

    def set_notifications_enabled(self, pharmacy: Pharmacy, enabled: bool) -> Pharmacy:
        pharmacy.notifications_enabled = enabled
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not toggle notifications: {e}", exc_info=True)
            raise PersistenceError() from e
        return pharmacy
