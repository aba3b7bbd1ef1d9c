"""
Metrics aggregator: waste ratios, expiration exposure and risk scores.

Everything is recomputed from batches and waste events on every call; nothing
is cached. Three day windows are in play:

- product metrics count units expiring in the next 15 days
- the fleet risk score uses a 20-day window
- alerts, top-risk lists and the notification digest use the pharmacy's
  EXPIRING_SOON threshold (30 days by default)

Example:
    batch of 10 loaded, 3 wasted, 7 remaining expiring in 12 days
    waste_ratio = 30.0, risk_score = round(30.0*0.4 + 0 + (7/7)*30) = 42
"""
import logging
from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from scanfarma.core.calendar_dates import days_between, today_for
from scanfarma.core.config import get_settings
from scanfarma.models.batch import Batch
from scanfarma.models.product import Product
from scanfarma.models.sale_event import SaleEvent
from scanfarma.models.waste_event import WasteEvent
from scanfarma.services.batch_store import BatchStore
from scanfarma.services.expiration import (
    ExpirationStatus,
    classify_batches,
    days_to_expiry,
    is_expired,
    is_expiring,
)
from scanfarma.services.notification_rules import NotificationRuleService, RuleType
from scanfarma.services.waste import empty_reason_breakdown

logger = logging.getLogger(__name__)

RISK_WINDOW_DAYS = 20
EXPIRING_SOON_UNITS = 5
EXPIRING_SOON_SHARE = 0.3


def round_half_up(value: float, digits: int = 1) -> float:
    """
    Round like a cashier does: halves go up.

    >>> round_half_up(12.25)
    12.3
    """
    exponent = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def percentage(part: float, whole: float) -> float:
    """part/whole as a percentage with one decimal, 0 when whole is 0."""
    if not whole:
        return 0.0
    return round_half_up(part / whole * 100, 1)


def risk_score(waste_ratio: float, units_expired: int, units_expiring: int, current_stock: int) -> int:
    """
    Composite 0-100 score.

    0.4 * waste_ratio + 30 * expired share + 30 * expiring share of current
    stock; both share terms are 0 when there is no stock left.
    """
    score = waste_ratio * 0.4
    if current_stock > 0:
        score += units_expired / current_stock * 30
        score += units_expiring / current_stock * 30
    return max(0, min(100, int(round_half_up(score, 0))))


def product_summary(product: Product) -> Dict:
    return {
        "id": product.id,
        "name": product.name,
        "barcode": product.barcode,
        "brand": product.brand,
    }


def expiration_buckets(batches: Iterable[Batch], reference_date: date, window_days: int) -> Dict:
    """Units and batch counts already expired, and expiring within the window."""
    buckets = {"units_expired": 0, "expired_batches": 0, "units_expiring": 0, "expiring_batches": 0}
    for batch in batches:
        if batch.quantity_remaining <= 0:
            continue
        if is_expired(batch.expiration_date, reference_date):
            buckets["units_expired"] += batch.quantity_remaining
            buckets["expired_batches"] += 1
        elif is_expiring(batch.expiration_date, reference_date, window_days):
            buckets["units_expiring"] += batch.quantity_remaining
            buckets["expiring_batches"] += 1
    return buckets


class MetricsAggregator:
    """
    Read-only analytics over one pharmacy's stock.

    Usage:
        aggregator = MetricsAggregator(db, pharmacy.id, pharmacy.timezone)
        stats = aggregator.dashboard_stats()
    """

    def __init__(self, db: Session, pharmacy_id: UUID, pharmacy_timezone: Optional[str] = None):
        self.db = db
        self.pharmacy_id = pharmacy_id
        self.pharmacy_timezone = pharmacy_timezone
        self.store = BatchStore(db, pharmacy_id)
        self.rules = NotificationRuleService(db, pharmacy_id)
        self.settings = get_settings()

    def _reference(self, reference_date: Optional[date]) -> date:
        return reference_date or today_for(self.pharmacy_timezone)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _products(self, limit: Optional[int] = None) -> List[Product]:
        return self.store.list_products(limit=limit)

    def _batches_by_product(self) -> Dict[int, List[Batch]]:
        grouped: Dict[int, List[Batch]] = defaultdict(list)
        for batch in self.store.list_batches():
            grouped[batch.product_id].append(batch)
        return grouped

    def _waste_by_product(self) -> Dict[int, Dict]:
        stmt = (
            select(WasteEvent.product_id, WasteEvent.reason, func.sum(WasteEvent.quantity))
            .where(WasteEvent.pharmacy_id == self.pharmacy_id)
            .group_by(WasteEvent.product_id, WasteEvent.reason)
        )
        waste: Dict[int, Dict] = {}
        for product_id, reason, quantity in self.db.execute(stmt).all():
            entry = waste.setdefault(product_id, {"total": 0, "by_reason": empty_reason_breakdown()})
            entry["total"] += int(quantity or 0)
            if reason in entry["by_reason"]:
                entry["by_reason"][reason] += int(quantity or 0)
        return waste

    # ------------------------------------------------------------------
    # Per-product metrics
    # ------------------------------------------------------------------

    def _compute_metrics(self, batches: List[Batch], waste: Optional[Dict], reference_date: date) -> Dict:
        waste = waste or {"total": 0, "by_reason": empty_reason_breakdown()}
        total_purchased = sum(b.quantity for b in batches)
        total_remaining = sum(b.quantity_remaining for b in batches)
        buckets = expiration_buckets(batches, reference_date, self.settings.PRODUCT_EXPIRING_WINDOW_DAYS)

        return {
            "totalPurchased": total_purchased,
            "totalSold": total_purchased - total_remaining,
            "totalRemaining": total_remaining,
            "totalWasted": waste["total"],
            "wastedByReason": dict(waste["by_reason"]),
            "soldPercentage": percentage(total_purchased - total_remaining, total_purchased),
            "wastePercentage": percentage(waste["total"], total_purchased),
            "unitsExpiring": buckets["units_expiring"],
            "unitsExpired": buckets["units_expired"],
            "expiringBatchCount": buckets["expiring_batches"],
            "expiredBatchCount": buckets["expired_batches"],
        }

    def product_metrics(self, product_id: int, reference_date: Optional[date] = None) -> Dict:
        """
        Full metrics of one product.

        totalSold is everything that left the batches (sales and waste alike),
        so it is totalPurchased - totalRemaining.

        Raises:
            NotFoundError: Product not in this pharmacy
        """
        product = self.store.get_product(product_id)
        reference_date = self._reference(reference_date)
        batches = self.store.list_batches(product_id=product.id)
        waste = self._waste_by_product().get(product.id)
        return {
            "product": product_summary(product),
            "metrics": self._compute_metrics(batches, waste, reference_date),
        }

    def all_product_metrics(self, limit: Optional[int] = None, reference_date: Optional[date] = None) -> List[Dict]:
        reference_date = self._reference(reference_date)
        batches = self._batches_by_product()
        waste = self._waste_by_product()
        return [
            {
                "product": product_summary(product),
                "metrics": self._compute_metrics(batches.get(product.id, []), waste.get(product.id), reference_date),
            }
            for product in self._products(limit)
        ]

    # ------------------------------------------------------------------
    # Fleet metrics
    # ------------------------------------------------------------------

    def fleet_metrics(self, limit: Optional[int] = None, reference_date: Optional[date] = None) -> List[Dict]:
        """
        Risk view of every product, highest risk_score first.

        Ties keep catalog order (name, id).
        """
        reference_date = self._reference(reference_date)
        batches = self._batches_by_product()
        waste = self._waste_by_product()

        rows = []
        for product in self._products(limit):
            product_batches = batches.get(product.id, [])
            loaded = sum(b.quantity for b in product_batches)
            wasted = waste.get(product.id, {}).get("total", 0)
            stock = sum(b.quantity_remaining for b in product_batches)
            buckets = expiration_buckets(product_batches, reference_date, RISK_WINDOW_DAYS)
            waste_ratio = percentage(wasted, loaded)

            rows.append({
                "product_id": product.id,
                "name": product.name,
                "barcode": product.barcode,
                "brand": product.brand,
                "total_units_loaded": loaded,
                "total_units_wasted": wasted,
                "current_stock": stock,
                "waste_ratio": waste_ratio,
                "units_expired": buckets["units_expired"],
                "units_expiring_20d": buckets["units_expiring"],
                "risk_score": risk_score(waste_ratio, buckets["units_expired"], buckets["units_expiring"], stock),
            })

        rows.sort(key=lambda row: row["risk_score"], reverse=True)
        return rows

    def high_risk_products(
        self,
        waste_threshold: Optional[float] = None,
        limit: int = 20,
        reference_date: Optional[date] = None,
    ) -> List[Dict]:
        """
        Products with high waste or heavy near-term expiration exposure.

        A product is flagged when wastePercentage >= waste_threshold, or when
        it has 5+ units expiring within 15 days, or when those units are 30%+
        of what is left. Products flagged on both counts come first, then the
        highest waste percentage.

        Args:
            waste_threshold: Waste percentage cut-off (defaults to the HIGH_WASTE rule)
            limit: Maximum number of products
        """
        if waste_threshold is None:
            waste_threshold = self.rules.threshold(RuleType.HIGH_WASTE)

        flagged = []
        for entry in self.all_product_metrics(reference_date=reference_date):
            metrics = entry["metrics"]
            if metrics["totalPurchased"] == 0:
                continue

            high_waste = metrics["wastePercentage"] >= waste_threshold
            expiring = metrics["unitsExpiring"]
            remaining = metrics["totalRemaining"]
            expiring_soon = expiring >= EXPIRING_SOON_UNITS or (
                remaining > 0 and expiring / remaining >= EXPIRING_SOON_SHARE
            )
            if not (high_waste or expiring_soon):
                continue

            flagged.append({
                "product": entry["product"],
                "metrics": {
                    "totalPurchased": metrics["totalPurchased"],
                    "totalRemaining": remaining,
                    "totalWasted": metrics["totalWasted"],
                    "wastePercentage": metrics["wastePercentage"],
                    "unitsExpiring": expiring,
                },
                "riskFactors": {"highWaste": high_waste, "expiringSoon": expiring_soon},
            })

        flagged.sort(key=lambda item: (
            -(int(item["riskFactors"]["highWaste"]) + int(item["riskFactors"]["expiringSoon"])),
            -item["metrics"]["wastePercentage"],
        ))
        return flagged[:limit]

    def dashboard_stats(self, reference_date: Optional[date] = None) -> Dict:
        """
        Pharmacy-wide totals.

        avgWasteRatio is the mean of the per-product waste ratios, not total
        wasted over total loaded.
        """
        rows = self.fleet_metrics(reference_date=reference_date)
        high_risk_score = self.rules.threshold(RuleType.HIGH_RISK)

        avg_waste_ratio = 0.0
        if rows:
            avg_waste_ratio = round_half_up(sum(row["waste_ratio"] for row in rows) / len(rows), 1)

        return {
            "totalProducts": len(rows),
            "totalWastedUnits": sum(row["total_units_wasted"] for row in rows),
            "avgWasteRatio": avg_waste_ratio,
            "highRiskCount": sum(
                1 for row in rows
                if row["units_expired"] > 0 or row["risk_score"] >= high_risk_score
            ),
            "unitsExpired": sum(row["units_expired"] for row in rows),
            "unitsExpiring20d": sum(row["units_expiring_20d"] for row in rows),
        }

    def top_waste_products(self, limit: int = 5, reference_date: Optional[date] = None) -> List[Dict]:
        rows = [row for row in self.fleet_metrics(reference_date=reference_date) if row["total_units_wasted"] > 0]
        rows.sort(key=lambda row: row["total_units_wasted"], reverse=True)
        return rows[:limit]

    def top_risk_products(
        self,
        limit: int = 5,
        window_days: Optional[int] = None,
        reference_date: Optional[date] = None,
    ) -> List[Dict]:
        """
        Products with stock expiring within the window, most units first.

        days_to_next_expiry counts to the nearest future expiration among the
        product's active batches.
        """
        reference_date = self._reference(reference_date)
        if window_days is None:
            window_days = self.rules.expiring_days()
        batches = self._batches_by_product()

        rows = []
        for product in self._products():
            product_batches = batches.get(product.id, [])
            buckets = expiration_buckets(product_batches, reference_date, window_days)
            if buckets["units_expiring"] == 0:
                continue

            future = sorted(
                b.expiration_date for b in product_batches
                if b.quantity_remaining > 0 and b.expiration_date > reference_date
            )
            rows.append({
                "product_id": product.id,
                "name": product.name,
                "barcode": product.barcode,
                "units_expired": buckets["units_expired"],
                "units_expiring": buckets["units_expiring"],
                "days_to_next_expiry": days_between(reference_date, future[0]) if future else None,
            })

        rows.sort(key=lambda row: row["units_expiring"], reverse=True)
        return rows[:limit]

    def monthly_waste_trends(self, months: int = 6) -> List[Dict]:
        """Units wasted and sold per calendar month, most recent month first."""
        by_month: Dict[str, Dict] = {}

        waste_stmt = select(WasteEvent.event_date, WasteEvent.quantity).where(
            WasteEvent.pharmacy_id == self.pharmacy_id
        )
        for event_date, quantity in self.db.execute(waste_stmt).all():
            month = event_date.strftime("%Y-%m")
            by_month.setdefault(month, {"month": month, "wasted": 0, "sold": 0})["wasted"] += quantity

        sale_stmt = select(SaleEvent.sale_date, SaleEvent.quantity).where(
            SaleEvent.pharmacy_id == self.pharmacy_id,
            SaleEvent.processed.is_(True),
        )
        for sale_date, quantity in self.db.execute(sale_stmt).all():
            month = sale_date.strftime("%Y-%m")
            by_month.setdefault(month, {"month": month, "wasted": 0, "sold": 0})["sold"] += quantity

        return [by_month[month] for month in sorted(by_month, reverse=True)[:months]]

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def alerts(
        self,
        status_filter: Optional[ExpirationStatus] = None,
        threshold_days: Optional[int] = None,
        reference_date: Optional[date] = None,
    ) -> List[Dict]:
        """
        Active batches that are EXPIRED or EXPIRING, soonest expiration first.

        Args:
            status_filter: Keep only EXPIRED or only EXPIRING
            threshold_days: "Expiring soon" window (defaults to the EXPIRING_SOON rule)
        """
        reference_date = self._reference(reference_date)
        if threshold_days is None:
            threshold_days = self.rules.expiring_days()

        products = {product.id: product for product in self._products()}
        alerted = classify_batches(
            self.store.list_batches(active_only=True),
            reference_date,
            threshold_days,
            status_filter,
        )
        return [
            {
                "batch_id": batch.id,
                "product_id": batch.product_id,
                "product_name": products[batch.product_id].name,
                "barcode": products[batch.product_id].barcode,
                "lot_number": batch.lot_number,
                "location": batch.location,
                "expiration_date": batch.expiration_date,
                "quantity_remaining": batch.quantity_remaining,
                "days_to_expiry": days_to_expiry(batch, reference_date),
                "status": batch_status.value,
            }
            for batch, batch_status in alerted
        ]

    def badge_count(self, threshold_days: Optional[int] = None, reference_date: Optional[date] = None) -> int:
        """Number of batches needing attention, for the navigation badge."""
        reference_date = self._reference(reference_date)
        if threshold_days is None:
            threshold_days = self.rules.expiring_days()
        return len(classify_batches(self.store.list_batches(active_only=True), reference_date, threshold_days))

    def notification_digest(self, limit: int = 10, reference_date: Optional[date] = None) -> List[Dict]:
        """
        Payload for the notification sender: products with units expiring
        within the EXPIRING_SOON window.
        """
        window_days = self.rules.expiring_days()
        digest = [
            {
                "name": row["name"],
                "units_expiring": row["units_expiring"],
                "days_to_expiry": row["days_to_next_expiry"],
            }
            for row in self.top_risk_products(limit=limit, window_days=window_days, reference_date=reference_date)
            if row["days_to_next_expiry"] is not None and row["days_to_next_expiry"] <= window_days
        ]
        logger.info(f"Notification digest for pharmacy {self.pharmacy_id}: {len(digest)} product(s)")
        return digest
