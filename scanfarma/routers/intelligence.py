"""
Intelligence router: dashboard, risk rankings, suggestions and expiry alerts.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scanfarma.core.config import MAX_THRESHOLD_DAYS, MIN_THRESHOLD_DAYS
from scanfarma.core.deps import get_current_pharmacy
from scanfarma.db.session import get_db
from scanfarma.models.pharmacy import Pharmacy
from scanfarma.schemas.stock import ExpiryTextRequest, ExpiryTextResponse
from scanfarma.services.date_capture import parse_expiry_text
from scanfarma.services.expiration import ExpirationStatus
from scanfarma.services.metrics import MetricsAggregator
from scanfarma.services.suggestions import fleet_suggestions, products_with_intelligence

router = APIRouter(prefix="/intelligence", tags=["intelligence"])
alerts_router = APIRouter(prefix="/alerts", tags=["alerts"])
capture_router = APIRouter(prefix="/capture", tags=["capture"])


def _aggregator(pharmacy: Pharmacy, db: Session) -> MetricsAggregator:
    return MetricsAggregator(db, pharmacy.id, pharmacy.timezone)


@router.get("/dashboard")
def get_dashboard(
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Headline numbers plus the top waste and top risk products."""
    aggregator = _aggregator(pharmacy, db)
    return {
        "stats": aggregator.dashboard_stats(),
        "top_waste": aggregator.top_waste_products(limit=5),
        "top_risk": aggregator.top_risk_products(limit=5),
    }


@router.get("/fleet")
def get_fleet_metrics(
    limit: Optional[int] = Query(None, ge=1, le=500),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Per-product risk view sorted by risk score."""
    return {"products": _aggregator(pharmacy, db).fleet_metrics(limit=limit)}


@router.get("/high-risk")
def get_high_risk_products(
    waste_threshold: Optional[float] = Query(None, ge=0, le=100),
    limit: int = Query(20, ge=1, le=100),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {
        "products": _aggregator(pharmacy, db).high_risk_products(
            waste_threshold=waste_threshold, limit=limit
        )
    }


@router.get("/suggestions")
def get_suggestions(
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Top 10 actions across all products, high priority first."""
    aggregator = _aggregator(pharmacy, db)
    return {"suggestions": fleet_suggestions(aggregator, limit=aggregator.settings.SUGGESTION_LIMIT)}


@router.get("/products")
def get_products_with_intelligence(
    limit: int = Query(50, ge=1, le=500),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"products": products_with_intelligence(_aggregator(pharmacy, db), limit=limit)}


@router.get("/top-waste")
def get_top_waste(
    limit: int = Query(5, ge=1, le=50),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"products": _aggregator(pharmacy, db).top_waste_products(limit=limit)}


@router.get("/top-risk")
def get_top_risk(
    limit: int = Query(5, ge=1, le=50),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"products": _aggregator(pharmacy, db).top_risk_products(limit=limit)}


@router.get("/trends")
def get_monthly_trends(
    months: int = Query(6, ge=1, le=24),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"months": _aggregator(pharmacy, db).monthly_waste_trends(months=months)}


@alerts_router.get("")
def list_alerts(
    status: Optional[ExpirationStatus] = Query(None, description="EXPIRED or EXPIRING"),
    threshold_days: Optional[int] = Query(None, ge=MIN_THRESHOLD_DAYS, le=MAX_THRESHOLD_DAYS),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Active batches that are expired or about to expire, soonest first."""
    alerts = _aggregator(pharmacy, db).alerts(status_filter=status, threshold_days=threshold_days)
    return {"alerts": alerts, "count": len(alerts)}


@alerts_router.get("/count")
def get_alert_count(
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    return {"count": _aggregator(pharmacy, db).badge_count()}


@alerts_router.get("/digest")
def get_notification_digest(
    limit: int = Query(10, ge=1, le=50),
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
    db: Session = Depends(get_db),
):
    """Products expiring soon, in the shape the notification sender consumes."""
    if not pharmacy.notifications_enabled:
        return {"enabled": False, "products": []}
    return {"enabled": True, "products": _aggregator(pharmacy, db).notification_digest(limit=limit)}


@capture_router.post("/expiry-date", response_model=ExpiryTextResponse)
def capture_expiry_date(
    request: ExpiryTextRequest,
    pharmacy: Pharmacy = Depends(get_current_pharmacy),
):
    """Validate the text OCR read off a package and return the date found, if any."""
    parsed = parse_expiry_text(request.text)
    return ExpiryTextResponse(text=request.text, expiration_date=parsed, valid=parsed is not None)
