"""
Batch expiration classifier.

Maps a batch to EXPIRED / EXPIRING / VALID relative to a reference date using
calendar-day comparison only. Everything here is pure: no database access.
"""
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Tuple

from scanfarma.core.calendar_dates import add_days, as_calendar_date, days_between, today_for
from scanfarma.core.config import MAX_THRESHOLD_DAYS, MIN_THRESHOLD_DAYS
from scanfarma.core.errors import ValidationError

DEFAULT_THRESHOLD_DAYS = 30


class ExpirationStatus(str, Enum):
    """Alert status of a batch."""
    EXPIRED = "EXPIRED"
    EXPIRING = "EXPIRING"
    VALID = "VALID"


class BatchLike(Protocol):
    expiration_date: date
    quantity_remaining: int


def validate_threshold(threshold_days: int) -> int:
    """Check the "expiring soon" window is within the allowed 7-90 days."""
    if not MIN_THRESHOLD_DAYS <= int(threshold_days) <= MAX_THRESHOLD_DAYS:
        raise ValidationError(
            f"Threshold must be between {MIN_THRESHOLD_DAYS} and {MAX_THRESHOLD_DAYS} days",
            field="threshold_days",
        )
    return int(threshold_days)


def is_expired(expiration_date: date, reference_date: date) -> bool:
    """Same-day counts as expired."""
    return expiration_date <= reference_date


def is_expiring(expiration_date: date, reference_date: date, window_days: int) -> bool:
    """Strictly after the reference date and within the window (inclusive)."""
    return reference_date < expiration_date <= add_days(reference_date, window_days)


def classify(
    batch: BatchLike,
    reference_date: Optional[date] = None,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
) -> ExpirationStatus:
    """
    Classify a batch relative to a reference date.

    Rules:
    - EXPIRED if expiration_date <= reference_date
    - EXPIRING if reference_date < expiration_date <= reference_date + threshold_days
    - VALID otherwise

    A depleted batch (quantity_remaining = 0) is never alerted on and is
    always reported as VALID.

    Args:
        batch: Anything with expiration_date and quantity_remaining
        reference_date: Day to classify against (defaults to today, UTC)
        threshold_days: "Expiring soon" window, 7-90 days

    Returns:
        ExpirationStatus
    """
    threshold_days = validate_threshold(threshold_days)
    if reference_date is None:
        reference_date = today_for(None)
    reference_date = as_calendar_date(reference_date, field="reference_date")
    expiration_date = as_calendar_date(batch.expiration_date, field="expiration_date")

    if (batch.quantity_remaining or 0) <= 0:
        return ExpirationStatus.VALID

    if is_expired(expiration_date, reference_date):
        return ExpirationStatus.EXPIRED
    if is_expiring(expiration_date, reference_date, threshold_days):
        return ExpirationStatus.EXPIRING
    return ExpirationStatus.VALID


def days_to_expiry(batch: BatchLike, reference_date: date) -> int:
    """Days left until expiration; zero or negative once expired."""
    return days_between(
        as_calendar_date(reference_date, field="reference_date"),
        as_calendar_date(batch.expiration_date, field="expiration_date"),
    )


def classify_batches(
    batches: Iterable[BatchLike],
    reference_date: date,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
    status_filter: Optional[ExpirationStatus] = None,
) -> List[Tuple[BatchLike, ExpirationStatus]]:
    """
    Alert view: active batches that are EXPIRED or EXPIRING.

    Args:
        batches: Batches to classify (depleted ones are dropped)
        reference_date: Day to classify against
        threshold_days: "Expiring soon" window
        status_filter: Keep only this status (None keeps both alert statuses)

    Returns:
        List of (batch, status) in the input order
    """
    result = []
    for batch in batches:
        if (batch.quantity_remaining or 0) <= 0:
            continue
        batch_status = classify(batch, reference_date, threshold_days)
        if batch_status == ExpirationStatus.VALID:
            continue
        if status_filter is not None and batch_status != status_filter:
            continue
        result.append((batch, batch_status))
    return result
