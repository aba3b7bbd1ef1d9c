"""
Tests for the batch expiration classifier.
"""
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from scanfarma.core.errors import ValidationError
from scanfarma.services.expiration import (
    ExpirationStatus,
    classify,
    classify_batches,
    days_to_expiry,
)

REF = date(2026, 1, 10)


def make_batch(expiration_date, quantity_remaining=10, batch_id=1):
    return SimpleNamespace(id=batch_id, expiration_date=expiration_date, quantity_remaining=quantity_remaining)


class TestClassify:
    """EXPIRED / EXPIRING / VALID boundaries."""

    def test_same_day_is_expired(self):
        """A batch expiring today is already expired."""
        assert classify(make_batch(REF), REF) == ExpirationStatus.EXPIRED

    def test_past_is_expired(self):
        assert classify(make_batch(REF - timedelta(days=1)), REF) == ExpirationStatus.EXPIRED

    def test_tomorrow_is_expiring(self):
        assert classify(make_batch(REF + timedelta(days=1)), REF) == ExpirationStatus.EXPIRING

    def test_threshold_day_is_expiring(self):
        """The window end is inclusive."""
        assert classify(make_batch(REF + timedelta(days=30)), REF, 30) == ExpirationStatus.EXPIRING

    def test_after_threshold_is_valid(self):
        assert classify(make_batch(REF + timedelta(days=31)), REF, 30) == ExpirationStatus.VALID

    def test_custom_threshold(self):
        batch = make_batch(REF + timedelta(days=10))
        assert classify(batch, REF, 7) == ExpirationStatus.VALID
        assert classify(batch, REF, 14) == ExpirationStatus.EXPIRING

    def test_depleted_batch_is_valid(self):
        """An empty batch never raises an alert, even long expired."""
        assert classify(make_batch(REF - timedelta(days=100), quantity_remaining=0), REF) == ExpirationStatus.VALID

    def test_datetime_reference_uses_calendar_day(self):
        from datetime import datetime
        assert classify(make_batch(REF), datetime(2026, 1, 10, 23, 59)) == ExpirationStatus.EXPIRED

    def test_default_reference_is_utc_today(self, monkeypatch):
        """Without a reference date the UTC calendar day is used, not the server's."""
        calls = []

        def fake_today_for(pharmacy_timezone=None, now=None):
            calls.append(pharmacy_timezone)
            return REF

        monkeypatch.setattr("scanfarma.services.expiration.today_for", fake_today_for)

        assert classify(make_batch(REF)) == ExpirationStatus.EXPIRED
        assert calls == [None]

    @pytest.mark.parametrize("threshold", [0, 6, 91, 365])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValidationError):
            classify(make_batch(REF), REF, threshold)

    def test_monotonic_in_reference_date(self):
        """Moving the reference date forward never un-expires a batch."""
        order = {ExpirationStatus.VALID: 0, ExpirationStatus.EXPIRING: 1, ExpirationStatus.EXPIRED: 2}
        batch = make_batch(REF + timedelta(days=45))
        previous = 0
        for offset in range(0, 90):
            current = order[classify(batch, REF + timedelta(days=offset), 30)]
            assert current >= previous
            previous = current


class TestClassifyBatches:
    """Alert view over several batches."""

    def test_only_alerting_active_batches(self):
        batches = [
            make_batch(REF - timedelta(days=1), batch_id=1),
            make_batch(REF + timedelta(days=5), batch_id=2),
            make_batch(REF + timedelta(days=60), batch_id=3),
            make_batch(REF - timedelta(days=3), quantity_remaining=0, batch_id=4),
        ]
        result = classify_batches(batches, REF, 30)

        assert [(b.id, s) for b, s in result] == [
            (1, ExpirationStatus.EXPIRED),
            (2, ExpirationStatus.EXPIRING),
        ]

    def test_status_filter(self):
        batches = [
            make_batch(REF - timedelta(days=1), batch_id=1),
            make_batch(REF + timedelta(days=5), batch_id=2),
        ]
        result = classify_batches(batches, REF, 30, ExpirationStatus.EXPIRING)
        assert [b.id for b, _ in result] == [2]


class TestDaysToExpiry:

    def test_future_and_past(self):
        assert days_to_expiry(make_batch(REF + timedelta(days=12)), REF) == 12
        assert days_to_expiry(make_batch(REF - timedelta(days=2)), REF) == -2
