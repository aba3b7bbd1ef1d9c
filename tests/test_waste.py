"""
Tests for waste recording.
"""
import pytest
from sqlalchemy import select

from scanfarma.core.errors import InsufficientStockError, NotFoundError, ValidationError
from scanfarma.models.batch import Batch
from scanfarma.models.waste_event import WasteEvent
from scanfarma.services.waste import WasteRecorder


@pytest.fixture
def recorder(db, pharmacy):
    return WasteRecorder(db, pharmacy.id, pharmacy.timezone)


def remaining(db, batch_id):
    return db.execute(select(Batch.quantity_remaining).where(Batch.id == batch_id)).scalar_one()


class TestRecordWaste:

    def test_decrements_batch_and_logs_event(self, db, recorder, load_batch, today):
        batch = load_batch(quantity=10)

        event = recorder.record_waste(batch.id, 3, "damaged", notes="dropped box")

        assert event.quantity == 3
        assert event.reason == "damaged"
        assert event.product_id == batch.product_id
        assert event.event_date == today
        assert remaining(db, batch.id) == 7

    def test_more_than_remaining_rejected(self, db, recorder, load_batch):
        batch = load_batch(quantity=4)

        with pytest.raises(InsufficientStockError) as exc_info:
            recorder.record_waste(batch.id, 5, "returned")

        assert exc_info.value.available == 4
        assert exc_info.value.shortfall == 1
        assert "Available: 4" in exc_info.value.message
        assert remaining(db, batch.id) == 4
        assert db.execute(select(WasteEvent)).first() is None

    def test_unknown_reason(self, recorder, load_batch):
        batch = load_batch()
        with pytest.raises(ValidationError):
            recorder.record_waste(batch.id, 1, "stolen")

    def test_non_positive_quantity(self, recorder, load_batch):
        batch = load_batch()
        with pytest.raises(ValidationError):
            recorder.record_waste(batch.id, 0, "expired")

    def test_batch_of_other_pharmacy_not_found(self, db, other_pharmacy, load_batch):
        batch = load_batch()
        with pytest.raises(NotFoundError):
            WasteRecorder(db, other_pharmacy.id).record_waste(batch.id, 1, "expired")


class TestMarkExpired:

    def test_whole_remainder_dated_at_expiration(self, db, recorder, load_batch):
        batch = load_batch(quantity=6, days=-2)

        event = recorder.mark_batch_expired(batch.id)

        assert event.quantity == 6
        assert event.reason == "expired"
        assert event.event_date == batch.expiration_date
        assert remaining(db, batch.id) == 0

    def test_depleted_batch_is_noop(self, recorder, load_batch):
        batch = load_batch(quantity=2, days=-2)
        recorder.mark_batch_expired(batch.id)

        assert recorder.mark_batch_expired(batch.id) is None

    def test_bulk_continues_past_failures(self, recorder, load_batch):
        first = load_batch("7791", quantity=3, days=-1)
        second = load_batch("7792", quantity=4, days=-5)

        result = recorder.bulk_mark_expired([first.id, 99999, second.id])

        assert result["processed"] == 2
        assert result["units"] == 7
        assert result["errors"] == [{"batch_id": 99999, "error": "Batch 99999 not found"}]


class TestSummaryAndHistory:

    def test_summary_by_reason(self, recorder, load_batch):
        batch = load_batch(quantity=20)
        recorder.record_waste(batch.id, 2, "expired")
        recorder.record_waste(batch.id, 3, "damaged")
        recorder.record_waste(batch.id, 1, "expired")

        summary = recorder.waste_summary(batch.product_id)

        assert summary["total"] == 6
        assert summary["by_reason"] == {"expired": 3, "returned": 0, "discounted": 0, "damaged": 3}

    def test_history_most_recent_first(self, recorder, load_batch, today):
        from datetime import timedelta
        batch = load_batch(quantity=20)
        recorder.record_waste(batch.id, 1, "expired", today - timedelta(days=3))
        recorder.record_waste(batch.id, 2, "returned", today)

        history = recorder.waste_history(batch.product_id)
        assert [e.quantity for e in history] == [2, 1]
