"""
Tests for Missed-Dose Marker
Tests the exactly-once missed transition and its log entry
"""

import threading
import pytest
from unittest.mock import MagicMock

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models import MissedDoseLog, ScheduleItem
from actions.missed_dose_marker import MissedDoseMarker, MissedItemRef
from tests.conftest import FIXED_NOW, TODAY, at


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def morning_ref(generator, test_elder, aspirin) -> MissedItemRef:
    """Reference to today's 08:00 aspirin, created before it is due"""
    generator.sync(test_elder.id, TODAY, FIXED_NOW)
    item = next(i for i in generator.load_items(test_elder.id, "2026-10-17") if i.id == "med-aspirin|08-00")
    assert item.status == "hasnt_arrived"
    return MissedItemRef.from_item(item)


def load_item(session_factory, ref):
    with session_factory() as session:
        return session.get(ScheduleItem, (ref.elder_id, ref.date_key, ref.item_id))


def load_logs(session_factory):
    with session_factory() as session:
        return session.query(MissedDoseLog).all()


# =============================================================================
# Test Transition
# =============================================================================

class TestMarkMissed:
    """Tests for MissedDoseMarker.mark_missed"""

    @pytest.mark.integration
    def test_first_call_flips_and_logs(self, marker, session_factory, morning_ref):
        assert marker.mark_missed(morning_ref, at(8, 31)) is True

        item = load_item(session_factory, morning_ref)
        assert item.status == "missed"
        assert item.missed_logged_at == at(8, 31)
        assert item.missed_notified is False

        logs = load_logs(session_factory)
        assert len(logs) == 1
        log = logs[0]
        assert log.id == "2026-10-17|med-aspirin|08-00"
        assert log.medicine_id == "med-aspirin"
        assert log.name == "Aspirin"
        assert log.amount == "1 tablet"
        assert log.missed_dose_time == at(8, 0)
        assert log.item_path == "elder/elder-1/scheduleDay/2026-10-17/item/med-aspirin|08-00"

    @pytest.mark.integration
    def test_second_call_is_a_no_op(self, marker, session_factory, morning_ref):
        assert marker.mark_missed(morning_ref, at(8, 31)) is True
        assert marker.mark_missed(morning_ref, at(8, 45)) is False

        assert load_item(session_factory, morning_ref).missed_logged_at == at(8, 31)
        assert len(load_logs(session_factory)) == 1

    @pytest.mark.integration
    def test_taken_is_never_overwritten(self, marker, session_factory, morning_ref):
        with session_factory() as session:
            session.execute(
                update(ScheduleItem)
                .where(ScheduleItem.id == morning_ref.item_id)
                .values(status="taken", taken_at=at(8, 10))
            )
            session.commit()

        assert marker.mark_missed(morning_ref, at(8, 31)) is False
        assert load_item(session_factory, morning_ref).status == "taken"
        assert load_logs(session_factory) == []

    @pytest.mark.integration
    def test_missing_item_returns_false(self, marker, test_elder):
        ref = MissedItemRef(elder_id=test_elder.id, date_key="2026-10-17", item_id="nope|08-00")
        assert marker.mark_missed(ref, at(9)) is False

    @pytest.mark.unit
    def test_store_error_returns_false(self):
        session = MagicMock()
        session.execute.side_effect = SQLAlchemyError("database is locked")
        marker = MissedDoseMarker(session_factory=lambda: session)
        ref = MissedItemRef(elder_id="elder-1", date_key="2026-10-17", item_id="med|08-00")

        assert marker.mark_missed(ref, at(9)) is False
        session.rollback.assert_called_once()

    @pytest.mark.integration
    @pytest.mark.slow
    def test_concurrent_callers_flip_exactly_once(self, marker, session_factory, morning_ref):
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            outcome = marker.mark_missed(morning_ref, at(8, 31))
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == workers
        assert results.count(True) == 1
        assert len(load_logs(session_factory)) == 1
        assert load_item(session_factory, morning_ref).status == "missed"
