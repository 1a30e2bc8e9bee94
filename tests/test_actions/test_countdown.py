"""
Tests for Countdown Projector
Tests pre-dose and intake-window projection and display helpers
"""

import pytest
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone

from actions.countdown import CountdownMode, project, progress, remaining_seconds


UTC = timezone.utc
BASE = datetime(2026, 10, 17, 8, 0, tzinfo=UTC)


def make_item(item_id, base=BASE, status="hasnt_arrived", medicine_id=None):
    return SimpleNamespace(
        id=item_id,
        medicine_id=medicine_id or item_id.split("|")[0],
        base_timestamp=base,
        status=status
    )


@pytest.fixture
def day_items():
    return [
        make_item("aspirin|08-00"),
        make_item("metformin|08-00"),
        make_item("aspirin|20-00", base=BASE + timedelta(hours=12)),
    ]


class TestProject:
    """Tests for project()"""

    @pytest.mark.unit
    def test_idle_without_items(self):
        projection = project([], BASE)
        assert projection.mode == CountdownMode.IDLE
        assert projection.target is None
        assert remaining_seconds(projection, BASE) == 0
        assert progress(projection, BASE) == 0.0

    @pytest.mark.unit
    def test_pre_dose_targets_base(self, day_items):
        now = BASE - timedelta(minutes=10)
        projection = project(day_items, now)

        assert projection.mode == CountdownMode.PRE_DOSE
        assert projection.target == BASE
        assert projection.total_window_seconds == 600
        assert projection.item_ids == ["aspirin|08-00", "metformin|08-00"]
        assert remaining_seconds(projection, now) == 600

    @pytest.mark.unit
    def test_pre_dose_total_is_at_least_one_second(self, day_items):
        projection = project(day_items, BASE - timedelta(milliseconds=200))
        assert projection.total_window_seconds == 1

    @pytest.mark.unit
    def test_intake_window_targets_cutoff(self, day_items):
        now = BASE + timedelta(minutes=12)
        projection = project(day_items, now)

        assert projection.mode == CountdownMode.INTAKE_WINDOW
        assert projection.target == BASE + timedelta(minutes=30)
        assert projection.total_window_seconds == 1800
        assert remaining_seconds(projection, now) == 18 * 60
        assert progress(projection, now) == pytest.approx(0.4)

    @pytest.mark.unit
    def test_missed_group_is_skipped(self, day_items):
        projection = project(day_items, BASE + timedelta(minutes=45))

        assert projection.mode == CountdownMode.PRE_DOSE
        assert projection.base_timestamp == BASE + timedelta(hours=12)
        assert projection.item_ids == ["aspirin|20-00"]

    @pytest.mark.unit
    def test_taken_items_are_ignored(self, day_items):
        for item in day_items[:2]:
            item.status = "taken"

        projection = project(day_items, BASE + timedelta(minutes=5))

        assert projection.base_timestamp == BASE + timedelta(hours=12)

    @pytest.mark.unit
    def test_to_dict(self, day_items):
        data = project(day_items, BASE - timedelta(minutes=1)).to_dict()
        assert data["mode"] == "pre-dose"
        assert data["target"] == BASE.isoformat()
