"""
Tests for Schedules API
=======================

Tests today's view, intake confirmation, countdown, resync and history endpoints.
"""

import pytest
from datetime import date
from fastapi import status
from fastapi.testclient import TestClient

from actions.schedule_coordinator import TriggerSource
from tests.conftest import FIXED_NOW, TODAY, at


# ==================== FIXTURES ====================

@pytest.fixture
def generated(generator, test_elder, medicines):
    """Today's items generated at 07:00"""
    generator.sync(test_elder.id, TODAY, FIXED_NOW)


# ==================== TODAY VIEW TESTS ====================

class TestTodaySchedule:
    """Tests for the today endpoint"""

    @pytest.mark.api
    def test_today_view(self, client: TestClient, generated):
        response = client.get("/api/v1/schedules/elder/elder-1/today")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["date_key"] == "2026-10-17"
        assert len(data["items"]) == 3
        assert [i["id"] for i in data["upcoming"]] == ["med-aspirin|08-00", "med-metformin|08-00"]
        assert data["countdown"]["mode"] == "pre-dose"

    @pytest.mark.api
    def test_effective_status_follows_clock(self, client: TestClient, clock, generated):
        clock.now = at(8, 40)

        data = client.get("/api/v1/schedules/elder/elder-1/today").json()

        effective = {i["id"]: i["effective_status"] for i in data["items"]}
        assert effective["med-aspirin|08-00"] == "missed"
        assert effective["med-aspirin|20-00"] == "hasnt_arrived"

    @pytest.mark.api
    def test_unknown_elder(self, client: TestClient):
        response = client.get("/api/v1/schedules/elder/nobody/today")

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ==================== CONFIRM TESTS ====================

class TestConfirmIntake:
    """Tests for the confirm endpoint"""

    @pytest.mark.api
    def test_confirm_in_window(self, client: TestClient, clock, mock_coordinator, generated):
        clock.now = at(8, 15)

        response = client.post(
            "/api/v1/schedules/elder/elder-1/confirm",
            json={"base_timestamp": "2026-10-17T08:00:00Z"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert sorted(response.json()["taken_item_ids"]) == ["med-aspirin|08-00", "med-metformin|08-00"]
        mock_coordinator.request.assert_called_once_with("elder-1", TriggerSource.USER_ACTION)

        items = client.get("/api/v1/schedules/elder/elder-1/today").json()["items"]
        assert {i["id"]: i["status"] for i in items}["med-aspirin|08-00"] == "taken"

    @pytest.mark.api
    def test_confirm_with_offset(self, client: TestClient, clock, generated):
        clock.now = at(8, 15)

        response = client.post(
            "/api/v1/schedules/elder/elder-1/confirm",
            json={"base_timestamp": "2026-10-17T10:00:00+02:00"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()["taken_item_ids"]) == 2

    @pytest.mark.api
    @pytest.mark.parametrize("now", [at(7, 59), at(8, 30), at(9)])
    def test_confirm_outside_window(self, client: TestClient, clock, mock_coordinator, generated, now):
        clock.now = now

        response = client.post(
            "/api/v1/schedules/elder/elder-1/confirm",
            json={"base_timestamp": "2026-10-17T08:00:00Z"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        mock_coordinator.request.assert_not_called()

    @pytest.mark.api
    def test_confirm_twice(self, client: TestClient, clock, generated):
        clock.now = at(8, 15)
        payload = {"base_timestamp": "2026-10-17T08:00:00Z"}

        assert client.post("/api/v1/schedules/elder/elder-1/confirm", json=payload).status_code == status.HTTP_200_OK
        response = client.post("/api/v1/schedules/elder/elder-1/confirm", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.api
    def test_confirm_unscheduled_time(self, client: TestClient, clock, mock_coordinator, generated):
        clock.now = at(9, 15)

        response = client.post(
            "/api/v1/schedules/elder/elder-1/confirm",
            json={"base_timestamp": "2026-10-17T09:00:00Z"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        mock_coordinator.request.assert_not_called()

    @pytest.mark.api
    def test_confirm_naive_timestamp(self, client: TestClient, clock, generated):
        clock.now = at(8, 15)

        response = client.post(
            "/api/v1/schedules/elder/elder-1/confirm",
            json={"base_timestamp": "2026-10-17T08:00:00"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ==================== COUNTDOWN TESTS ====================

class TestCountdown:
    """Tests for the countdown endpoint"""

    @pytest.mark.api
    def test_pre_dose(self, client: TestClient, clock, generated):
        clock.now = at(7, 30)

        data = client.get("/api/v1/schedules/elder/elder-1/countdown").json()

        assert data["mode"] == "pre-dose"
        assert data["total_window_seconds"] == 1800
        assert data["remaining_seconds"] == 1800
        assert data["item_ids"] == ["med-aspirin|08-00", "med-metformin|08-00"]

    @pytest.mark.api
    def test_intake_window(self, client: TestClient, clock, generated):
        clock.now = at(8, 15)

        data = client.get("/api/v1/schedules/elder/elder-1/countdown").json()

        assert data["mode"] == "intake-window"
        assert data["remaining_seconds"] == 900
        assert data["progress"] == pytest.approx(0.5)

    @pytest.mark.api
    def test_idle_when_nothing_left(self, client: TestClient, clock, generated):
        clock.now = at(21)

        data = client.get("/api/v1/schedules/elder/elder-1/countdown").json()

        assert data["mode"] == "idle"
        assert data["item_ids"] == []


# ==================== SYNC TESTS ====================

class TestRequestSync:
    """Tests for the sync endpoint"""

    @pytest.mark.api
    def test_sync_is_queued(self, client: TestClient, mock_coordinator, test_elder):
        response = client.post("/api/v1/schedules/elder/elder-1/sync")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json()["accepted"] is True
        mock_coordinator.request.assert_called_once_with("elder-1", TriggerSource.USER_ACTION)

    @pytest.mark.api
    def test_sync_coalesced(self, client: TestClient, mock_coordinator, test_elder):
        mock_coordinator.request.return_value = False

        response = client.post("/api/v1/schedules/elder/elder-1/sync")

        assert response.json()["accepted"] is False
        assert response.json()["message"] == "Sync already pending"


# ==================== HISTORY TESTS ====================

class TestHistory:
    """Tests for the history and missed-log endpoints"""

    @pytest.fixture
    def history(self, generator, test_elder, medicines):
        yesterday = date(2026, 10, 16)
        generator.sync(test_elder.id, yesterday, at(7, day=yesterday))
        generator.sync(test_elder.id, TODAY, at(9))

    @pytest.mark.api
    def test_history(self, client: TestClient, history):
        data = client.get("/api/v1/schedules/elder/elder-1/history").json()

        assert data["total"] == 6
        assert data["missed"] == 5
        assert data["taken"] == 0
        assert data["items"][0]["date_key"] == "2026-10-17"

    @pytest.mark.api
    def test_history_filters(self, client: TestClient, history):
        response = client.get(
            "/api/v1/schedules/elder/elder-1/history",
            params={"start_date": "2026-10-17", "status": "hasnt_arrived"}
        )

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == "med-aspirin|20-00"

    @pytest.mark.api
    def test_history_rejects_unknown_status(self, client: TestClient, history):
        response = client.get("/api/v1/schedules/elder/elder-1/history", params={"status": "skipped"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_missed_log(self, client: TestClient, history):
        response = client.get("/api/v1/schedules/elder/elder-1/missed-log", params={"limit": 3})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data) == 3
        assert data[0]["id"].startswith("2026-10-17|")
