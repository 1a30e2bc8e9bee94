"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all CareWatch tests.
Fixtures include a file-backed database, session factory, sample elder,
caretaker and medicines, a fixed clock, and a recording messenger.
"""

import os
import sys
from datetime import datetime, date, timezone
from typing import Generator, List
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import build_engine, drop_db, init_db
from models import Caretaker, Elder, Medicine
from tools.change_feed import ChangeFeed
from tools.notification_service import NotificationChannel, NotificationResult, NotificationService
from actions.missed_dose_marker import MissedDoseMarker
from actions.schedule_generator import ScheduleGenerator
from actions.missed_dose_notifier import MissedDoseNotifier
from actions.schedule_coordinator import ScheduleCoordinator
from api.deps import get_db, get_coordinator, get_now
from app import app


UTC = timezone.utc

# Saturday 2026-10-17, 07:00 UTC
FIXED_NOW = datetime(2026, 10, 17, 7, 0, tzinfo=UTC)
TODAY = date(2026, 10, 17)


def at(hour: int, minute: int = 0, second: int = 0, day: date = TODAY) -> datetime:
    """Aware UTC instant on the test day"""
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=UTC)


# ==================== SETTINGS ====================

@pytest.fixture(autouse=True)
def utc_schedule(monkeypatch):
    """Pin the schedule time zone so instants in tests are unambiguous"""
    monkeypatch.setattr(settings, "SCHEDULE_TIMEZONE", "UTC")
    monkeypatch.setattr(settings, "MISSED_SWEEP_DAYS", 2)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """
    File-backed SQLite engine per test.
    A real file lets worker threads hold their own connections and run
    genuinely concurrent transactions.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'carewatch_test.db'}")

    # Create all tables
    init_db(bind=engine)

    yield engine

    # Cleanup
    drop_db(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session"""
    session = session_factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==================== ENGINE FIXTURES ====================

@pytest.fixture
def feed() -> ChangeFeed:
    """Isolated change feed"""
    return ChangeFeed()


@pytest.fixture
def recording_messenger():
    """
    Messenger mock that records every grouped alert and help request and
    reports success.
    Set `.fail = True` to make every delivery fail.
    """
    messenger = MagicMock(spec=NotificationService)
    messenger.fail = False
    messenger.sent = []

    def _send(recipients, elder_label, grouped, channel=NotificationChannel.EMAIL):
        results = []
        for recipient in recipients:
            messenger.sent.append({
                "recipient": recipient,
                "elder_label": elder_label,
                "grouped": {k: list(v) for k, v in grouped.items()},
                "channel": channel
            })
            results.append(NotificationResult(
                success=not messenger.fail,
                channel=channel,
                recipient=recipient,
                error="smtp down" if messenger.fail else None
            ))
        return results

    def _send_help(recipients, elder_label, channel=NotificationChannel.EMAIL):
        return _send(recipients, elder_label, {}, channel)

    messenger.send_grouped_alert.side_effect = _send
    messenger.send_help_request.side_effect = _send_help
    return messenger


@pytest.fixture
def marker(session_factory) -> MissedDoseMarker:
    return MissedDoseMarker(session_factory)


@pytest.fixture
def generator(session_factory, marker, feed) -> ScheduleGenerator:
    return ScheduleGenerator(session_factory, marker=marker, feed=feed)


@pytest.fixture
def notifier(session_factory, recording_messenger) -> MissedDoseNotifier:
    return MissedDoseNotifier(session_factory, messenger=recording_messenger)


@pytest.fixture
def clock():
    """Mutable fixed clock; set clock.now to move time"""
    class FixedClock:
        def __init__(self):
            self.now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return FixedClock()


@pytest.fixture
def coordinator(session_factory, generator, notifier, feed, clock) -> Generator[ScheduleCoordinator, None, None]:
    coordinator = ScheduleCoordinator(
        session_factory,
        generator=generator,
        notifier=notifier,
        feed=feed,
        clock=clock,
        max_workers=4,
        tick_interval=0.05
    )
    yield coordinator
    coordinator.stop()


# ==================== SAMPLE DATA FIXTURES ====================

def _persist(session_factory, *objects):
    with session_factory() as session:
        session.add_all(objects)
        session.commit()
    return objects


@pytest.fixture
def test_elder(session_factory) -> Elder:
    """Create and return a test elder"""
    elder = Elder(
        id="elder-1",
        username="Margaret",
        email="margaret@example.com",
        caretaker_ids=[],
        pairing_code="PAIR01"
    )
    _persist(session_factory, elder)
    return elder


@pytest.fixture
def test_caretaker(session_factory, test_elder) -> Caretaker:
    """Create and return a caretaker linked to the test elder"""
    caretaker = Caretaker(
        id="caretaker-1",
        username="Daniel",
        email="daniel@example.com",
        elder_id=test_elder.id
    )
    _persist(session_factory, caretaker)
    return caretaker


@pytest.fixture
def aspirin(session_factory, test_elder) -> Medicine:
    """Aspirin with a duplicated morning time"""
    medicine = Medicine(
        id="med-aspirin",
        elder_id=test_elder.id,
        name="Aspirin",
        type="tablet",
        amount="1 tablet",
        times=["08:00", "08:00", "20:00"],
        start_date=date(2026, 10, 1)
    )
    _persist(session_factory, medicine)
    return medicine


@pytest.fixture
def metformin(session_factory, test_elder) -> Medicine:
    """Metformin sharing the 08:00 slot with Aspirin"""
    medicine = Medicine(
        id="med-metformin",
        elder_id=test_elder.id,
        name="Metformin",
        type="tablet",
        amount="500mg",
        times=["08:00"],
        start_date=date(2026, 10, 1)
    )
    _persist(session_factory, medicine)
    return medicine


@pytest.fixture
def medicines(aspirin, metformin) -> List[Medicine]:
    return [aspirin, metformin]


# ==================== API FIXTURES ====================

@pytest.fixture
def mock_coordinator():
    """Coordinator stand-in for API tests"""
    coordinator = MagicMock(spec=ScheduleCoordinator)
    coordinator.is_running = False
    coordinator.request.return_value = True
    return coordinator


@pytest.fixture(scope="function")
def client(session_factory, mock_coordinator, clock) -> Generator[TestClient, None, None]:
    """
    FastAPI test client with database, coordinator and clock overrides.
    The lifespan is not entered, so no real coordinator or database is started.
    """

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_coordinator] = lambda: mock_coordinator
    app.dependency_overrides[get_now] = lambda: clock()

    yield TestClient(app)

    app.dependency_overrides.clear()


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "api: mark test as an API test")
