"""
Database Models
SQLAlchemy ORM models for CareWatch

Layout mirrors the document paths the rest of the app uses:
    elder/{elderId}/medicine/{medicineId}
    elder/{elderId}/scheduleDay/{YYYY-MM-DD}
    elder/{elderId}/scheduleDay/{date}/item/{itemId}
    elder/{elderId}/missedDoseLog/{logId}
    notification/{autoId}
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Text, ForeignKey,
    Index, JSON, ForeignKeyConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex[:20]


class UTCDateTime(TypeDecorator):
    """Stores aware datetimes as naive UTC and returns them aware (UTC)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ==================== ENUMS ====================

class DoseStatus(str, PyEnum):
    """State of a scheduled dose"""
    HASNT_ARRIVED = "hasnt_arrived"
    IN_SNOOZE_DURATION = "in_snooze_duration"
    MISSED = "missed"
    TAKEN = "taken"

    @property
    def is_terminal(self) -> bool:
        return self in (DoseStatus.TAKEN, DoseStatus.MISSED)


TERMINAL_STATUSES = (DoseStatus.TAKEN.value, DoseStatus.MISSED.value)


# ==================== MODELS ====================

class Elder(Base):
    """Person whose medication is tracked"""
    __tablename__ = "elders"

    id = Column(String(64), primary_key=True, default=new_id)
    username = Column(String(100), nullable=False)
    email = Column(String(255))

    # Fallback caretaker link kept on the elder record
    caretaker_ids = Column(JSON, default=list)
    pairing_code = Column(String(20), unique=True, index=True)

    created_at = Column(UTCDateTime, default=utcnow)

    medicines = relationship("Medicine", back_populates="elder", cascade="all, delete-orphan")

    @property
    def label(self) -> str:
        return self.username or "Elder"


class Caretaker(Base):
    """Supervisor who receives missed-dose alerts"""
    __tablename__ = "caretakers"

    id = Column(String(64), primary_key=True, default=new_id)
    username = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(20))

    # Primary link to the supervised elder
    elder_id = Column(String(64), ForeignKey("elders.id", ondelete="SET NULL"), index=True)

    created_at = Column(UTCDateTime, default=utcnow)


class Medicine(Base):
    """What the elder takes and when"""
    __tablename__ = "medicines"

    id = Column(String(64), primary_key=True, default=new_id)
    elder_id = Column(String(64), ForeignKey("elders.id"), nullable=False)

    name = Column(String(255), nullable=False)
    type = Column(String(100))
    amount = Column(String(100))

    # Recurring time-of-day template ("HH:MM" strings)
    times = Column(JSON, default=list)

    # Active period, inclusive calendar dates
    start_date = Column(Date)
    end_date = Column(Date)

    force_ended = Column(Boolean, default=False)
    force_ended_at = Column(UTCDateTime)
    force_ended_reason = Column(Text)
    force_ended_by = Column(String(64))

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    elder = relationship("Elder", back_populates="medicines")

    __table_args__ = (
        Index("ix_medicines_elder", "elder_id"),
    )

    @property
    def path(self) -> str:
        return f"elder/{self.elder_id}/medicine/{self.id}"


class ScheduleDay(Base):
    """One generated calendar day of an elder's schedule"""
    __tablename__ = "schedule_days"

    elder_id = Column(String(64), ForeignKey("elders.id"), primary_key=True)
    date_key = Column(String(10), primary_key=True)  # YYYY-MM-DD
    created_at = Column(UTCDateTime, default=utcnow)

    items = relationship("ScheduleItem", back_populates="day", cascade="all, delete-orphan")


class ScheduleItem(Base):
    """One dose of one medicine at one time on one date"""
    __tablename__ = "schedule_items"

    elder_id = Column(String(64), primary_key=True)
    date_key = Column(String(10), primary_key=True)
    id = Column(String(255), primary_key=True)  # make_item_id(medicine_id, time)

    # Weak reference; the medicine may be edited or removed later
    medicine_id = Column(String(64), index=True)

    # Snapshot taken at creation
    name = Column(String(255))
    type = Column(String(100))
    amount = Column(String(100))
    time = Column(String(8))
    base_timestamp = Column(UTCDateTime, nullable=False)

    status = Column(String(30), nullable=False, default=DoseStatus.HASNT_ARRIVED.value)
    taken_at = Column(UTCDateTime)
    missed_logged_at = Column(UTCDateTime)
    missed_notified = Column(Boolean, default=False, nullable=False)
    missed_notified_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)

    day = relationship("ScheduleDay", back_populates="items")

    __table_args__ = (
        ForeignKeyConstraint(
            ["elder_id", "date_key"],
            ["schedule_days.elder_id", "schedule_days.date_key"],
            ondelete="CASCADE"
        ),
        Index("ix_schedule_items_status", "elder_id", "status"),
        Index("ix_schedule_items_base", "elder_id", "base_timestamp"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def path(self) -> str:
        return f"elder/{self.elder_id}/scheduleDay/{self.date_key}/item/{self.id}"


class MissedDoseLog(Base):
    """Append-only record of a dose that became missed"""
    __tablename__ = "missed_dose_logs"

    elder_id = Column(String(64), primary_key=True)
    id = Column(String(300), primary_key=True)  # "{date_key}|{item_id}"

    medicine_id = Column(String(64), index=True)
    name = Column(String(255))
    type = Column(String(100))
    amount = Column(String(100))
    missed_dose_time = Column(UTCDateTime)
    logged_at = Column(UTCDateTime, default=utcnow)
    item_path = Column(String(400))

    __table_args__ = (
        Index("ix_missed_logs_elder_time", "elder_id", "missed_dose_time"),
    )


class Notification(Base):
    """In-app alert delivered to one caretaker"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    elder_id = Column(String(64), nullable=False, index=True)
    caretaker_id = Column(String(64), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    message = Column(Text)
    timestamp = Column(UTCDateTime, default=utcnow)
    read = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_notifications_caretaker_read", "caretaker_id", "read"),
    )
