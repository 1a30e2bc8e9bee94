"""
Schedule Generator
Materializes an elder's medicine catalog into dated schedule items and
keeps their time-driven statuses current
"""

import logging
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
from models import DoseStatus, Medicine, ScheduleDay, ScheduleItem, TERMINAL_STATUSES
from tools.change_feed import ChangeFeed, change_feed, items_topic
from tools.scheduler import DoseSlot, date_key, expand_medicine, schedule_timezone
from actions.dose_evaluator import SNOOZE_WINDOW, status_at
from actions.missed_dose_marker import MissedDoseMarker, MissedItemRef


logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of generating one day of an elder's schedule"""
    elder_id: str
    date_key: str
    day_created: bool = False
    created: List[str] = field(default_factory=list)
    skipped_times: Dict[str, List[str]] = field(default_factory=dict)
    newly_missed: List[MissedItemRef] = field(default_factory=list)
    carried_over: int = 0

    def to_dict(self) -> Dict:
        return {
            "elder_id": self.elder_id,
            "date_key": self.date_key,
            "day_created": self.day_created,
            "created": list(self.created),
            "skipped_times": {k: list(v) for k, v in self.skipped_times.items()},
            "newly_missed": [ref.item_id for ref in self.newly_missed],
            "carried_over": self.carried_over
        }


@dataclass
class StatusSyncResult:
    """Outcome of re-evaluating a day's unresolved items"""
    date_key: str
    changed: List[str] = field(default_factory=list)
    newly_missed: List[MissedItemRef] = field(default_factory=list)


class ScheduleGenerator:
    """
    Creates missing schedule items for a day and advances existing ones.

    Every write is either a create-if-absent keyed by the deterministic item
    id or a conditional update guarded on the item not being terminal, so
    any number of concurrent generators converge on the same rows.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        marker: Optional[MissedDoseMarker] = None,
        feed: Optional[ChangeFeed] = None
    ):
        self.session_factory = session_factory
        self.marker = marker or MissedDoseMarker(session_factory)
        self.feed = feed or change_feed

    # ==================== GENERATION ====================

    def sync(self, elder_id: str, day: date, now: Optional[datetime] = None) -> SyncResult:
        """
        Ensure every active medicine has an item for each of its times on a day.

        The first time a day is seen, the previous day's items that never
        arrived are marked missed before the new day row is created.
        """
        now = now or datetime.now(timezone.utc)
        tz = schedule_timezone()
        day_key = date_key(day)
        result = SyncResult(elder_id=elder_id, date_key=day_key)

        with get_db_context(self.session_factory) as session:
            day_exists = session.get(ScheduleDay, (elder_id, day_key)) is not None
            medicines = session.scalars(
                select(Medicine).where(Medicine.elder_id == elder_id)
            ).all()

        if not day_exists:
            carried = self._close_previous_day(elder_id, day, now)
            result.carried_over = len(carried)
            result.newly_missed.extend(carried)
            result.day_created = self._ensure_day(elder_id, day_key)
            if result.day_created:
                logger.info(f"Created schedule day {day_key} for elder {elder_id}")

        for medicine in medicines:
            slots, skipped = expand_medicine(medicine, day, tz)
            if skipped:
                result.skipped_times[medicine.id] = skipped

            for slot in slots:
                status = status_at(slot.base_timestamp, now)
                ref = self._create_if_absent(elder_id, day_key, slot, status, now)
                if ref is None:
                    continue
                result.created.append(slot.item_id)
                if status == DoseStatus.MISSED:
                    result.newly_missed.append(ref)

        if result.created:
            logger.info(f"Generated {len(result.created)} item(s) for elder {elder_id} on {day_key}")
            self.feed.publish(items_topic(elder_id, day_key), "created", result.created)

        return result

    def _ensure_day(self, elder_id: str, day_key: str) -> bool:
        try:
            with get_db_context(self.session_factory) as session:
                if session.get(ScheduleDay, (elder_id, day_key)) is not None:
                    return False
                session.add(ScheduleDay(elder_id=elder_id, date_key=day_key))
            return True
        except IntegrityError:
            logger.debug(f"Schedule day {day_key} for elder {elder_id} created concurrently")
            return False

    def _create_if_absent(
        self,
        elder_id: str,
        day_key: str,
        slot: DoseSlot,
        status: DoseStatus,
        now: datetime
    ) -> Optional[MissedItemRef]:
        """Insert one item unless it exists; returns a ref only if this call created it"""
        item = ScheduleItem(
            elder_id=elder_id,
            date_key=day_key,
            id=slot.item_id,
            medicine_id=slot.medicine_id,
            name=slot.name,
            type=slot.type,
            amount=slot.amount,
            time=slot.time,
            base_timestamp=slot.base_timestamp,
            status=status.value,
            missed_notified=False,
            created_at=now
        )
        ref = MissedItemRef.from_item(item)

        try:
            with get_db_context(self.session_factory) as session:
                if session.get(ScheduleItem, (elder_id, day_key, slot.item_id)) is not None:
                    return None
                if status == DoseStatus.MISSED:
                    # Born missed: the insert is the transition, so the log goes with it
                    item.missed_logged_at = now
                    self.marker.append_log(session, ref, now)
                session.add(item)
        except IntegrityError:
            logger.debug(f"Item {ref.item_path} created concurrently")
            return None

        if status == DoseStatus.MISSED:
            logger.info(f"Created item already missed: {ref.item_path} ({slot.name})")
        return ref

    def _close_previous_day(self, elder_id: str, day: date, now: datetime) -> List[MissedItemRef]:
        previous_key = date_key(day - timedelta(days=1))
        leftovers = [
            item for item in self.load_items(elder_id, previous_key)
            if item.status == DoseStatus.HASNT_ARRIVED.value
        ]

        flipped = []
        for item in leftovers:
            ref = MissedItemRef.from_item(item)
            if self.marker.mark_missed(ref, now):
                flipped.append(ref)

        if flipped:
            logger.info(f"Carried {len(flipped)} unarrived item(s) from {previous_key} into missed")
            self.feed.publish(
                items_topic(elder_id, previous_key), "updated", [r.item_id for r in flipped]
            )
        return flipped

    # ==================== STATUS SYNC ====================

    def refresh_statuses(
        self,
        elder_id: str,
        day: date,
        now: Optional[datetime] = None
    ) -> StatusSyncResult:
        """
        Re-evaluate a day's unresolved items against the clock.
        'missed' goes through the marker; other changes are conditional updates.
        """
        now = now or datetime.now(timezone.utc)
        day_key = date_key(day)
        result = StatusSyncResult(date_key=day_key)

        for item in self.load_items(elder_id, day_key, unresolved_only=True):
            new_status = status_at(item.base_timestamp, now)
            if new_status.value == item.status:
                continue

            if new_status == DoseStatus.MISSED:
                ref = MissedItemRef.from_item(item)
                if self.marker.mark_missed(ref, now):
                    result.newly_missed.append(ref)
                    result.changed.append(item.id)
            elif self._set_status(item, new_status):
                result.changed.append(item.id)

        if result.changed:
            self.feed.publish(items_topic(elder_id, day_key), "updated", result.changed)
        return result

    def _set_status(self, item: ScheduleItem, status: DoseStatus) -> bool:
        with get_db_context(self.session_factory) as session:
            outcome = session.execute(
                update(ScheduleItem)
                .where(
                    ScheduleItem.elder_id == item.elder_id,
                    ScheduleItem.date_key == item.date_key,
                    ScheduleItem.id == item.id,
                    ScheduleItem.status.notin_(TERMINAL_STATUSES)
                )
                .values(status=status.value)
                .execution_options(synchronize_session=False)
            )
        return outcome.rowcount == 1

    def sweep_recent_days(
        self,
        elder_id: str,
        today: date,
        now: Optional[datetime] = None,
        days: Optional[int] = None
    ) -> List[MissedItemRef]:
        """Mark missed any unresolved items past cutoff on the previous few days"""
        now = now or datetime.now(timezone.utc)
        days = settings.MISSED_SWEEP_DAYS if days is None else days

        flipped: List[MissedItemRef] = []
        for offset in range(1, days + 1):
            day_key = date_key(today - timedelta(days=offset))
            day_flipped = []
            for item in self.load_items(elder_id, day_key, unresolved_only=True):
                if item.base_timestamp is None or now < item.base_timestamp + SNOOZE_WINDOW:
                    continue
                ref = MissedItemRef.from_item(item)
                if self.marker.mark_missed(ref, now):
                    day_flipped.append(ref)

            if day_flipped:
                logger.info(f"Sweep marked {len(day_flipped)} item(s) missed on {day_key}")
                self.feed.publish(
                    items_topic(elder_id, day_key), "updated", [r.item_id for r in day_flipped]
                )
                flipped.extend(day_flipped)
        return flipped

    # ==================== QUERIES ====================

    def load_items(
        self,
        elder_id: str,
        day_key: str,
        unresolved_only: bool = False
    ) -> List[ScheduleItem]:
        """A day's items ordered by scheduled instant"""
        with get_db_context(self.session_factory) as session:
            query = select(ScheduleItem).where(
                ScheduleItem.elder_id == elder_id,
                ScheduleItem.date_key == day_key
            )
            if unresolved_only:
                query = query.where(ScheduleItem.status.notin_(TERMINAL_STATUSES))
            query = query.order_by(ScheduleItem.base_timestamp, ScheduleItem.id)
            return list(session.scalars(query).all())

    def pending_notifications(
        self,
        elder_id: str,
        today: date,
        days: Optional[int] = None
    ) -> List[MissedItemRef]:
        """
        Items a marker flipped whose caretaker alert has not gone out yet,
        from today and the previous few days.
        """
        days = settings.MISSED_SWEEP_DAYS if days is None else days
        keys = [date_key(today - timedelta(days=offset)) for offset in range(0, days + 1)]

        with get_db_context(self.session_factory) as session:
            items = session.scalars(
                select(ScheduleItem)
                .where(
                    ScheduleItem.elder_id == elder_id,
                    ScheduleItem.date_key.in_(keys),
                    ScheduleItem.status == DoseStatus.MISSED.value,
                    ScheduleItem.missed_logged_at.is_not(None),
                    ScheduleItem.missed_notified.is_(False)
                )
                .order_by(ScheduleItem.base_timestamp, ScheduleItem.id)
            ).all()
            return [MissedItemRef.from_item(item) for item in items]

    # ==================== CATALOG EDITS ====================

    @staticmethod
    def purge_in_session(
        session: Session,
        elder_id: str,
        medicine_id: str,
        unresolved_only: bool = True
    ) -> Dict[str, List[str]]:
        """
        Delete a medicine's items inside the caller's transaction.
        Returns the deleted item ids by day key so the caller can publish
        them once the transaction commits.
        """
        conditions = [
            ScheduleItem.elder_id == elder_id,
            ScheduleItem.medicine_id == medicine_id
        ]
        if unresolved_only:
            conditions.append(ScheduleItem.status.notin_(TERMINAL_STATUSES))

        doomed = session.execute(
            select(ScheduleItem.date_key, ScheduleItem.id).where(*conditions)
        ).all()
        if not doomed:
            return {}

        session.execute(
            delete(ScheduleItem)
            .where(*conditions)
            .execution_options(synchronize_session=False)
        )

        by_day: Dict[str, List[str]] = {}
        for day_key, item_id in doomed:
            by_day.setdefault(day_key, []).append(item_id)
        return by_day

    def publish_purged(self, elder_id: str, by_day: Dict[str, List[str]]):
        for day_key, ids in by_day.items():
            self.feed.publish(items_topic(elder_id, day_key), "deleted", ids)

    def purge_medicine_items(
        self,
        elder_id: str,
        medicine_id: str,
        unresolved_only: bool = True
    ) -> int:
        """
        Delete a medicine's schedule items so the next sync regenerates them.
        Taken and missed items are kept as history unless unresolved_only is False.
        """
        with get_db_context(self.session_factory) as session:
            by_day = self.purge_in_session(session, elder_id, medicine_id, unresolved_only)

        self.publish_purged(elder_id, by_day)
        count = sum(len(ids) for ids in by_day.values())
        if count:
            logger.info(f"Purged {count} item(s) of medicine {medicine_id} for elder {elder_id}")
        return count


# Singleton instance
schedule_generator = ScheduleGenerator()
