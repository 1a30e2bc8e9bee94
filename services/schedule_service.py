"""
Schedule Service
Business logic for an elder's daily dose schedule
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, date, timezone
from sqlalchemy.orm import Session
from sqlalchemy import and_, update

from database import get_db_context
import models
from actions.countdown import CountdownProjection, project
from actions.dose_evaluator import SNOOZE_WINDOW, effective_items, evaluate, in_intake_window
from tools.change_feed import ChangeFeed, change_feed, items_topic
from tools.scheduler import date_key, local_day


logger = logging.getLogger(__name__)


def item_to_dict(item: models.ScheduleItem, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Serialize a schedule item; 'effective_status' is the status at `now`"""
    data = {
        "id": item.id,
        "elder_id": item.elder_id,
        "date_key": item.date_key,
        "medicine_id": item.medicine_id,
        "name": item.name,
        "type": item.type,
        "amount": item.amount,
        "time": item.time,
        "base_timestamp": item.base_timestamp,
        "status": item.status,
        "taken_at": item.taken_at,
        "missed_logged_at": item.missed_logged_at,
        "missed_notified": bool(item.missed_notified),
        "missed_notified_at": item.missed_notified_at,
    }
    if now is not None:
        data["effective_status"] = evaluate(item, now).value
    return data


class ScheduleService:
    """
    Service for reading the schedule and recording intake
    """

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or change_feed

    async def get_day_items(
        self,
        elder_id: str,
        day: date,
        db: Optional[Session] = None
    ) -> List[models.ScheduleItem]:
        """All items of one schedule day, earliest first"""
        def _get(session: Session) -> List[models.ScheduleItem]:
            return session.query(models.ScheduleItem).filter(
                and_(
                    models.ScheduleItem.elder_id == elder_id,
                    models.ScheduleItem.date_key == date_key(day)
                )
            ).order_by(
                models.ScheduleItem.base_timestamp,
                models.ScheduleItem.id
            ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_today_view(
        self,
        elder_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Today's schedule as the elder sees it

        Returns:
            Dictionary with every item, the deduplicated upcoming view
            (closest unresolved dose per medicine) and the countdown
        """
        now = now or datetime.now(timezone.utc)
        today = local_day(now)
        items = await self.get_day_items(elder_id, today, db)

        return {
            "elder_id": elder_id,
            "date_key": date_key(today),
            "items": [item_to_dict(item, now) for item in items],
            "upcoming": [
                {**item_to_dict(entry.item), "effective_status": entry.status.value}
                for entry in effective_items(items, now)
            ],
            "countdown": project(items, now).to_dict()
        }

    async def get_countdown(
        self,
        elder_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> CountdownProjection:
        """Countdown to the next unresolved dose group today"""
        now = now or datetime.now(timezone.utc)
        items = await self.get_day_items(elder_id, local_day(now), db)
        return project(items, now)

    async def confirm_intake(
        self,
        elder_id: str,
        base_timestamp: datetime,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[str]:
        """
        Record that the elder took every dose scheduled at base_timestamp.

        Only allowed inside the intake window [base, base + 30m). The items
        are looked up on the schedule day of base_timestamp, so a late-evening
        dose can still be confirmed after midnight. Items that are already
        taken or missed are left alone.

        Returns:
            IDs of the items marked taken

        Raises:
            ValueError: outside the window, or every matching dose is already resolved
            LookupError: no dose is scheduled at base_timestamp
        """
        now = now or datetime.now(timezone.utc)
        if base_timestamp.tzinfo is None:
            raise ValueError("base_timestamp must include a time zone")
        if not in_intake_window(base_timestamp, now):
            raise ValueError(
                f"Intake can only be confirmed between {base_timestamp.isoformat()} "
                f"and {(base_timestamp + SNOOZE_WINDOW).isoformat()}"
            )
        day_key = date_key(local_day(base_timestamp))

        def _confirm(session: Session) -> List[str]:
            candidates = session.query(
                models.ScheduleItem.id, models.ScheduleItem.status
            ).filter(
                and_(
                    models.ScheduleItem.elder_id == elder_id,
                    models.ScheduleItem.date_key == day_key,
                    models.ScheduleItem.base_timestamp == base_timestamp
                )
            ).all()
            if not candidates:
                raise LookupError(f"No dose scheduled at {base_timestamp.isoformat()}")

            taken = []
            for item_id, item_status in candidates:
                if item_status in models.TERMINAL_STATUSES:
                    continue
                result = session.execute(
                    update(models.ScheduleItem)
                    .where(
                        models.ScheduleItem.elder_id == elder_id,
                        models.ScheduleItem.date_key == day_key,
                        models.ScheduleItem.id == item_id,
                        models.ScheduleItem.status.notin_(models.TERMINAL_STATUSES)
                    )
                    .values(status=models.DoseStatus.TAKEN.value, taken_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    taken.append(item_id)
            session.commit()

            if not taken:
                raise ValueError(
                    f"Doses scheduled at {base_timestamp.isoformat()} are already recorded"
                )
            logger.info(f"Elder {elder_id} took {len(taken)} dose(s) scheduled at {base_timestamp.isoformat()}")
            self.feed.publish(items_topic(elder_id, day_key), "updated", taken)
            return taken

        if db:
            return _confirm(db)

        with get_db_context() as session:
            return _confirm(session)

    async def get_dose_history(
        self,
        elder_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        name: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
        db: Optional[Session] = None
    ) -> List[models.ScheduleItem]:
        """
        Dose intake history across days, newest first

        Args:
            elder_id: Elder ID
            start_date: First day to include
            end_date: Last day to include
            name: Case-insensitive substring of the medicine name
            type: Medicine type
            status: Dose status
            db: Database session
        """
        def _get(session: Session) -> List[models.ScheduleItem]:
            query = session.query(models.ScheduleItem).filter(
                models.ScheduleItem.elder_id == elder_id
            )
            if start_date:
                query = query.filter(models.ScheduleItem.date_key >= date_key(start_date))
            if end_date:
                query = query.filter(models.ScheduleItem.date_key <= date_key(end_date))
            if name:
                query = query.filter(models.ScheduleItem.name.ilike(f"%{name}%"))
            if type:
                query = query.filter(models.ScheduleItem.type == type)
            if status:
                query = query.filter(models.ScheduleItem.status == status)

            return query.order_by(
                models.ScheduleItem.base_timestamp.desc(),
                models.ScheduleItem.id
            ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_missed_dose_logs(
        self,
        elder_id: str,
        limit: int = 100,
        db: Optional[Session] = None
    ) -> List[models.MissedDoseLog]:
        """Missed-dose log entries, most recent first"""
        def _get(session: Session) -> List[models.MissedDoseLog]:
            return session.query(models.MissedDoseLog).filter(
                models.MissedDoseLog.elder_id == elder_id
            ).order_by(
                models.MissedDoseLog.missed_dose_time.desc()
            ).limit(limit).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
schedule_service = ScheduleService()
