"""
Medicine Service
Business logic for an elder's medicine catalog
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
from sqlalchemy.orm import Session

from database import get_db_context
import models
from actions.schedule_generator import ScheduleGenerator, schedule_generator
from tools.change_feed import ChangeFeed, change_feed, medicine_topic
from tools.scheduler import dedupe_times, first_dose_instant, is_medicine_active_on, local_day, normalize_time


logger = logging.getLogger(__name__)

# Changing any of these invalidates generated items that are not yet resolved
SCHEDULE_FIELDS = {"name", "type", "amount", "times", "start_date", "end_date"}


def clean_times(times: Optional[List[str]]) -> List[str]:
    """
    Normalize a time-of-day list to unique 'HH:MM' strings.
    Raises ValueError on an unparsable entry or an empty list.
    """
    cleaned = dedupe_times(normalize_time(t) for t in dedupe_times(times))
    if not cleaned:
        raise ValueError("At least one dose time is required")
    return cleaned


def _check_period(start_date: Optional[date], end_date: Optional[date]):
    if start_date and end_date and start_date > end_date:
        raise ValueError("start_date must be on or before end_date")


class MedicineService:
    """
    Service for the caretaker-facing medicine catalog.

    Every committed change is published on the elder's medicine topic so the
    schedule coordinator regenerates the affected days.
    """

    def __init__(
        self,
        generator: Optional[ScheduleGenerator] = None,
        feed: Optional[ChangeFeed] = None
    ):
        self.generator = generator or schedule_generator
        self.feed = feed or change_feed

    async def create_medicine(
        self,
        elder_id: str,
        name: str,
        times: List[str],
        type: Optional[str] = None,
        amount: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> models.Medicine:
        """
        Add a medicine for an elder

        Args:
            elder_id: Elder ID
            name: Medicine name
            times: Dose times of day ('HH:MM')
            type: Form, e.g. tablet or syrup
            amount: Amount per dose, e.g. "1 tablet"
            start_date: First active day (inclusive)
            end_date: Last active day (inclusive)
            db: Database session

        Returns:
            Created Medicine object
        """
        cleaned = clean_times(times)
        _check_period(start_date, end_date)

        def _create(session: Session) -> models.Medicine:
            elder = session.get(models.Elder, elder_id)
            if not elder:
                raise ValueError(f"Elder {elder_id} not found")

            medicine = models.Medicine(
                elder_id=elder_id,
                name=name,
                type=type,
                amount=amount,
                times=cleaned,
                start_date=start_date,
                end_date=end_date,
                force_ended=False
            )
            session.add(medicine)
            session.commit()
            session.refresh(medicine)

            logger.info(f"Added medicine {name} ({medicine.id}) for elder {elder_id}")
            self.feed.publish(medicine_topic(elder_id), "created", [medicine.id])
            return medicine

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_medicine(
        self,
        medicine_id: str,
        db: Optional[Session] = None
    ) -> Optional[models.Medicine]:
        """Get medicine by ID"""
        def _get(session: Session) -> Optional[models.Medicine]:
            return session.get(models.Medicine, medicine_id)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def list_medicines(
        self,
        elder_id: str,
        active_on: Optional[date] = None,
        db: Optional[Session] = None
    ) -> List[models.Medicine]:
        """All medicines of an elder, optionally only those active on a day"""
        def _list(session: Session) -> List[models.Medicine]:
            medicines = session.query(models.Medicine).filter(
                models.Medicine.elder_id == elder_id
            ).order_by(models.Medicine.name, models.Medicine.id).all()

            if active_on is not None:
                medicines = [m for m in medicines if is_medicine_active_on(m, active_on)]
            return medicines

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    async def update_medicine(
        self,
        medicine_id: str,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> Optional[models.Medicine]:
        """
        Update a medicine.

        When a schedule field changes, the medicine's unresolved items are
        purged so they regenerate from the new definition; taken and missed
        items stay as history.
        """
        def _update(session: Session) -> Optional[models.Medicine]:
            medicine = session.get(models.Medicine, medicine_id)
            if not medicine:
                return None
            if medicine.force_ended:
                raise ValueError(f"Medicine {medicine_id} was force ended and cannot be edited")

            changes = {}
            for field, value in updates.items():
                if field not in SCHEDULE_FIELDS or value is None:
                    continue
                if field == "times":
                    value = clean_times(value)
                if getattr(medicine, field) != value:
                    changes[field] = value

            _check_period(
                changes.get("start_date", medicine.start_date),
                changes.get("end_date", medicine.end_date)
            )
            if not changes:
                return medicine

            for field, value in changes.items():
                setattr(medicine, field, value)
            medicine.updated_at = datetime.now(timezone.utc)

            purged = self.generator.purge_in_session(session, medicine.elder_id, medicine.id)
            session.commit()
            session.refresh(medicine)

            logger.info(f"Updated medicine {medicine_id}: {sorted(changes)}")
            self.generator.publish_purged(medicine.elder_id, purged)
            self.feed.publish(medicine_topic(medicine.elder_id), "updated", [medicine.id])
            return medicine

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    async def force_end_medicine(
        self,
        medicine_id: str,
        reason: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Optional[models.Medicine]:
        """
        Stop a medicine from today on.

        Args:
            medicine_id: Medicine ID
            reason: Why it is being ended (required)
            actor_id: Caretaker who ended it
            now: Current instant; today's date is taken in the schedule time zone
            db: Database session
        """
        if not reason or not reason.strip():
            raise ValueError("A reason is required to force end a medicine")
        now = now or datetime.now(timezone.utc)

        def _force_end(session: Session) -> Optional[models.Medicine]:
            medicine = session.get(models.Medicine, medicine_id)
            if not medicine:
                return None
            if medicine.force_ended:
                raise ValueError(f"Medicine {medicine_id} is already force ended")

            medicine.force_ended = True
            medicine.force_ended_at = now
            medicine.force_ended_reason = reason.strip()
            medicine.force_ended_by = actor_id
            medicine.end_date = local_day(now)
            medicine.updated_at = now

            purged = self.generator.purge_in_session(session, medicine.elder_id, medicine.id)
            session.commit()
            session.refresh(medicine)

            logger.info(f"Force ended medicine {medicine_id} by {actor_id}: {medicine.force_ended_reason}")
            self.generator.publish_purged(medicine.elder_id, purged)
            self.feed.publish(medicine_topic(medicine.elder_id), "updated", [medicine.id])
            return medicine

        if db:
            return _force_end(db)

        with get_db_context() as session:
            return _force_end(session)

    async def delete_medicine(
        self,
        medicine_id: str,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> bool:
        """
        Delete a medicine that has not reached its first dose yet.
        Once dosing has started the medicine must be force ended instead.
        """
        now = now or datetime.now(timezone.utc)

        def _delete(session: Session) -> bool:
            medicine = session.get(models.Medicine, medicine_id)
            if not medicine:
                return False

            if not medicine.start_date:
                raise ValueError(
                    f"Medicine {medicine_id} has no start date; force end it instead"
                )
            first_dose = first_dose_instant(medicine)
            if first_dose is None:
                raise ValueError(
                    f"Medicine {medicine_id} has no valid dose time; force end it instead"
                )
            if now >= first_dose:
                raise ValueError(
                    f"Medicine {medicine_id} has started dosing; force end it instead"
                )

            elder_id = medicine.elder_id
            purged = self.generator.purge_in_session(session, elder_id, medicine.id)
            session.delete(medicine)
            session.commit()

            logger.info(f"Deleted medicine {medicine_id} for elder {elder_id}")
            self.generator.publish_purged(elder_id, purged)
            self.feed.publish(medicine_topic(elder_id), "deleted", [medicine_id])
            return True

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)


# Singleton instance
medicine_service = MedicineService()
