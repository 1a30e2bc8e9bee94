"""
Missed-Dose Marker
Transitions a dose to 'missed' exactly once and appends its log entry
"""

import logging
from typing import Callable, Optional
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db_context
from models import DoseStatus, MissedDoseLog, ScheduleItem, TERMINAL_STATUSES
from tools.scheduler import make_log_id


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MissedItemRef:
    """What the marker needs to flip an item and write its log entry"""
    elder_id: str
    date_key: str
    item_id: str
    medicine_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    amount: Optional[str] = None
    base_timestamp: Optional[datetime] = None

    @property
    def item_path(self) -> str:
        return f"elder/{self.elder_id}/scheduleDay/{self.date_key}/item/{self.item_id}"

    @classmethod
    def from_item(cls, item: ScheduleItem) -> "MissedItemRef":
        return cls(
            elder_id=item.elder_id,
            date_key=item.date_key,
            item_id=item.id,
            medicine_id=item.medicine_id,
            name=item.name,
            type=item.type,
            amount=item.amount,
            base_timestamp=item.base_timestamp
        )


class MissedDoseMarker:
    """
    Flips schedule items to 'missed'.

    The status write is a conditional UPDATE guarded on the item not being
    terminal, and the log entry is written in the same transaction. Of any
    number of concurrent callers for the same item, only the one whose
    UPDATE changed the row gets True.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory

    def mark_missed(self, ref: MissedItemRef, now: Optional[datetime] = None) -> bool:
        """
        Mark an item missed.

        Returns:
            True only if this call moved the item into 'missed'
        """
        now = now or datetime.now(timezone.utc)

        try:
            with get_db_context(self.session_factory) as session:
                result = session.execute(
                    update(ScheduleItem)
                    .where(
                        ScheduleItem.elder_id == ref.elder_id,
                        ScheduleItem.date_key == ref.date_key,
                        ScheduleItem.id == ref.item_id,
                        ScheduleItem.status.notin_(TERMINAL_STATUSES)
                    )
                    .values(status=DoseStatus.MISSED.value, missed_logged_at=now)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount != 1:
                    logger.debug(f"Item {ref.item_path} already resolved or absent; not marking")
                    return False

                self.append_log(session, ref, now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark {ref.item_path} missed: {e}")
            return False

        logger.info(f"Marked missed: {ref.item_path} ({ref.name})")
        return True

    @staticmethod
    def append_log(session: Session, ref: MissedItemRef, now: datetime) -> MissedDoseLog:
        """
        Write the missed-dose log entry inside the caller's transaction.
        The id is deterministic, so a repeated write upserts the same row.
        """
        return session.merge(MissedDoseLog(
            elder_id=ref.elder_id,
            id=make_log_id(ref.date_key, ref.item_id),
            medicine_id=ref.medicine_id,
            name=ref.name,
            type=ref.type,
            amount=ref.amount,
            missed_dose_time=ref.base_timestamp,
            logged_at=now,
            item_path=ref.item_path
        ))


# Singleton instance
missed_dose_marker = MissedDoseMarker()
