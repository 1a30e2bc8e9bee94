"""
Missed-Dose Notifier
Groups newly missed doses and alerts every caretaker of the elder once
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import schedule_config
from database import get_db_context
from models import Caretaker, DoseStatus, Elder, Notification, ScheduleItem
from tools.notification_service import (
    GroupedItems,
    NotificationChannel,
    NotificationService,
    format_inline_groups,
    notification_service,
)
from tools.scheduler import schedule_timezone
from actions.missed_dose_marker import MissedItemRef


logger = logging.getLogger(__name__)


@dataclass
class NotifyOutcome:
    """What one notify() call did"""
    elder_id: str
    notified_item_ids: List[str] = field(default_factory=list)
    caretaker_ids: List[str] = field(default_factory=list)
    alerts_sent: int = 0
    alerts_failed: int = 0
    records_written: int = 0
    skipped_reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return bool(self.notified_item_ids)

    def to_dict(self) -> Dict:
        return {
            "elder_id": self.elder_id,
            "notified_item_ids": list(self.notified_item_ids),
            "caretaker_ids": list(self.caretaker_ids),
            "alerts_sent": self.alerts_sent,
            "alerts_failed": self.alerts_failed,
            "records_written": self.records_written,
            "skipped_reason": self.skipped_reason
        }


def describe_item(item) -> str:
    name = item.name or "Medicine"
    return f"{name} - {item.amount}" if item.amount else name


def resolve_caretakers(session: Session, elder_id: str) -> Tuple[Optional[Elder], List[Caretaker]]:
    """
    Caretakers to alert for an elder.

    The primary link is the caretaker record pointing at the elder. The
    elder's own caretaker list is only consulted when no caretaker points
    at the elder.
    """
    elder = session.get(Elder, elder_id)
    caretakers = session.scalars(
        select(Caretaker).where(Caretaker.elder_id == elder_id).order_by(Caretaker.id)
    ).all()
    if not caretakers and elder is not None and elder.caretaker_ids:
        caretakers = session.scalars(
            select(Caretaker).where(Caretaker.id.in_(list(elder.caretaker_ids))).order_by(Caretaker.id)
        ).all()
    return elder, list(caretakers)


def group_by_scheduled_time(items: Sequence, tz=None) -> GroupedItems:
    """
    Group items by exact scheduled instant, earliest first.
    Labels are 'YYYY-MM-DD HH:MM' in the schedule time zone.
    """
    tz = tz or schedule_timezone()
    ordered = sorted(items, key=lambda i: (i.base_timestamp, i.id))
    grouped: GroupedItems = {}
    for item in ordered:
        label = item.base_timestamp.astimezone(tz).strftime(schedule_config.GROUP_LABEL_FORMAT)
        grouped.setdefault(label, []).append(describe_item(item))
    return grouped


class MissedDoseNotifier:
    """
    Sends grouped missed-dose alerts.

    Items are re-read before sending so a dose already notified by an earlier
    pass is never alerted twice. Flags are set only after at least one
    caretaker alert went out; a pass where every delivery failed leaves the
    items pending for the next pass.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        messenger: Optional[NotificationService] = None
    ):
        self.session_factory = session_factory
        self.messenger = messenger or notification_service
        self._warned_no_caretaker: Set[str] = set()

    def notify(
        self,
        elder_id: str,
        refs: Sequence[MissedItemRef],
        now: Optional[datetime] = None
    ) -> NotifyOutcome:
        """
        Alert the elder's caretakers about the given missed items.

        Args:
            elder_id: Elder whose items are being reported
            refs: Items a marker flipped (duplicates are ignored)
            now: Clock used for notification timestamps
        """
        now = now or datetime.now(timezone.utc)
        outcome = NotifyOutcome(elder_id=elder_id)
        if not refs:
            return outcome

        items = self._reload_unnotified(elder_id, refs)
        if not items:
            outcome.skipped_reason = "nothing_to_notify"
            return outcome

        elder, caretakers = self._resolve_caretakers(elder_id)
        if not caretakers:
            if elder_id not in self._warned_no_caretaker:
                logger.warning(f"No caretaker linked to elder {elder_id}; {len(items)} missed dose(s) not notified")
                self._warned_no_caretaker.add(elder_id)
            outcome.skipped_reason = "no_caretaker"
            return outcome
        self._warned_no_caretaker.discard(elder_id)

        elder_label = elder.label if elder else elder_id
        grouped = group_by_scheduled_time(items)
        outcome.caretaker_ids = [c.id for c in caretakers]

        for caretaker in caretakers:
            if caretaker.email:
                results = self.messenger.send_grouped_alert([caretaker.email], elder_label, grouped)
            elif caretaker.phone:
                results = self.messenger.send_grouped_alert(
                    [caretaker.phone], elder_label, grouped, channel=NotificationChannel.SMS
                )
            else:
                continue
            for result in results:
                if result.success:
                    outcome.alerts_sent += 1
                else:
                    outcome.alerts_failed += 1

        if outcome.alerts_sent == 0 and outcome.alerts_failed > 0:
            logger.error(
                f"All alert deliveries failed for elder {elder_id}; {len(items)} item(s) left pending"
            )
            outcome.skipped_reason = "delivery_failed"
            return outcome

        message = f"Elder {elder_label} missed dose(s): {format_inline_groups(grouped)}"
        outcome.records_written = self._write_records(elder_id, caretakers, message, now)
        outcome.notified_item_ids = self._flag_notified(items, now)

        logger.info(
            f"Notified {len(caretakers)} caretaker(s) of elder {elder_id} about "
            f"{len(outcome.notified_item_ids)} missed dose(s)"
        )
        return outcome

    def _reload_unnotified(self, elder_id: str, refs: Sequence[MissedItemRef]) -> List[ScheduleItem]:
        seen = set()
        items = []
        with get_db_context(self.session_factory) as session:
            for ref in refs:
                key = (ref.date_key, ref.item_id)
                if key in seen:
                    continue
                seen.add(key)
                item = session.get(ScheduleItem, (elder_id, ref.date_key, ref.item_id))
                if item is None:
                    continue
                if item.status != DoseStatus.MISSED.value or item.missed_notified:
                    continue
                items.append(item)
        return items

    def _resolve_caretakers(self, elder_id: str):
        with get_db_context(self.session_factory) as session:
            return resolve_caretakers(session, elder_id)

    def _write_records(
        self,
        elder_id: str,
        caretakers: Sequence[Caretaker],
        message: str,
        now: datetime
    ) -> int:
        try:
            with get_db_context(self.session_factory) as session:
                for caretaker in caretakers:
                    session.add(Notification(
                        elder_id=elder_id,
                        caretaker_id=caretaker.id,
                        type=schedule_config.NOTIFICATION_TYPE_MISSED_DOSE,
                        message=message,
                        timestamp=now,
                        read=False
                    ))
            return len(caretakers)
        except SQLAlchemyError as e:
            logger.error(f"Failed to write notification records for elder {elder_id}: {e}")
            return 0

    def _flag_notified(self, items: Sequence[ScheduleItem], now: datetime) -> List[str]:
        flagged = []
        for item in items:
            try:
                with get_db_context(self.session_factory) as session:
                    session.execute(
                        update(ScheduleItem)
                        .where(
                            ScheduleItem.elder_id == item.elder_id,
                            ScheduleItem.date_key == item.date_key,
                            ScheduleItem.id == item.id
                        )
                        .values(missed_notified=True, missed_notified_at=now)
                        .execution_options(synchronize_session=False)
                    )
                flagged.append(item.id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to flag {item.path} as notified: {e}")
        return flagged


# Singleton instance
missed_dose_notifier = MissedDoseNotifier()
