"""
Dose State Evaluator
Pure time-driven status rules for scheduled doses
"""

import logging
from typing import Dict, List, Optional, Sequence
from dataclasses import dataclass
from datetime import datetime

from config import schedule_config
from models import DoseStatus, TERMINAL_STATUSES


logger = logging.getLogger(__name__)

SNOOZE_WINDOW = schedule_config.SNOOZE_WINDOW


def status_at(base_timestamp: Optional[datetime], now: datetime) -> DoseStatus:
    """
    Status of an unresolved dose scheduled at base_timestamp.

        now < base                  -> hasnt_arrived
        base <= now < base + 30m    -> in_snooze_duration
        now >= base + 30m           -> missed
    """
    if base_timestamp is None:
        return DoseStatus.HASNT_ARRIVED
    if now < base_timestamp:
        return DoseStatus.HASNT_ARRIVED
    if now < base_timestamp + SNOOZE_WINDOW:
        return DoseStatus.IN_SNOOZE_DURATION
    return DoseStatus.MISSED


def evaluate(item, now: datetime) -> DoseStatus:
    """
    Current status of a schedule item.
    Terminal statuses (taken, missed) are returned unchanged.
    """
    if item.status in TERMINAL_STATUSES:
        return DoseStatus(item.status)
    return status_at(item.base_timestamp, now)


def cutoff(item) -> Optional[datetime]:
    """Instant after which an unresolved dose counts as missed"""
    if item.base_timestamp is None:
        return None
    return item.base_timestamp + SNOOZE_WINDOW


def in_intake_window(base_timestamp: datetime, now: datetime) -> bool:
    return base_timestamp <= now < base_timestamp + SNOOZE_WINDOW


@dataclass
class EffectiveItem:
    """A schedule item annotated with its status at evaluation time"""
    item: object
    status: DoseStatus

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def medicine_id(self) -> Optional[str]:
        return self.item.medicine_id

    @property
    def base_timestamp(self) -> Optional[datetime]:
        return self.item.base_timestamp


def effective_items(items: Sequence, now: datetime) -> List[EffectiveItem]:
    """
    Display view of a day's items.

    Terminal items pass through. Among unresolved items of the same medicine
    only the closest upcoming one (earliest base timestamp) is kept.
    Output is ordered by base timestamp.
    """
    resolved: List[EffectiveItem] = []
    closest: Dict[Optional[str], object] = {}

    for item in items:
        if item.status in TERMINAL_STATUSES:
            resolved.append(EffectiveItem(item=item, status=DoseStatus(item.status)))
            continue

        current = closest.get(item.medicine_id)
        if current is None or _sort_key(item) < _sort_key(current):
            closest[item.medicine_id] = item

    unresolved = [EffectiveItem(item=i, status=evaluate(i, now)) for i in closest.values()]
    return sorted(resolved + unresolved, key=lambda e: _sort_key(e.item))


def _sort_key(item):
    # Items without a base timestamp sort last
    base = item.base_timestamp
    return (base is None, base.timestamp() if base else 0.0, item.id)
