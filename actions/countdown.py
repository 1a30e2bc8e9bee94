"""
Countdown Projector
Pure projection of the next dose group onto a countdown target
"""

from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from models import DoseStatus, TERMINAL_STATUSES
from actions.dose_evaluator import SNOOZE_WINDOW, evaluate


class CountdownMode(str, Enum):
    IDLE = "idle"
    PRE_DOSE = "pre-dose"
    INTAKE_WINDOW = "intake-window"


@dataclass
class CountdownProjection:
    """What a countdown display should show at a given instant"""
    mode: CountdownMode
    target: Optional[datetime] = None
    total_window_seconds: int = 0
    base_timestamp: Optional[datetime] = None
    item_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "target": self.target.isoformat() if self.target else None,
            "total_window_seconds": self.total_window_seconds,
            "base_timestamp": self.base_timestamp.isoformat() if self.base_timestamp else None,
            "item_ids": list(self.item_ids)
        }


def project(items: Sequence, now: datetime) -> CountdownProjection:
    """
    Project the nearest unresolved dose group.

    The group is every non-terminal, not-yet-missed item sharing the earliest
    base timestamp. Before that instant the countdown runs to it (pre-dose);
    afterwards it runs to the end of the intake window.
    """
    candidates = [
        item for item in items
        if item.status not in TERMINAL_STATUSES
        and item.base_timestamp is not None
        and evaluate(item, now) != DoseStatus.MISSED
    ]
    if not candidates:
        return CountdownProjection(mode=CountdownMode.IDLE)

    base = min(item.base_timestamp for item in candidates)
    group_ids = sorted(item.id for item in candidates if item.base_timestamp == base)

    if now < base:
        return CountdownProjection(
            mode=CountdownMode.PRE_DOSE,
            target=base,
            total_window_seconds=max(1, int((base - now).total_seconds())),
            base_timestamp=base,
            item_ids=group_ids
        )

    return CountdownProjection(
        mode=CountdownMode.INTAKE_WINDOW,
        target=base + SNOOZE_WINDOW,
        total_window_seconds=int(SNOOZE_WINDOW.total_seconds()),
        base_timestamp=base,
        item_ids=group_ids
    )


def remaining_seconds(projection: CountdownProjection, now: datetime) -> int:
    if projection.target is None:
        return 0
    return max(0, int((projection.target - now).total_seconds()))


def progress(projection: CountdownProjection, now: datetime) -> float:
    """Elapsed fraction of the window, clamped to [0, 1]"""
    if projection.mode == CountdownMode.IDLE or projection.total_window_seconds <= 0:
        return 0.0
    remaining = remaining_seconds(projection, now)
    elapsed = projection.total_window_seconds - remaining
    return min(1.0, max(0.0, elapsed / projection.total_window_seconds))
