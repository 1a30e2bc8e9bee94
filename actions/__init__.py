"""
Actions Module
Engines for the dose schedule: evaluation, generation, missed-dose marking,
caretaker notification, coordination, and countdown projection
"""

from .dose_evaluator import (
    SNOOZE_WINDOW,
    EffectiveItem,
    evaluate,
    status_at,
    effective_items,
    in_intake_window
)

from .missed_dose_marker import (
    MissedItemRef,
    MissedDoseMarker,
    missed_dose_marker
)

from .schedule_generator import (
    SyncResult,
    StatusSyncResult,
    ScheduleGenerator,
    schedule_generator
)

from .missed_dose_notifier import (
    NotifyOutcome,
    MissedDoseNotifier,
    group_by_scheduled_time,
    missed_dose_notifier
)

from .countdown import (
    CountdownMode,
    CountdownProjection,
    project,
    remaining_seconds,
    progress
)

from .schedule_coordinator import (
    TriggerSource,
    PassReport,
    ElderLane,
    ScheduleCoordinator,
    schedule_coordinator
)


__all__ = [
    # Dose Evaluator
    "SNOOZE_WINDOW",
    "EffectiveItem",
    "evaluate",
    "status_at",
    "effective_items",
    "in_intake_window",

    # Missed-Dose Marker
    "MissedItemRef",
    "MissedDoseMarker",
    "missed_dose_marker",

    # Schedule Generator
    "SyncResult",
    "StatusSyncResult",
    "ScheduleGenerator",
    "schedule_generator",

    # Missed-Dose Notifier
    "NotifyOutcome",
    "MissedDoseNotifier",
    "group_by_scheduled_time",
    "missed_dose_notifier",

    # Countdown
    "CountdownMode",
    "CountdownProjection",
    "project",
    "remaining_seconds",
    "progress",

    # Schedule Coordinator
    "TriggerSource",
    "PassReport",
    "ElderLane",
    "ScheduleCoordinator",
    "schedule_coordinator",
]
