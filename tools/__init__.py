"""
Tools Package
Schedule helpers, change feed, and outbound messaging for CareWatch
"""

from .scheduler import (
    DoseSlot,
    make_item_id,
    make_log_id,
    date_key,
    parse_date_key,
    local_day,
    parse_time_of_day,
    normalize_time,
    dedupe_times,
    base_timestamp,
    is_medicine_active_on,
    expand_medicine,
    first_dose_instant,
    schedule_timezone
)

from .change_feed import (
    ChangeEvent,
    ChangeFeed,
    Subscription,
    change_feed,
    medicine_topic,
    items_topic
)

from .notification_service import (
    NotificationChannel,
    NotificationType,
    NotificationResult,
    NotificationService,
    notification_service
)


__all__ = [
    # Scheduler
    "DoseSlot",
    "make_item_id",
    "make_log_id",
    "date_key",
    "parse_date_key",
    "local_day",
    "parse_time_of_day",
    "normalize_time",
    "dedupe_times",
    "base_timestamp",
    "is_medicine_active_on",
    "expand_medicine",
    "first_dose_instant",
    "schedule_timezone",

    # Change Feed
    "ChangeEvent",
    "ChangeFeed",
    "Subscription",
    "change_feed",
    "medicine_topic",
    "items_topic",

    # Notification Service
    "NotificationChannel",
    "NotificationType",
    "NotificationResult",
    "NotificationService",
    "notification_service",
]
