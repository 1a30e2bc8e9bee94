"""
Schedule Helpers
Turns a medicine's recurring time-of-day template into dated dose slots
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, date, time, tzinfo
from zoneinfo import ZoneInfo

from config import settings, schedule_config


logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_\-|]")


@dataclass(frozen=True)
class DoseSlot:
    """A single dose of a medicine on a given day, before it is persisted"""
    item_id: str
    medicine_id: str
    name: Optional[str]
    type: Optional[str]
    amount: Optional[str]
    time: str
    base_timestamp: datetime


def schedule_timezone() -> tzinfo:
    """Zone every base timestamp is computed in"""
    return ZoneInfo(settings.SCHEDULE_TIMEZONE)


def make_item_id(medicine_id: Optional[str], time_str: Optional[str]) -> str:
    """
    Deterministic schedule item id for a (medicine, time) pair.

    Regenerating a day's schedule always yields the same id for the same
    pair, so a create-if-absent write can never duplicate a dose.
    """
    if medicine_id is None:
        medicine_id = "mednull"
    if time_str is None:
        time_str = "tnull"
    raw = f"{medicine_id}|{time_str.replace(':', '-')}"
    return _UNSAFE_ID_CHARS.sub("_", raw)


def make_log_id(date_key: str, item_id: str) -> str:
    """Deterministic missed-dose log id; the date keeps ids unique across days"""
    return f"{date_key}|{item_id}"


def date_key(day: date) -> str:
    return day.strftime(schedule_config.DATE_KEY_FORMAT)


def parse_date_key(key: str) -> date:
    return datetime.strptime(key, schedule_config.DATE_KEY_FORMAT).date()


def local_day(now: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of an aware instant in the schedule zone"""
    return now.astimezone(tz or schedule_timezone()).date()


def parse_time_of_day(value) -> time:
    """
    Parse a time-of-day value.

    Accepts a time object or a string like 'HH:MM' or 'HH:MM:SS'.
    Raises ValueError if it cannot be converted.
    """
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        for fmt in schedule_config.TIME_FORMATS:
            try:
                return datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue
    raise ValueError(f"Cannot parse time of day: {value!r}")


def normalize_time(value) -> str:
    """Canonical 'HH:MM' form"""
    return parse_time_of_day(value).strftime("%H:%M")


def dedupe_times(times: Optional[Iterable[str]]) -> List[str]:
    """Drop empty entries and repeats, keeping first-seen order"""
    if not times:
        return []
    seen = []
    for t in times:
        if t is None:
            continue
        t = str(t).strip()
        if t and t not in seen:
            seen.append(t)
    return seen


def base_timestamp(day: date, time_str: str, tz: Optional[tzinfo] = None) -> datetime:
    """Exact scheduled instant of a dose: calendar date + time in the schedule zone"""
    return datetime.combine(day, parse_time_of_day(time_str), tzinfo=tz or schedule_timezone())


def active_period_is_valid(medicine) -> bool:
    start, end = medicine.start_date, medicine.end_date
    return not (start and end and start > end)


def is_medicine_active_on(medicine, day: date) -> bool:
    """
    Whether a medicine generates doses on a day.
    Missing bounds are open; force-ended medicines never generate.
    """
    if getattr(medicine, "force_ended", False):
        return False
    if medicine.start_date and day < medicine.start_date:
        return False
    if medicine.end_date and day > medicine.end_date:
        return False
    return True


def expand_medicine(
    medicine,
    day: date,
    tz: Optional[tzinfo] = None
) -> Tuple[List[DoseSlot], List[str]]:
    """
    Dose slots a medicine contributes to a day.

    Returns (slots, skipped_times). Unparsable times are skipped, not raised,
    so one bad entry never blocks the rest of the catalog.
    """
    if not active_period_is_valid(medicine):
        logger.warning(
            f"Skipping medicine {medicine.id}: start {medicine.start_date} after end {medicine.end_date}"
        )
        return [], list(medicine.times or [])

    if not is_medicine_active_on(medicine, day):
        return [], []

    slots: List[DoseSlot] = []
    skipped: List[str] = []
    seen = set()
    for raw in dedupe_times(medicine.times):
        # '8:00' and '08:00:00' are the same slot
        try:
            t = normalize_time(raw)
        except ValueError:
            logger.warning(f"Skipping unparsable time {raw!r} on medicine {medicine.id}")
            skipped.append(raw)
            continue
        if t in seen:
            continue
        seen.add(t)
        base = base_timestamp(day, t, tz)

        slots.append(DoseSlot(
            item_id=make_item_id(medicine.id, t),
            medicine_id=medicine.id,
            name=medicine.name,
            type=medicine.type,
            amount=medicine.amount,
            time=t,
            base_timestamp=base
        ))

    return slots, skipped


def first_dose_instant(medicine, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Earliest scheduled instant of a medicine, if it has a start date and a valid time"""
    if not medicine.start_date:
        return None
    parsed = []
    for t in dedupe_times(medicine.times):
        try:
            parsed.append(parse_time_of_day(t))
        except ValueError:
            continue
    if not parsed:
        return None
    return datetime.combine(medicine.start_date, min(parsed), tzinfo=tz or schedule_timezone())
