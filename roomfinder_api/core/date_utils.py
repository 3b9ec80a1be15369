# roomfinder_api/core/date_utils.py
import logging
import re
from datetime import date, datetime, time
from functools import lru_cache
from typing import Dict, Optional, Union

import pytz

from .constants import DEFAULT_TIMEZONE, SLOT_MINUTES

log = logging.getLogger(__name__)

# Matches H:MM or HH:MM
_RE_CLOCK_TIME = re.compile(r"^(\d{1,2}):(\d{2})$")


@lru_cache(maxsize=32)
def get_timezone(name: str = DEFAULT_TIMEZONE) -> pytz.BaseTzInfo:
    """
    Looks up a time zone by name.

    Raises:
        ValueError: If the name is not a known time zone.
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Unknown time zone: {name}") from e


def iso_week_number(instant: Union[datetime, date]) -> int:
    """ISO 8601 week number, used as the timetable's 'weeks' parameter."""
    return instant.isocalendar()[1]


def weekday_name(instant: datetime) -> str:
    """English weekday name, e.g. 'Thursday'."""
    return instant.strftime("%A")


def floor_to_slot(value: Union[datetime, time, str], slot_minutes: int = SLOT_MINUTES) -> Optional[str]:
    """
    The 'HH:MM' token of the slot a time falls into: '09:05' -> '09:00',
    '14:31' -> '14:30' for 15-minute slots.

    Returns None for strings that are not H:MM / HH:MM or are out of range.
    """
    if isinstance(value, (datetime, time)):
        hour, minute = value.hour, value.minute
    else:
        match = _RE_CLOCK_TIME.match(str(value).strip())
        if not match:
            log.debug(f"Invalid time for slot flooring: '{value}'")
            return None
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            log.debug(f"Out of range time for slot flooring: '{value}'")
            return None
    slot_minute = (minute // slot_minutes) * slot_minutes
    return f"{hour:02d}:{slot_minute:02d}"


def current_hour_slot(instant: datetime) -> Dict[str, str]:
    """The whole-hour slot containing `instant`: {'start': '14:00', 'end': '15:00'}."""
    hour = instant.hour
    return {"start": f"{hour:02d}:00", "end": f"{(hour + 1) % 24:02d}:00"}


def slot_end(slot_start: str, slot_minutes: int = SLOT_MINUTES) -> str:
    hour, minute = (int(part) for part in slot_start.split(":"))
    total = (hour * 60 + minute + slot_minutes) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"
