# roomfinder_api/core/schedule.py
import logging
from datetime import datetime
from typing import List, Optional, Sequence

import pytz

from .constants import MIN_GAP_MINUTES
from ..models.models import CalendarEvent, ScheduleDerivation

log = logging.getLogger(__name__)


class ScheduleResolutionError(Exception):
    """Base exception for request-terminal scheduling and matching failures."""
    kind = "ScheduleResolution"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoCurrentContextError(ScheduleResolutionError):
    """No events today, or no current/previous/next class to anchor a gap."""
    kind = "NoCurrentContext"


class InsufficientGapError(ScheduleResolutionError):
    """The next class is less than the minimum gap away."""
    kind = "InsufficientGap"

    def __init__(self, message: str, gap_minutes: float):
        super().__init__(message)
        self.gap_minutes = gap_minutes


class UnresolvableLocationError(ScheduleResolutionError):
    """A free-text location could not be matched to a canonical location."""
    kind = "UnresolvableLocation"

    def __init__(self, message: str, location_text: str):
        super().__init__(message)
        self.location_text = location_text


def to_local(instant: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Naive instants are taken as wall time in `tz`; aware ones are converted to it."""
    if instant.tzinfo is None:
        return tz.localize(instant)
    return instant.astimezone(tz)


def _minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def _sort_key(event: CalendarEvent):
    # Full key so that shuffled input always yields the same order
    return (event.start, event.end, event.location, event.summary or "")


def events_on_local_date(events: Sequence[CalendarEvent], now: datetime, tz: pytz.BaseTzInfo) -> List[CalendarEvent]:
    today = to_local(now, tz).date()
    return [event for event in events if to_local(event.start, tz).date() == today]


def find_current_event(events: Sequence[CalendarEvent], now: datetime) -> Optional[CalendarEvent]:
    """First event (in sorted order) whose half-open interval [start, end) contains `now`."""
    for event in events:
        if event.start <= now < event.end:
            return event
    return None


def derive_schedule(
    events: Sequence[CalendarEvent],
    now: datetime,
    tz: pytz.BaseTzInfo,
    min_gap_minutes: int = MIN_GAP_MINUTES,
) -> ScheduleDerivation:
    """
    Finds the class the user is between at `now` and checks that the gap is usable.

    Only events starting on `now`'s local calendar date are considered.
    If an event's [start, end) contains `now`, it is the last class and the next
    class is the earliest event starting at or after its end; the gap runs from
    the current class's end and that end becomes the reference instant.
    Otherwise the last class is the one with the latest end <= now, the next
    class is the earliest one starting >= now, and the gap runs from `now`.
    A gap of exactly `min_gap_minutes` is accepted.

    Args:
        events: All parsed calendar events (any order).
        now: The reference instant. Naive values are wall time in `tz`.
        tz: The campus time zone that defines "today".
        min_gap_minutes: Smallest acceptable gap.

    Returns:
        A ScheduleDerivation.

    Raises:
        NoCurrentContextError: No events today, or no previous/next class.
        InsufficientGapError: The next class starts too soon.
    """
    now = to_local(now, tz)
    todays_events = sorted(events_on_local_date(events, now, tz), key=_sort_key)
    if not todays_events:
        raise NoCurrentContextError("No events found for today in the timetable file.")

    log.debug(f"Deriving schedule at {now.isoformat()} from {len(todays_events)} events today.")

    current = find_current_event(todays_events, now)
    if current is not None:
        next_event = next((event for event in todays_events if event.start >= current.end), None)
        if next_event is None:
            raise NoCurrentContextError("Could not find a class after your current class today.")

        gap = _minutes_between(current.end, next_event.start)
        if gap < min_gap_minutes:
            raise InsufficientGapError(
                "Your next class starts in less than an hour after your current class ends.", gap
            )
        log.info(f"Currently in '{current.summary}'; next class '{next_event.summary}' after a {gap:.0f} minute gap.")
        return ScheduleDerivation(
            last_event=current, next_event=next_event, reference_instant=current.end, gap_minutes=gap
        )

    past_events = [event for event in todays_events if event.end <= now]
    last_event = max(past_events, key=lambda event: event.end) if past_events else None
    next_event = next((event for event in todays_events if event.start >= now), None)
    if last_event is None or next_event is None:
        raise NoCurrentContextError("Could not find both a previous and upcoming class for today.")

    gap = _minutes_between(now, next_event.start)
    if gap < min_gap_minutes:
        raise InsufficientGapError(
            "Your next class starts in less than an hour, so no free hour is available.", gap
        )
    log.info(f"Between '{last_event.summary}' and '{next_event.summary}' with {gap:.0f} free minutes.")
    return ScheduleDerivation(last_event=last_event, next_event=next_event, reference_instant=now, gap_minutes=gap)
