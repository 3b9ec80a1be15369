# roomfinder_api/core/service.py
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Union

import pytz

from .client import TimetableClientError
from .constants import (DEFAULT_MAX_CONCURRENT_FETCHES, SLOT_MINUTES,
                        UNREACHABLE_POLICY_CLOSED, UNREACHABLE_POLICY_OPEN)
from .date_utils import floor_to_slot, iso_week_number, slot_end, weekday_name
from .extractor import RoomTimetableExtractor
from .ics import parse_ics_events
from .locations import resolve_location
from .parsers import (DEFAULT_SOURCE_PROFILE, SourceProfile,
                      TimetableParserError, parse_room_schedule_html)
from .schedule import (NoCurrentContextError, ScheduleResolutionError,
                       derive_schedule, to_local)
from ..models.models import (CanonicalLocation, RoomAvailability,
                             ScheduleFailure, ScheduleResolution, TimeSlot)

log = logging.getLogger(__name__)


@dataclass
class RoomSchedule:
    """Booked slots of one room on one day, tagged with how far they can be trusted."""
    room_name: str
    status: str  # 'Confirmed' or 'Degraded'
    booked_slots: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        return self.status == "Confirmed"


@dataclass
class AvailabilityReport:
    """Open/closed verdicts for every room at one target slot."""
    week: int
    day: str
    slot: TimeSlot
    rooms: List[RoomAvailability] = field(default_factory=list)

    @property
    def open_rooms(self) -> List[RoomAvailability]:
        return [room for room in self.rooms if room.is_open]

    @property
    def degraded_count(self) -> int:
        return sum(1 for room in self.rooms if not room.confirmed)


# --- Per-room Schedule ---

async def fetch_room_schedule(
    extractor: RoomTimetableExtractor,
    room_name: str,
    week: int,
    day: str,
    profile: SourceProfile = DEFAULT_SOURCE_PROFILE,
) -> RoomSchedule:
    """
    Fetches and parses one room's booked slots for a day.

    Never raises: fetch failures and unreadable pages come back as a Degraded
    RoomSchedule with the reason recorded.
    """
    try:
        html_content = await extractor.fetch_room_html(room_name, week)
        parse_result = parse_room_schedule_html(html_content, day, profile)
    except TimetableClientError as e:
        log.warning(f"Service: Could not fetch timetable for '{room_name}': {e}")
        return RoomSchedule(room_name=room_name, status="Degraded", reason=f"SourceUnavailable: {e}")
    except TimetableParserError as e:
        log.warning(f"Service: Empty timetable page for '{room_name}': {e}")
        return RoomSchedule(room_name=room_name, status="Degraded", reason=f"MalformedSource: {e}")
    except Exception as e:
        log.exception(f"Service: Unexpected error reading timetable for '{room_name}': {e}")
        return RoomSchedule(room_name=room_name, status="Degraded", reason=f"UnexpectedError: {e}")

    if not parse_result.ok:
        return RoomSchedule(
            room_name=room_name,
            status="Degraded",
            reason=f"MalformedSource: {parse_result.error_message}",
            warnings=parse_result.warnings,
        )
    return RoomSchedule(
        room_name=room_name,
        status="Confirmed",
        booked_slots=parse_result.booked_slots,
        warnings=parse_result.warnings,
    )


async def get_room_schedule(
    extractor: RoomTimetableExtractor,
    room_name: str,
    week: int,
    day: str,
    profile: SourceProfile = DEFAULT_SOURCE_PROFILE,
) -> List[str]:
    """Booked 'HH:MM' slots of a room on a day; empty on any failure."""
    schedule = await fetch_room_schedule(extractor, room_name, week, day, profile)
    return schedule.booked_slots


async def gather_room_schedules(
    extractor: RoomTimetableExtractor,
    room_names: Sequence[str],
    week: int,
    day: str,
    profile: SourceProfile = DEFAULT_SOURCE_PROFILE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENT_FETCHES,
) -> List[RoomSchedule]:
    """
    Fetches every room's schedule concurrently and returns them in input order.
    A failing room is reported as Degraded and never aborts the batch.
    """
    if not room_names:
        log.warning("No rooms requested for schedule fan-out.")
        return []

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def fetch_one(room_name: str) -> RoomSchedule:
        async with semaphore:
            return await fetch_room_schedule(extractor, room_name, week, day, profile)

    log.info(f"Fetching schedules for {len(room_names)} rooms (week {week}, {day}).")
    tasks = [asyncio.create_task(fetch_one(name)) for name in room_names]
    # return_exceptions=True so one bad task cannot cancel its siblings
    results = await asyncio.gather(*tasks, return_exceptions=True)

    schedules: List[RoomSchedule] = []
    degraded_reasons = defaultdict(list)
    for room_name, result in zip(room_names, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            log.error(f"Task for room '{room_name}' failed with {type(result).__name__}: {result}", exc_info=result)
            result = RoomSchedule(room_name=room_name, status="Degraded", reason=f"UnexpectedError: {result}")
        if not result.confirmed:
            degraded_reasons[(result.reason or "unknown").split(":")[0]].append(room_name)
        schedules.append(result)

    confirmed = sum(1 for schedule in schedules if schedule.confirmed)
    log.info(f"Schedule fan-out summary: Requested={len(room_names)}, Confirmed={confirmed}, Degraded={len(room_names) - confirmed}")
    for reason, rooms in degraded_reasons.items():
        log.warning(f"  - Degraded ({reason}): {len(rooms)} rooms, e.g. {rooms[:5]}")
    return schedules


# --- Availability ---

def is_slot_open(booked_slots: Iterable[str], target_slot_start: str) -> bool:
    """A room is open at a slot iff the slot's start token is not booked."""
    return target_slot_start not in set(booked_slots)


def room_availability(
    location: CanonicalLocation,
    schedule: RoomSchedule,
    target_slot_start: str,
    unreachable_policy: str = UNREACHABLE_POLICY_OPEN,
) -> RoomAvailability:
    """
    Verdict for one room. A Degraded schedule carries no bookings, so its verdict
    comes from `unreachable_policy` ('open' or 'closed') and is marked unconfirmed.
    """
    if schedule.confirmed:
        return RoomAvailability(
            location=location,
            is_open=is_slot_open(schedule.booked_slots, target_slot_start),
            confirmed=True,
            booked_slots=schedule.booked_slots,
        )
    if unreachable_policy not in (UNREACHABLE_POLICY_OPEN, UNREACHABLE_POLICY_CLOSED):
        raise ValueError(f"Unknown unreachable-room policy: {unreachable_policy}")
    return RoomAvailability(
        location=location,
        is_open=unreachable_policy == UNREACHABLE_POLICY_OPEN,
        confirmed=False,
        reason=schedule.reason,
    )


async def find_open_rooms(
    extractor: RoomTimetableExtractor,
    locations: Sequence[CanonicalLocation],
    instant: datetime,
    tz: pytz.BaseTzInfo,
    unreachable_policy: str = UNREACHABLE_POLICY_OPEN,
    profile: SourceProfile = DEFAULT_SOURCE_PROFILE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENT_FETCHES,
) -> AvailabilityReport:
    """
    Open/closed verdict of every location at the 15-minute slot containing `instant`.

    Week number and weekday come from `instant` in the campus time zone; all
    room timetables are fetched concurrently.
    """
    local = to_local(instant, tz)
    week = iso_week_number(local)
    day = weekday_name(local)
    slot_start = floor_to_slot(local)
    slot = TimeSlot(start=slot_start, end=slot_end(slot_start, SLOT_MINUTES))

    schedules = await gather_room_schedules(
        extractor, [loc.name for loc in locations], week, day, profile, max_concurrency
    )
    rooms = [
        room_availability(location, schedule, slot.start, unreachable_policy)
        for location, schedule in zip(locations, schedules)
    ]
    report = AvailabilityReport(week=week, day=day, slot=slot, rooms=rooms)
    log.info(f"Availability at {day} {slot.start} (week {week}): {len(report.open_rooms)}/{len(rooms)} open, {report.degraded_count} unconfirmed.")
    return report


# --- ICS Ingestion ---

def get_schedule_from_ics(
    ics_text: Union[str, bytes, None],
    now: datetime,
    locations: Sequence[CanonicalLocation],
    index: Mapping[str, CanonicalLocation],
    tz: pytz.BaseTzInfo,
) -> Union[ScheduleResolution, ScheduleFailure]:
    """
    Resolves an uploaded calendar into the last/next class locations around `now`.

    Args:
        ics_text: Raw calendar export.
        now: Reference instant.
        locations: Canonical location set.
        index: Location index built from `locations`.
        tz: Campus time zone.

    Returns:
        A ScheduleResolution, or a ScheduleFailure carrying one unambiguous message.
    """
    try:
        events = parse_ics_events(ics_text, tz)
        if not events:
            raise NoCurrentContextError("No events could be parsed from the uploaded timetable file.")

        derived = derive_schedule(events, now, tz)
        last_location = resolve_location(derived.last_event.location, "last", locations, index)
        next_location = resolve_location(derived.next_event.location, "next", locations, index)
    except ScheduleResolutionError as e:
        log.info(f"Service: Schedule resolution failed ({e.kind}): {e.message}")
        return ScheduleFailure(error=e.message, kind=e.kind)

    log.info(f"Service: Resolved '{last_location.name}' -> '{next_location.name}' at {derived.reference_instant.isoformat()}.")
    return ScheduleResolution(
        last_location=last_location,
        next_location=next_location,
        last_event=derived.last_event,
        next_event=derived.next_event,
        reference_instant=derived.reference_instant,
    )
