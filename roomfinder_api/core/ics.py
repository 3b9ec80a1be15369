# roomfinder_api/core/ics.py
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Union

import pytz
from icalendar.parser import Contentline, Contentlines
from pydantic import ValidationError

from ..models.models import CalendarEvent

log = logging.getLogger(__name__)

# --- Regular Expressions for ICS Dates ---
# YYYYMMDDTHHMMSS, optionally suffixed with Z (UTC)
_RE_ICS_DATETIME = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")
# YYYYMMDD (all-day, local midnight)
_RE_ICS_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_RE_ESCAPED_NEWLINE = re.compile(r"\\[nN]|\r?\n")

_EVENT_FIELDS = ("DTSTART", "DTEND", "LOCATION", "SUMMARY")


def parse_ics_date(value: str, tz: pytz.BaseTzInfo) -> Optional[datetime]:
    """
    Parses an ICS date value into an aware datetime in `tz`.

    'YYYYMMDDTHHMMSSZ' is a UTC instant, 'YYYYMMDDTHHMMSS' a local wall time and
    'YYYYMMDD' local midnight. Anything else, including impossible calendar
    values, yields None.
    """
    clean = (value or "").strip()
    try:
        match = _RE_ICS_DATETIME.match(clean)
        if match:
            year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
            naive = datetime(year, month, day, hour, minute, second)
            if match.group(7) == "Z":
                return pytz.utc.localize(naive).astimezone(tz)
            return tz.localize(naive)

        match = _RE_ICS_DATE.match(clean)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return tz.localize(datetime(year, month, day))
    except ValueError as e:
        log.debug(f"ICS date '{clean}' matched the pattern but is not a valid date: {e}")
        return None

    log.debug(f"Unrecognized ICS date value: '{clean}'")
    return None


def unescape_location(value: str) -> str:
    """Undoes the ICS escapes that show up in LOCATION values ('\\,' and '\\n')."""
    return _RE_ESCAPED_NEWLINE.sub(" ", value.replace("\\,", ",")).strip()


def _unfolded_lines(ics_text: Union[str, bytes]) -> Contentlines:
    # Contentlines joins folded continuation lines (newline + space/tab) first
    return Contentlines.from_ical(ics_text)


def _split_line(line: Contentline):
    """(KEY, value) of a content line, or None for lines that cannot be split."""
    try:
        name, _params, value = line.parts()
    except ValueError as e:
        log.debug(f"Skipping malformed ICS line: {e}")
        return None
    return name.upper(), value


def _build_event(fields: Dict[str, str], tz: pytz.BaseTzInfo) -> Optional[CalendarEvent]:
    start = parse_ics_date(fields["DTSTART"], tz) if "DTSTART" in fields else None
    end = parse_ics_date(fields["DTEND"], tz) if "DTEND" in fields else None
    location = unescape_location(fields["LOCATION"]) if "LOCATION" in fields else ""

    if not start or not end or not location:
        log.debug(f"Dropping ICS event with missing start/end/location: {fields.get('SUMMARY')!r}")
        return None
    try:
        return CalendarEvent(start=start, end=end, location=location, summary=fields.get("SUMMARY"))
    except ValidationError as e:
        log.warning(f"Dropping ICS event that failed validation: {e}")
        return None


def parse_ics_events(ics_text: Union[str, bytes, None], tz: pytz.BaseTzInfo) -> List[CalendarEvent]:
    """
    Parses raw calendar text into discrete events.

    Folded lines are unfolded first. Each VEVENT body up to its END:VEVENT is
    read for DTSTART, DTEND, LOCATION and SUMMARY (parameters after ';' are
    ignored). Events missing a start, end or location are dropped, as are
    events without a closing END:VEVENT; one bad event never fails the file.
    Properties of components nested inside an event (e.g. VALARM) are ignored.

    Args:
        ics_text: The uploaded calendar text.
        tz: Time zone that naive and all-day values are interpreted in, and that
            UTC values are converted to.

    Returns:
        Unordered list of CalendarEvent.
    """
    if not ics_text:
        log.warning("parse_ics_events received empty calendar text.")
        return []

    try:
        lines = _unfolded_lines(ics_text)
    except ValueError as e:
        log.warning(f"Could not split calendar text into content lines: {e}")
        return []

    events: List[CalendarEvent] = []
    fields: Optional[Dict[str, str]] = None
    nested_depth = 0
    dropped = 0

    for line in lines:
        if not line:
            continue
        split = _split_line(line)
        if split is None:
            continue
        key, value = split
        marker = value.strip().upper()

        if key == "BEGIN" and marker == "VEVENT":
            if fields is not None:
                log.debug("VEVENT started before the previous one ended; discarding the unterminated event.")
                dropped += 1
            fields, nested_depth = {}, 0
        elif fields is None:
            continue
        elif key == "BEGIN":
            nested_depth += 1
        elif key == "END" and marker == "VEVENT" and nested_depth == 0:
            event = _build_event(fields, tz)
            if event:
                events.append(event)
            else:
                dropped += 1
            fields = None
        elif key == "END":
            nested_depth = max(0, nested_depth - 1)
        elif nested_depth == 0 and key in _EVENT_FIELDS:
            fields[key] = value.strip()

    if fields is not None:
        dropped += 1
    if dropped:
        log.warning(f"Dropped {dropped} incomplete or malformed calendar events.")
    log.info(f"Parsed {len(events)} events from calendar text.")
    return events
