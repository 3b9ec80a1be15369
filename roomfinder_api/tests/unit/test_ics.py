from datetime import datetime

import pytest
import pytz

from roomfinder_api.core.ics import (parse_ics_date, parse_ics_events,
                                     unescape_location)


def make_ics(*event_bodies: str) -> str:
    """Joins VEVENT bodies into a calendar with CRLF line endings."""
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Timetable//EN"]
    for body in event_bodies:
        lines.append("BEGIN:VEVENT")
        lines.extend(body.strip().splitlines())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


LECTURE = """
DTSTART:20240812T080000
DTEND:20240812T085000
SUMMARY:CS 144 Lecture
LOCATION:Jan Mouton (El.Class)_1013
"""

TUTORIAL = """
DTSTART:20240812T110000
DTEND:20240812T115000
SUMMARY:Math 114 Tutorial
LOCATION:Van der Sterr_1003
"""


def test_parse_ics_events_basic(tz):
    events = parse_ics_events(make_ics(LECTURE, TUTORIAL), tz)
    assert len(events) == 2
    lecture = next(e for e in events if e.summary == "CS 144 Lecture")
    assert lecture.start == tz.localize(datetime(2024, 8, 12, 8, 0))
    assert lecture.end == tz.localize(datetime(2024, 8, 12, 8, 50))
    assert lecture.location == "Jan Mouton (El.Class)_1013"


def test_parse_ics_events_unfolds_continuation_lines(tz):
    folded = """
DTSTART:20240812T080000
DTEND:20240812T085000
SUMMARY:Folded
LOCATION:Arts and Social
  Sciences_225
"""
    events = parse_ics_events(make_ics(folded), tz)
    assert [e.location for e in events] == ["Arts and Social Sciences_225"]


def test_parse_ics_events_ignores_parameters_and_unescapes(tz):
    body = """
DTSTART;TZID=Africa/Johannesburg:20240812T140000
DTEND;TZID=Africa/Johannesburg:20240812T145000
SUMMARY;LANGUAGE=en:Practical
LOCATION:Merensky 2002\\, Lab B
"""
    (event,) = parse_ics_events(make_ics(body), tz)
    assert event.start == tz.localize(datetime(2024, 8, 12, 14, 0))
    assert event.summary == "Practical"
    assert event.location == "Merensky 2002, Lab B"


def test_parse_ics_events_utc_values_are_converted(tz):
    body = """
DTSTART:20240812T060000Z
DTEND:20240812T065000Z
LOCATION:Jan Mouton_1013
"""
    (event,) = parse_ics_events(make_ics(body), tz)
    local = event.start.astimezone(tz)
    assert (local.hour, local.minute) == (8, 0)
    assert event.start == pytz.utc.localize(datetime(2024, 8, 12, 6, 0))


def test_parse_ics_events_all_day_is_local_midnight(tz):
    body = """
DTSTART;VALUE=DATE:20240812
DTEND;VALUE=DATE:20240813
LOCATION:Merensky
"""
    (event,) = parse_ics_events(make_ics(body), tz)
    assert event.start == tz.localize(datetime(2024, 8, 12))
    assert event.end == tz.localize(datetime(2024, 8, 13))


def test_parse_ics_events_drops_incomplete_events_only(tz):
    """A malformed event is dropped without affecting its neighbours."""
    bad_date = """
DTSTART:2024-08-12 08:00
DTEND:20240812T085000
LOCATION:Jan Mouton
"""
    no_location = """
DTSTART:20240812T090000
DTEND:20240812T095000
SUMMARY:Nowhere
"""
    no_end = """
DTSTART:20240812T100000
LOCATION:Merensky
"""
    events = parse_ics_events(make_ics(LECTURE, bad_date, no_location, no_end, TUTORIAL), tz)
    assert sorted(e.summary for e in events) == ["CS 144 Lecture", "Math 114 Tutorial"]


def test_parse_ics_events_unterminated_event_is_dropped(tz):
    text = make_ics(LECTURE) + "BEGIN:VEVENT\r\nDTSTART:20240812T120000\r\nDTEND:20240812T125000\r\nLOCATION:Merensky\r\n"
    events = parse_ics_events(text, tz)
    assert [e.summary for e in events] == ["CS 144 Lecture"]


def test_parse_ics_events_ignores_nested_alarm_properties(tz):
    body = """
DTSTART:20240812T080000
DTEND:20240812T085000
LOCATION:Jan Mouton_1013
BEGIN:VALARM
TRIGGER:-PT15M
LOCATION:Somewhere Else
DTEND:20240812T235900
END:VALARM
SUMMARY:With alarm
"""
    (event,) = parse_ics_events(make_ics(body), tz)
    assert event.location == "Jan Mouton_1013"
    assert event.end == tz.localize(datetime(2024, 8, 12, 8, 50))
    assert event.summary == "With alarm"


def test_parse_ics_events_skips_unsplittable_lines(tz):
    text = make_ics(LECTURE).replace("SUMMARY:CS 144 Lecture", "this line has no colon")
    (event,) = parse_ics_events(text, tz)
    assert event.summary is None
    assert event.location == "Jan Mouton (El.Class)_1013"


def test_parse_ics_events_accepts_lf_line_endings(tz):
    text = make_ics(LECTURE).replace("\r\n", "\n")
    assert len(parse_ics_events(text, tz)) == 1


@pytest.mark.parametrize("text", [None, "", "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"])
def test_parse_ics_events_empty(tz, text):
    assert parse_ics_events(text, tz) == []


@pytest.mark.parametrize("value, expected", [
    ("20240812T080000", (2024, 8, 12, 8, 0)),
    ("20240812", (2024, 8, 12, 0, 0)),
    (" 20240812T235900 ", (2024, 8, 12, 23, 59)),
])
def test_parse_ics_date_local(tz, value, expected):
    parsed = parse_ics_date(value, tz)
    assert parsed == tz.localize(datetime(*expected))


def test_parse_ics_date_utc(tz):
    parsed = parse_ics_date("20240812T230000Z", tz)
    # 23:00 UTC is already the next local day
    assert parsed.date() == datetime(2024, 8, 13).date()
    assert parsed.hour == 1


@pytest.mark.parametrize("value", ["", "2024-08-12", "20241340T000000", "20240230", "20240812T080000+02", "garbage"])
def test_parse_ics_date_invalid(tz, value):
    assert parse_ics_date(value, tz) is None


@pytest.mark.parametrize("raw, expected", [
    ("Jan Mouton\\, 1013", "Jan Mouton, 1013"),
    ("Merensky\\n2002", "Merensky 2002"),
    ("Merensky\\N2002", "Merensky 2002"),
    ("  Plain  ", "Plain"),
])
def test_unescape_location(raw, expected):
    assert unescape_location(raw) == expected


def test_parse_ics_events_local_wall_time(tz):
    body = """
DTSTART:20240115T090000
DTEND:20240115T100000
LOCATION:Merensky
"""
    (event,) = parse_ics_events(make_ics(body), tz)
    assert event.start == tz.localize(datetime(2024, 1, 15, 9, 0))
    assert event.end == tz.localize(datetime(2024, 1, 15, 10, 0))
