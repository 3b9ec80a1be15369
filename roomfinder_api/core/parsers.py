# roomfinder_api/core/parsers.py
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from .constants import (BOOKING_MARKER_CLASSES, DAY_PREFIX_LENGTH,
                        SCHEDULE_CELL_SELECTOR, SCHEDULE_TABLE_SELECTOR)
from .grid import (LogicalGrid, OccupiedMarker, OwnedCell, build_logical_grid,
                   find_schedule_table, raw_rows_from_table)

log = logging.getLogger(__name__)


class TimetableParserError(Exception):
    """Base exception for parser-related errors."""
    def __init__(self, message: str, html_content: Optional[str] = None):
        super().__init__(message)
        # Keep the problematic HTML around for debugging
        self.html_content = html_content


# --- Source Profiles ---

def has_booking_marker(cell: OwnedCell, marker_classes=BOOKING_MARKER_CLASSES) -> bool:
    return any(cls in cell.cell.classes for cls in marker_classes)


def header_matches_day(header_text: str, day: str, prefix_length: int = DAY_PREFIX_LENGTH) -> bool:
    """Case-insensitive prefix match, e.g. 'thu' or 'Thursday' against a 'Thu 12/09' header."""
    prefix = day.strip().lower()[:prefix_length]
    if not prefix:
        return False
    return header_text.strip().lower().startswith(prefix)


@dataclass(frozen=True)
class SourceProfile:
    """
    Source-specific quirks of a timetable page. The grid reconstruction and slot
    extraction are shared; only these hooks differ between sources.
    """
    name: str = "default"
    table_selector: str = SCHEDULE_TABLE_SELECTOR
    cell_selector: str = SCHEDULE_CELL_SELECTOR
    is_booking: Callable[[OwnedCell], bool] = has_booking_marker
    header_matches: Callable[[str, str], bool] = header_matches_day


DEFAULT_SOURCE_PROFILE = SourceProfile()


@dataclass
class ParseResult:
    """Holds the result of parsing one room's timetable page."""
    status: str  # 'Success', 'DayNotFound', 'TableNotFound', 'StructureError'
    booked_slots: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("Success", "DayNotFound")


# --- Slot Extractor ---
_RE_TIME_TOKEN = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time_token(text: str) -> Optional[str]:
    """'8:15' -> '08:15'. Returns None for anything that is not H:MM / HH:MM."""
    match = _RE_TIME_TOKEN.match(text.strip())
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def find_day_column(grid: LogicalGrid, day: str, profile: SourceProfile = DEFAULT_SOURCE_PROFILE) -> Optional[int]:
    """
    Scans logical row 0 (skipping the time column) for the header cell of `day`.
    Returns the logical column index or None.
    """
    if not grid.rows:
        return None
    header_row = grid.rows[0]
    for col in range(1, len(header_row)):
        position = header_row[col]
        if isinstance(position, OwnedCell) and profile.header_matches(position.text, day):
            return col
    return None


def extract_booked_slots(grid: LogicalGrid, day: str, profile: SourceProfile = DEFAULT_SOURCE_PROFILE) -> List[str]:
    """
    Reads the booked time tokens for `day` from a reconstructed grid.

    A row contributes its time token when its day-column position is covered by a
    multi-row booking (an occupied marker) or is an owning cell carrying the
    source's booking marker. Rows whose time column is not a time are skipped.
    The output follows row order; every covered row yields a token, so a
    booking spanning four 15-minute rows produces four tokens.

    Args:
        grid: The logical grid of one room's week.
        day: Requested weekday, full name or 3-letter prefix, any case.
        profile: Source quirks for booking and header detection.

    Returns:
        Ordered, possibly duplicate list of 'HH:MM' tokens. Empty if the day
        has no column in the header row.
    """
    day_col = find_day_column(grid, day, profile)
    if day_col is None:
        log.warning(f"Day '{day}' not found in schedule header.")
        return []

    booked: List[str] = []
    for row_index in range(1, len(grid.rows)):
        time_position = grid.get(row_index, 0)
        if not isinstance(time_position, OwnedCell):
            continue
        token = normalize_time_token(time_position.text)
        if token is None:
            continue

        activity = grid.get(row_index, day_col)
        if activity is None:
            continue
        if isinstance(activity, OccupiedMarker) or profile.is_booking(activity):
            booked.append(token)

    log.debug(f"Extracted {len(booked)} booked slots for day '{day}' (column {day_col}).")
    return booked


def parse_room_schedule_html(
    html_content: Optional[str], day: str, profile: SourceProfile = DEFAULT_SOURCE_PROFILE
) -> ParseResult:
    """
    Parses a room's weekly timetable page into the booked slots of one day.

    Args:
        html_content: Raw HTML of the timetable page.
        day: Requested weekday.
        profile: Source quirks (table selector, booking marker, header rule).

    Returns:
        A ParseResult. A missing table or unexpected structure is reported through
        its status, never raised.

    Raises:
        TimetableParserError: If the input HTML is empty or None.
    """
    if not html_content or not html_content.strip():
        log.warning("parse_room_schedule_html received None or empty HTML content.")
        raise TimetableParserError("Input HTML content is empty or invalid", html_content=html_content)

    try:
        table = find_schedule_table(html_content, profile.table_selector)
        if table is None:
            msg = f"No schedule table ({profile.table_selector}) found. The room might not exist or the page structure has changed."
            log.warning(msg)
            return ParseResult(status="TableNotFound", error_message=msg)

        grid = build_logical_grid(raw_rows_from_table(table, profile.cell_selector))
        if find_day_column(grid, day, profile) is None:
            return ParseResult(status="DayNotFound", warnings=[f"Day '{day}' not found in schedule header."])

        return ParseResult(status="Success", booked_slots=extract_booked_slots(grid, day, profile))

    except (AttributeError, TypeError, ValueError) as structure_err:
        msg = f"Invalid HTML structure or parsing error: {structure_err}"
        log.error(msg, exc_info=True)
        return ParseResult(status="StructureError", error_message=msg)


# --- Room Option Parser ---

def parse_room_options(html: str) -> List[str]:
    """
    Reads room identifiers from the <option> values of the timetable's room selector.

    Args:
        html: HTML containing the room <select>.

    Returns:
        Room identifiers in page order, without duplicates or placeholder values.
    """
    rooms: List[str] = []
    try:
        soup = BeautifulSoup(html, "lxml")
        for option in soup.select("option"):
            value = option.get("value")
            if not value or value == "-1":
                continue
            value = value.strip()
            if value and value not in rooms:
                rooms.append(value)
        log.debug(f"Parsed {len(rooms)} room options.")
    except Exception as e:
        log.error(f"Error parsing room options HTML: {e}", exc_info=True)

    if not rooms:
        log.warning("Could not parse any room options from the provided HTML.")
    return rooms
