import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

import pytz
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.responses import ORJSONResponse

from .core.client import create_http_client
from .core.constants import (DEFAULT_FETCH_TIMEOUT,
                             DEFAULT_MAX_CONCURRENT_FETCHES, DEFAULT_TIMEZONE,
                             ENGINEERING_TIMETABLE_BASE_URL,
                             TIMETABLE_BASE_URL, UNREACHABLE_POLICY_CLOSED,
                             UNREACHABLE_POLICY_OPEN)
from .core.date_utils import get_timezone
from .core.extractor import RoomTimetableExtractor
from .core.locations import (build_location_index, find_location_by_id,
                             load_locations)
from .core.ranking import rank_rooms
from .core.service import AvailabilityReport, find_open_rooms, get_schedule_from_ics
from .models.api_models import (ErrorResponse, FindRoomsRequest,
                                FindRoomsResponse, IcsFindRoomsResponse)
from .models.models import CanonicalLocation, ScheduleFailure

# Load environment variables from a .env file in this or any parent directory
load_dotenv()

DEFAULT_LOCATIONS_FILE = Path(__file__).parent / "data" / "locations.json"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    locations_file: Path
    timetable_base_url: str
    engineering_timetable_base_url: str
    timezone: str
    fetch_timeout: float
    max_concurrent_fetches: int
    unreachable_policy: str
    save_debug_html: bool


def load_settings() -> Settings:
    """Reads settings from the environment, falling back to the built-in defaults."""
    policy = os.getenv("UNREACHABLE_ROOM_POLICY", UNREACHABLE_POLICY_OPEN).lower()
    if policy not in (UNREACHABLE_POLICY_OPEN, UNREACHABLE_POLICY_CLOSED):
        log.warning(f"Unknown UNREACHABLE_ROOM_POLICY '{policy}', using '{UNREACHABLE_POLICY_OPEN}'.")
        policy = UNREACHABLE_POLICY_OPEN
    return Settings(
        locations_file=Path(os.getenv("LOCATIONS_FILE", str(DEFAULT_LOCATIONS_FILE))),
        timetable_base_url=os.getenv("TIMETABLE_BASE_URL", TIMETABLE_BASE_URL),
        engineering_timetable_base_url=os.getenv("ENGINEERING_TIMETABLE_BASE_URL", ENGINEERING_TIMETABLE_BASE_URL),
        timezone=os.getenv("TIMETABLE_TIMEZONE", DEFAULT_TIMEZONE),
        fetch_timeout=float(os.getenv("FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT)),
        max_concurrent_fetches=int(os.getenv("MAX_CONCURRENT_FETCHES", DEFAULT_MAX_CONCURRENT_FETCHES)),
        unreachable_policy=policy,
        save_debug_html=os.getenv("SAVE_DEBUG_HTML", "false").lower() == "true",
    )


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Lifespan: Application startup sequence initiated.")
    settings = load_settings()
    app.state.settings = settings
    app.state.tz = get_timezone(settings.timezone)

    # The location set is loaded once and only read afterwards
    locations = load_locations(settings.locations_file)
    app.state.locations = locations
    app.state.location_index = build_location_index(locations)
    log.info(f"Lifespan startup: {len(locations)} locations loaded from {settings.locations_file}")

    client = create_http_client(timeout=settings.fetch_timeout)
    app.state.http_client = client
    app.state.extractor = RoomTimetableExtractor(
        client,
        base_url=settings.timetable_base_url,
        engineering_base_url=settings.engineering_timetable_base_url,
        save_debug_html=settings.save_debug_html,
    )
    log.info("Lifespan startup: HTTPX client created.")

    try:
        yield
    finally:
        await client.aclose()
        log.info("Lifespan shutdown: HTTPX client closed.")


def get_now() -> datetime:
    """Current instant; overridden in tests."""
    return datetime.now(pytz.utc)


app = FastAPI(
    title="Room Finder API",
    description="Finds an open campus room between two classes from live room timetables or an uploaded calendar.",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)


def _build_response(
    report: AvailabilityReport, start: CanonicalLocation, end: CanonicalLocation
) -> dict:
    return {
        "week": report.week,
        "day": report.day,
        "time_slot": report.slot,
        "start_location": start,
        "end_location": end,
        "rooms": rank_rooms(report.rooms, start, end),
        "unconfirmed_rooms": report.degraded_count,
    }


async def _run_search(request: Request, instant: datetime, start: CanonicalLocation, end: CanonicalLocation) -> dict:
    settings: Settings = request.app.state.settings
    report = await find_open_rooms(
        request.app.state.extractor,
        request.app.state.locations,
        instant,
        request.app.state.tz,
        unreachable_policy=settings.unreachable_policy,
        max_concurrency=settings.max_concurrent_fetches,
    )
    return _build_response(report, start, end)


@app.get("/")
async def read_root(request: Request):
    return {"status": "ok", "locations": len(request.app.state.locations)}


@app.get("/locations", response_model=List[CanonicalLocation])
async def list_locations(request: Request):
    return request.app.state.locations


@app.post("/find", response_model=FindRoomsResponse)
async def find_rooms(body: FindRoomsRequest, request: Request, now: datetime = Depends(get_now)):
    locations = request.app.state.locations
    start = find_location_by_id(body.last_class_id, locations)
    end = find_location_by_id(body.next_class_id, locations)
    if start is None or end is None:
        missing = body.last_class_id if start is None else body.next_class_id
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown location id: {missing}")

    instant = body.at or now
    log.info(f"/find: {start.name} -> {end.name} at {instant.isoformat()}")
    return await _run_search(request, instant, start, end)


@app.post(
    "/find/ics",
    response_model=IcsFindRoomsResponse,
    responses={status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse}},
)
async def find_rooms_from_ics(request: Request, file: UploadFile = File(...), now: datetime = Depends(get_now)):
    raw = await file.read()
    try:
        ics_text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        ics_text = raw.decode("latin-1")

    result = get_schedule_from_ics(
        ics_text, now, request.app.state.locations, request.app.state.location_index, request.app.state.tz
    )
    if isinstance(result, ScheduleFailure):
        log.info(f"/find/ics: {result.kind}: {result.error}")
        return ORJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=result.model_dump())

    response = await _run_search(request, result.reference_instant, result.last_location, result.next_location)
    response.update(
        last_event=result.last_event,
        next_event=result.next_event,
        reference_instant=result.reference_instant,
    )
    return response
