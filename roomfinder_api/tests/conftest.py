import os
import sys

# Add project root to sys.path to allow imports like 'from roomfinder_api...'
# when the package is not installed and pytest is run from the project root
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from datetime import datetime
from typing import AsyncGenerator, List

import httpx
import pytest
import pytest_asyncio
import pytz
from fastapi import FastAPI

from roomfinder_api.core.locations import build_location_index
from roomfinder_api.main import app as main_app
from roomfinder_api.main import get_now
from roomfinder_api.models.models import CanonicalLocation


@pytest.fixture(scope="session")
def tz():
    """Campus time zone used throughout the tests (UTC+2, no DST)."""
    return pytz.timezone("Africa/Johannesburg")


@pytest.fixture
def canonical_locations() -> List[CanonicalLocation]:
    return [
        CanonicalLocation(id="JAN_MOUTON", name="Jan Mouton", building="Jan Mouton", latitude=-33.9320, longitude=18.8652),
        CanonicalLocation(id="JMLC", name="Jan Mouton Learning Centre", building="Jan Mouton Learning Centre", latitude=-33.9319, longitude=18.8651),
        CanonicalLocation(id="VDS_1003", name="Van Der Sterr 1003", building="Van Der Sterr", latitude=-33.9328, longitude=18.8649),
        CanonicalLocation(id="INDPSYC", name="Industrial Psychology 1001", building="Industrial Psychology", latitude=-33.9316, longitude=18.8641),
        CanonicalLocation(id="MERENSKY", name="Merensky 2002", building="Merensky", latitude=-33.9324, longitude=18.8642),
        CanonicalLocation(id="ARTS", name="Arts and Social Sciences 225", building="Arts and Social Sciences", latitude=-33.9310, longitude=18.8678),
    ]


@pytest.fixture
def location_index(canonical_locations):
    return build_location_index(canonical_locations)


def make_timetable_html(rows_html: str, table_class: str = "grid-border-args") -> str:
    """Wraps table rows in a page shaped like the room timetable report."""
    return f"""
<html><body>
<table class="header-border-args"><tr><td>Jan Mouton 1013</td></tr></table>
<table class="{table_class}">
{rows_html}
</table>
</body></html>
"""


# Header row plus four 15-minute rows. Monday 08:00-09:00 is one booking
# (rowspan=4); Tuesday 08:15 is a single-row booking; Wednesday is free.
WEEK_ROWS_HTML = """
<tr><th></th><th>Mon 12/08</th><th>Tue 13/08</th><th>Wed 14/08</th></tr>
<tr><td>08:00</td><td rowspan="4" class="object-cell-border">CS 144 Lecture</td><td></td><td></td></tr>
<tr><td>08:15</td><td class="object-cell-border">Math 114 Tutorial</td><td></td></tr>
<tr><td>08:30</td><td></td><td></td></tr>
<tr><td>08:45</td><td></td><td></td></tr>
"""


@pytest.fixture
def week_html() -> str:
    return make_timetable_html(WEEK_ROWS_HTML)


@pytest.fixture
def timetable_html():
    """Factory fixture: rows HTML -> full timetable page."""
    return make_timetable_html


# --- App fixtures ---

# Monday 2024-08-12 10:10 on campus
FIXED_NOW = pytz.timezone("Africa/Johannesburg").localize(datetime(2024, 8, 12, 10, 10))


@pytest_asyncio.fixture(scope="function")
async def app_with_state(monkeypatch) -> AsyncGenerator[FastAPI, None]:
    """
    Provides the FastAPI app with its lifespan started (settings, locations and
    HTTP client on app.state) and the clock pinned to FIXED_NOW.
    """
    monkeypatch.setenv("UNREACHABLE_ROOM_POLICY", "open")
    monkeypatch.setenv("SAVE_DEBUG_HTML", "false")
    monkeypatch.delenv("LOCATIONS_FILE", raising=False)
    main_app.dependency_overrides[get_now] = lambda: FIXED_NOW
    try:
        async with main_app.router.lifespan_context(main_app):
            yield main_app
    finally:
        main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app_with_state: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app_with_state)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
