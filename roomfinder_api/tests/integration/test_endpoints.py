import dataclasses

import httpx
import pytest
from fastapi import FastAPI

from roomfinder_api.core.client import TimetableClientError
from roomfinder_api.core.extractor import RoomTimetableExtractor

# --- Mock Data ---
BOOKED_AT_TEN_HTML = """
<html><body><table class="grid-border-args">
<tr><th></th><th>Mon 12/08</th><th>Tue 13/08</th></tr>
<tr><td>10:00</td><td class="object-cell-border">Lecture</td><td></td></tr>
<tr><td>10:15</td><td></td><td></td></tr>
</table></body></html>
"""

FREE_HTML = """
<html><body><table class="grid-border-args">
<tr><th></th><th>Mon 12/08</th><th>Tue 13/08</th></tr>
<tr><td>10:00</td><td></td><td></td></tr>
</table></body></html>
"""

CALENDAR = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "BEGIN:VEVENT",
    "DTSTART:20240812T080000",
    "DTEND:20240812T090000",
    "SUMMARY:CS 144",
    "LOCATION:Jan Mouton (El.Class)_1013",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "DTSTART:{next_start}",
    "DTEND:20240812T123000",
    "SUMMARY:Math 114",
    "LOCATION:VDSterr_1003",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


@pytest.fixture
def mock_timetables(mocker):
    """Patches room fetches: one room booked at 10:00, Merensky unreachable, the rest free."""
    async def fetch(room_name, week):
        if room_name == "Merensky 2002":
            raise TimetableClientError("Connection error fetching timetable")
        if room_name == "Jan Mouton 1013":
            return BOOKED_AT_TEN_HTML
        return FREE_HTML

    return mocker.patch.object(RoomTimetableExtractor, "fetch_room_html", side_effect=fetch)


def room_ids(payload):
    return [room["location"]["id"] for room in payload["rooms"]]


@pytest.mark.asyncio
async def test_root(async_client: httpx.AsyncClient):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "locations": 9}


@pytest.mark.asyncio
async def test_list_locations(async_client: httpx.AsyncClient):
    response = await async_client.get("/locations")
    assert response.status_code == 200
    payload = response.json()
    assert len(payload) == 9
    assert {"id", "name", "building", "lat", "lon"} <= set(payload[0])


@pytest.mark.asyncio
async def test_find_rooms_at_now(async_client: httpx.AsyncClient, app_with_state: FastAPI, mock_timetables):
    response = await async_client.post(
        "/find", json={"last_class_id": "JAN_MOUTON_1013", "next_class_id": "VAN_DER_STERR_1003"}
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["week"] == 33
    assert payload["day"] == "Monday"
    assert payload["time_slot"] == {"start": "10:00", "end": "10:15"}
    assert payload["start_location"]["id"] == "JAN_MOUTON_1013"
    assert payload["end_location"]["id"] == "VAN_DER_STERR_1003"

    ids = room_ids(payload)
    assert "JAN_MOUTON_1013" not in ids
    assert len(ids) == 8
    # The unreachable room is reported open under the default policy, but unconfirmed
    merensky = next(room for room in payload["rooms"] if room["location"]["id"] == "MERENSKY_2002")
    assert merensky["confirmed"] is False
    assert payload["unconfirmed_rooms"] == 1

    distances = [room["totalDistanceKm"] for room in payload["rooms"]]
    assert distances == sorted(distances)
    assert mock_timetables.await_count == len(app_with_state.state.locations)


@pytest.mark.asyncio
async def test_find_rooms_at_explicit_instant(async_client: httpx.AsyncClient, mock_timetables):
    response = await async_client.post(
        "/find",
        json={"last_class_id": "JAN_MOUTON_1013", "next_class_id": "MERENSKY_2002", "at": "2024-08-13T14:05:00+02:00"},
    )
    payload = response.json()
    assert payload["day"] == "Tuesday"
    assert payload["time_slot"]["start"] == "14:00"
    assert "JAN_MOUTON_1013" in room_ids(payload)


@pytest.mark.asyncio
async def test_find_rooms_closed_policy(async_client: httpx.AsyncClient, app_with_state: FastAPI, mock_timetables):
    app_with_state.state.settings = dataclasses.replace(app_with_state.state.settings, unreachable_policy="closed")

    response = await async_client.post(
        "/find", json={"last_class_id": "JAN_MOUTON_1013", "next_class_id": "VAN_DER_STERR_1003"}
    )

    payload = response.json()
    assert "MERENSKY_2002" not in room_ids(payload)
    assert payload["unconfirmed_rooms"] == 1


@pytest.mark.asyncio
async def test_find_rooms_unknown_location(async_client: httpx.AsyncClient, mock_timetables):
    response = await async_client.post("/find", json={"last_class_id": "NOPE", "next_class_id": "MERENSKY_2002"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Unknown location id: NOPE"
    mock_timetables.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_rooms_invalid_body(async_client: httpx.AsyncClient):
    response = await async_client.post("/find", json={"last_class_id": "JAN_MOUTON_1013"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_find_rooms_from_ics(async_client: httpx.AsyncClient, mock_timetables):
    files = {"file": ("timetable.ics", CALENDAR.format(next_start="20240812T113000"), "text/calendar")}

    response = await async_client.post("/find/ics", files=files)

    assert response.status_code == 200
    payload = response.json()
    assert payload["start_location"]["building"] == "Jan Mouton"
    assert payload["end_location"]["id"] == "VAN_DER_STERR_1003"
    assert payload["last_event"]["summary"] == "CS 144"
    assert payload["next_event"]["summary"] == "Math 114"
    assert payload["reference_instant"].startswith("2024-08-12T10:10:00")
    assert payload["time_slot"] == {"start": "10:00", "end": "10:15"}
    assert "JAN_MOUTON_1013" not in room_ids(payload)


@pytest.mark.asyncio
async def test_find_rooms_from_ics_insufficient_gap(async_client: httpx.AsyncClient, mock_timetables):
    files = {"file": ("timetable.ics", CALENDAR.format(next_start="20240812T104000"), "text/calendar")}

    response = await async_client.post("/find/ics", files=files)

    assert response.status_code == 422
    assert response.json() == {
        "error": "Your next class starts in less than an hour, so no free hour is available.",
        "kind": "InsufficientGap",
    }
    mock_timetables.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_rooms_from_ics_without_events(async_client: httpx.AsyncClient, mock_timetables):
    files = {"file": ("empty.ics", b"\xef\xbb\xbfBEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "text/calendar")}

    response = await async_client.post("/find/ics", files=files)

    assert response.status_code == 422
    assert response.json()["kind"] == "NoCurrentContext"
