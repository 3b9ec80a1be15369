# roomfinder_api/core/client.py
import logging
from typing import Optional

import httpx
from httpx import Limits

from .constants import (DEFAULT_FETCH_TIMEOUT, DEFAULT_HEADERS,
                        ENGINEERING_ROOM_MARKER, ENGINEERING_TIMETABLE_BASE_URL,
                        TIMETABLE_BASE_URL, TIMETABLE_TEMPLATE)

log = logging.getLogger(__name__)


class TimetableClientError(Exception):
    """Raised when a timetable page cannot be fetched."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.original_exception = original_exception


def build_timetable_url(
    room_name: str,
    week: int,
    base_url: str = TIMETABLE_BASE_URL,
    engineering_base_url: str = ENGINEERING_TIMETABLE_BASE_URL,
) -> str:
    """
    URL of a room's individual weekly timetable.

    The room identifier is passed through as-is ('Jan+Mouton_1013'); the server
    expects its own encoding of it. Engineering rooms live on a separate host.
    """
    base = engineering_base_url if ENGINEERING_ROOM_MARKER in room_name.lower() else base_url
    return (
        f"{base.rstrip('/')}?idtype=name&objectclass=location"
        f"&template={TIMETABLE_TEMPLATE}&identifier={room_name}&weeks={week}"
    )


def create_http_client(timeout: float = DEFAULT_FETCH_TIMEOUT) -> httpx.AsyncClient:
    """Shared client for the timetable fan-out."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=DEFAULT_HEADERS.copy(),
        limits=Limits(max_keepalive_connections=20, max_connections=100),
        http2=True,
    )


async def fetch_timetable_html(client: httpx.AsyncClient, url: str) -> str:
    """
    Fetches one timetable page. No retries: a failed fetch is reported once and
    the caller decides how to degrade.

    Raises:
        TimetableClientError: On HTTP error status, timeout or connection failure,
            with the httpx exception as __cause__.
    """
    endpoint = url.split("?")[0]
    try:
        response = await client.get(url)
        response.raise_for_status()
        return response.text
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        log.warning(f"HTTP error {status_code} fetching {endpoint}")
        raise TimetableClientError(f"HTTP error {status_code} fetching {url}", status_code=status_code, original_exception=e) from e
    except httpx.TimeoutException as e:
        log.warning(f"Timeout fetching {endpoint}")
        raise TimetableClientError(f"Timeout occurred fetching {url}", original_exception=e) from e
    except httpx.ConnectError as e:
        log.warning(f"Connection error fetching {endpoint}: {e}")
        raise TimetableClientError(f"Connection error fetching {url}", original_exception=e) from e
    except httpx.RequestError as e:
        log.warning(f"Request error fetching {endpoint}: {type(e).__name__}")
        raise TimetableClientError(f"Request error fetching {url}: {e}", original_exception=e) from e
