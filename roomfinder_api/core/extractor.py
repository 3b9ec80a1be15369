# roomfinder_api/core/extractor.py
import logging
import re
import time
from pathlib import Path

import aiofiles
import httpx

from .client import build_timetable_url, fetch_timetable_html
from .constants import ENGINEERING_TIMETABLE_BASE_URL, TIMETABLE_BASE_URL

log = logging.getLogger(__name__)

# Directory for saving debug HTML
DEBUG_HTML_DIR = Path("debug_html")

_RE_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_.-]+")


class RoomTimetableExtractor:
    """
    Fetches raw weekly timetable pages for rooms through a shared httpx client.
    Holds configuration only; concurrent fetches share no mutable state.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = TIMETABLE_BASE_URL,
        engineering_base_url: str = ENGINEERING_TIMETABLE_BASE_URL,
        save_debug_html: bool = False,
        debug_dir: Path = DEBUG_HTML_DIR,
    ):
        """
        Args:
            http_client: Shared client, owned and closed by the caller.
            base_url: Timetable endpoint for regular rooms.
            engineering_base_url: Timetable endpoint for engineering rooms.
            save_debug_html: If True, saves every fetched page under `debug_dir`.
            debug_dir: Where debug pages go.
        """
        self.http_client = http_client
        self.base_url = base_url
        self.engineering_base_url = engineering_base_url
        self.save_debug_html = save_debug_html
        self.debug_dir = Path(debug_dir)
        log.info(f"RoomTimetableExtractor initialized for {self.base_url}, save_debug_html: {self.save_debug_html}")

    def url_for(self, room_name: str, week: int) -> str:
        return build_timetable_url(room_name, week, self.base_url, self.engineering_base_url)

    async def fetch_room_html(self, room_name: str, week: int) -> str:
        """
        Fetches the weekly timetable page of one room.

        Raises:
            TimetableClientError: If the page cannot be fetched.
        """
        url = self.url_for(room_name, week)
        log.debug(f"Fetching timetable for room '{room_name}', week {week}")
        html = await fetch_timetable_html(self.http_client, url)
        if self.save_debug_html:
            await self._save_debug_html(room_name, week, url, html)
        return html

    async def _save_debug_html(self, room_name: str, week: int, url: str, html: str) -> None:
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        safe_room = _RE_UNSAFE_FILENAME.sub("_", room_name)
        filename = self.debug_dir / f"{safe_room}_{week}_{timestamp}.html"
        try:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(filename, "w", encoding="utf-8") as f:
                await f.write(f"<!-- URL: {url} -->\n{html}")
            log.info(f"Saved debug HTML for room '{room_name}' to {filename}")
        except OSError as save_err:
            log.error(f"Failed to save debug HTML for room '{room_name}': {save_err}")
