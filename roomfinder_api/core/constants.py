# roomfinder_api/core/constants.py

# --- Timetable Endpoints ---
TIMETABLE_BASE_URL = "https://splus.sun.ac.za:8080/Reporting/individual"
# Engineering rooms are served by a second instance on another port
ENGINEERING_TIMETABLE_BASE_URL = "https://splus.sun.ac.za:8081/Reporting/individual"
# The server expects the template value pre-encoded ('+' as %2B)
TIMETABLE_TEMPLATE = "su%2Blocation%2Bindividual_eng"
ENGINEERING_ROOM_MARKER = "engrg"

# --- HTTP Headers ---
# Default headers for making requests, mimicking a browser
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_MAX_CONCURRENT_FETCHES = 20

# --- Parsing Constants ---
# Selector for the per-room weekly grid
SCHEDULE_TABLE_SELECTOR = ".grid-border-args"
SCHEDULE_CELL_SELECTOR = "td, th"
# CSS classes marking the top-left cell of a booking
BOOKING_MARKER_CLASSES = ("object-cell-border",)
# Number of leading characters used to match a weekday header ("thu" -> "Thursday")
DAY_PREFIX_LENGTH = 3
# Upper bound for a single declared rowspan/colspan; larger values are clamped
MAX_CELL_SPAN = 400

# --- Slots and Gaps ---
SLOT_MINUTES = 15
MIN_GAP_MINUTES = 60

# --- Time Zones ---
DEFAULT_TIMEZONE = "Africa/Johannesburg"

# --- Location Matching ---
# Everything after this character in a free-text location is room-level detail
ROOM_SEPARATOR = "_"

# Misspellings and abbreviations seen in calendar exports -> canonical building name.
# Keys are already normalized (lowercase alphanumerics only).
BUILDING_ALIASES = {
    "janmouton": "Jan Mouton Learning Centre",
    "janmoutonlearningcentre": "Jan Mouton Learning Centre",
    "vdsterr": "Van Der Sterr",
    "vandersterr": "Van Der Sterr",
    "indpsyc": "Industrial Psychology",
    "mathsciindpsyc": "Industrial Psychology",
    "mathsci": "Industrial Psychology",
    "merensky": "Merensky",
    "narga": "Natural Science",
    "engrg": "Electrical Engineering",
    "engrgel": "Electrical Engineering",
}

# --- Ranking ---
EARTH_RADIUS_KM = 6371.0

# --- Availability Policy ---
# How a room whose timetable could not be read is reported
UNREACHABLE_POLICY_OPEN = "open"
UNREACHABLE_POLICY_CLOSED = "closed"
