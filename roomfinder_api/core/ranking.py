# roomfinder_api/core/ranking.py
import logging
import math
from typing import List, Sequence

from .constants import EARTH_RADIUS_KM
from ..models.models import CanonicalLocation, RankedRoom, RoomAvailability

log = logging.getLogger(__name__)


def haversine_distance(a: CanonicalLocation, b: CanonicalLocation) -> float:
    """Great-circle distance between two locations in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.sin(d_lon / 2) ** 2 * math.cos(lat1) * math.cos(lat2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def rank_rooms(
    availability: Sequence[RoomAvailability],
    start: CanonicalLocation,
    end: CanonicalLocation,
) -> List[RankedRoom]:
    """Open rooms ordered by the walk start -> room -> end, shortest first."""
    ranked = [
        RankedRoom(
            location=room.location,
            total_distance_km=haversine_distance(start, room.location) + haversine_distance(room.location, end),
            confirmed=room.confirmed,
        )
        for room in availability
        if room.is_open
    ]
    ranked.sort(key=lambda room: room.total_distance_km)
    log.debug(f"Ranked {len(ranked)} open rooms between '{start.name}' and '{end.name}'.")
    return ranked
