# roomfinder_api/core/locations.py
import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .constants import BUILDING_ALIASES, ROOM_SEPARATOR
from .schedule import UnresolvableLocationError
from ..models.models import CanonicalLocation

log = logging.getLogger(__name__)

_RE_NON_ALNUM = re.compile(r"[^a-z0-9]")
_RE_PARENTHESIZED = re.compile(r"\(.*?\)")
_RE_WHITESPACE = re.compile(r"\s+")

LocationIndex = Dict[str, CanonicalLocation]


def normalize_key(value: Optional[str]) -> str:
    """Lowercase and strip every non-alphanumeric character: 'Van der Sterr' -> 'vandersterr'."""
    return _RE_NON_ALNUM.sub("", str(value or "").lower())


def extract_building_token(location: Optional[str], separator: str = ROOM_SEPARATOR) -> str:
    """
    The part of a free-text location that names the building.

    'Jan Mouton (El.Class)_2015' -> 'Jan Mouton'. Text after the first room
    separator is dropped, parenthesized qualifiers removed and slashes and
    whitespace collapsed.
    """
    before_room = str(location or "").split(separator, 1)[0]
    token = _RE_PARENTHESIZED.sub(" ", before_room).replace("/", " ")
    return _RE_WHITESPACE.sub(" ", token).strip()


def build_location_index(locations: Iterable[CanonicalLocation]) -> LocationIndex:
    """
    Index of canonical locations keyed by normalized building name and normalized
    full name. Later records replace earlier ones under the same key.
    """
    index: LocationIndex = {}
    for loc in locations:
        index[normalize_key(loc.building)] = loc
        index[normalize_key(loc.name)] = loc
    log.debug(f"Built location index with {len(index)} keys.")
    return index


# --- Strategy Chain ---

def match_exact(token_key: str, index: Mapping[str, CanonicalLocation]) -> Optional[CanonicalLocation]:
    if not token_key:
        return None
    return index.get(token_key)


def match_alias(
    token_key: str,
    index: Mapping[str, CanonicalLocation],
    aliases: Mapping[str, str] = BUILDING_ALIASES,
) -> Optional[CanonicalLocation]:
    alias = aliases.get(token_key)
    if not alias:
        return None
    return index.get(normalize_key(alias))


def match_overlap(token_key: str, locations: Sequence[CanonicalLocation]) -> Optional[CanonicalLocation]:
    """
    Substring-overlap fallback over canonical building names.

    A building matches when either normalized form contains the other. The match
    with the longest shorter-string length wins; the first one encountered keeps
    ties.
    """
    best_match: Optional[CanonicalLocation] = None
    best_score = 0
    for loc in locations:
        loc_key = normalize_key(loc.building)
        if not loc_key:
            continue
        if loc_key in token_key or token_key in loc_key:
            score = min(len(token_key), len(loc_key))
            if score > best_score:
                best_score = score
                best_match = loc
    return best_match


def match_location(
    location: Optional[str],
    locations: Sequence[CanonicalLocation],
    index: Mapping[str, CanonicalLocation],
    aliases: Mapping[str, str] = BUILDING_ALIASES,
) -> Optional[CanonicalLocation]:
    """
    Resolves a free-text location to a canonical location: exact building/name
    lookup, then the alias table, then substring overlap. Returns None when every
    strategy misses.
    """
    token = extract_building_token(location)
    token_key = normalize_key(token)

    match = match_exact(token_key, index)
    if match:
        log.debug(f"Location '{location}' matched '{match.name}' by exact key '{token_key}'.")
        return match

    match = match_alias(token_key, index, aliases)
    if match:
        log.debug(f"Location '{location}' matched '{match.name}' through alias '{token_key}'.")
        return match

    match = match_overlap(token_key, locations)
    if match:
        log.debug(f"Location '{location}' matched '{match.name}' by substring overlap.")
        return match

    log.warning(f"Could not match location '{location}' (building token '{token}').")
    return None


def resolve_location(
    location: str,
    role: str,
    locations: Sequence[CanonicalLocation],
    index: Mapping[str, CanonicalLocation],
) -> CanonicalLocation:
    """
    Like match_location, but a miss raises UnresolvableLocationError carrying the
    unmatched text. `role` is 'last' or 'next'.
    """
    match = match_location(location, locations, index)
    if match is None:
        raise UnresolvableLocationError(
            f"Could not match your {role} class location ({location}) to a campus building.", location
        )
    return match


# --- Loading ---

def load_locations(path: Union[str, Path]) -> List[CanonicalLocation]:
    """
    Reads the canonical location list from a JSON array of
    {id, name, building, lat|latitude, lon|longitude} records.

    Raises:
        ValueError: If the file is not a JSON array or a record is invalid.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValueError(f"Locations file {path} must contain a JSON array")

    locations: List[CanonicalLocation] = []
    for position, record in enumerate(raw):
        try:
            locations.append(CanonicalLocation.model_validate(record))
        except ValidationError as e:
            raise ValueError(f"Invalid location record #{position} in {path}: {e}") from e
    log.info(f"Loaded {len(locations)} canonical locations from {path}.")
    return locations


def find_location_by_id(location_id: str, locations: Iterable[CanonicalLocation]) -> Optional[CanonicalLocation]:
    return next((loc for loc in locations if loc.id == location_id), None)
