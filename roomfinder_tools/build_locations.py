# roomfinder_tools/build_locations.py
# Prepares the static location list read by roomfinder_api at startup.
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from roomfinder_api.core.parsers import parse_room_options

# --- Constants ---
DEFAULT_OUTPUT = Path("locations.json")


def create_id_from_name(name: str) -> str:
    """'Jan Mouton' -> 'JAN_MOUTON'."""
    return name.replace(" ", "_").upper()


def geojson_to_locations(geojson: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Converts a GeoJSON FeatureCollection of buildings into location records.

    Features without a name or point coordinates are skipped. GeoJSON stores
    coordinates as [longitude, latitude].

    Raises:
        ValueError: If the input has no 'features' array.
    """
    features = geojson.get("features") if isinstance(geojson, dict) else None
    if not isinstance(features, list):
        raise ValueError("GeoJSON input does not contain a 'features' array.")

    locations = []
    for feature in features:
        name = (feature.get("properties") or {}).get("name")
        coords = (feature.get("geometry") or {}).get("coordinates")
        if not name or not isinstance(coords, list) or len(coords) < 2:
            continue
        try:
            lon, lat = float(coords[0]), float(coords[1])
        except (TypeError, ValueError):
            # Polygons nest their coordinates; only points are converted
            continue
        locations.append({
            "id": create_id_from_name(name),
            "name": name,
            "building": name,
            "lat": lat,
            "lon": lon,
        })
    return locations


# --- File Helpers ---

async def read_text(path: Path) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


async def write_json(path: Path, data: Any) -> None:
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(data, indent=2, ensure_ascii=False))


# --- Commands ---

async def convert_geojson(input_path: Path, output_path: Path) -> int:
    try:
        geojson = json.loads(await read_text(input_path))
        locations = geojson_to_locations(geojson)
    except (OSError, ValueError) as e:
        print(f"Error: Could not convert {input_path}: {e}")
        return 1

    await write_json(output_path, locations)
    print(f"Successfully converted {len(locations)} features.")
    print(f"Output written to {output_path}")
    return 0


async def list_rooms(html_path: Path, output_path: Optional[Path]) -> int:
    try:
        html = await read_text(html_path)
    except OSError as e:
        print(f"Error: Could not read {html_path}: {e}")
        return 1

    rooms = parse_room_options(html)
    if output_path:
        await write_json(output_path, rooms)
        print(f"Wrote {len(rooms)} room identifiers to {output_path}")
    else:
        for room in rooms:
            print(room)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Room Finder data tool: build the canonical location list."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    geojson_parser = subparsers.add_parser("geojson", help="Convert a GeoJSON export of campus buildings.")
    geojson_parser.add_argument("input", type=Path, help="GeoJSON FeatureCollection file.")
    geojson_parser.add_argument("-o", "--output", type=Path, default=DEFAULT_OUTPUT, help="Where to write the locations JSON.")

    rooms_parser = subparsers.add_parser("rooms", help="List room identifiers from a saved timetable page.")
    rooms_parser.add_argument("html", type=Path, help="Saved timetable HTML containing the room selector.")
    rooms_parser.add_argument("-o", "--output", type=Path, default=None, help="Write the identifiers as a JSON array.")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "geojson":
        return await convert_geojson(args.input, args.output)
    return await list_rooms(args.html, args.output)


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
