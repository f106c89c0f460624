from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from grue.world.models import Room


DIRECTIONS: tuple[str, ...] = ("north", "south", "east", "west", "up", "down")

_ALIASES: dict[str, str] = {
    "n": "north",
    "s": "south",
    "e": "east",
    "w": "west",
    "u": "up",
    "d": "down",
    **{d: d for d in DIRECTIONS},
}


def normalize_direction(direction: str) -> str:
    """Map abbreviations to canonical direction names.

    Unknown values pass through (lowercased, trimmed) and simply won't match any exit.
    """

    key = direction.strip().casefold()
    return _ALIASES.get(key, key)


def is_direction(word: str) -> bool:
    return word.strip().casefold() in _ALIASES


def available_exits(room: Room) -> list[str]:
    return [d for d, target in room.exits.items() if target]


def _parse_connection(raw: str) -> tuple[str, str] | None:
    # Accepted shapes: "north-hall", "north:hall", "north hall".
    parts = re.split(r"[-:\s]+", raw.strip(), maxsplit=1)
    if len(parts) != 2:
        return None
    direction, target = normalize_direction(parts[0]), parts[1].strip()
    if direction not in DIRECTIONS or not target:
        return None
    return direction, target


def build_navigation_map(locations: Iterable[Mapping[str, object]]) -> dict[str, dict[str, str | None]]:
    """Derive room_id -> direction -> room_id from per-location connection lists.

    Every direction is present for every room; anything that does not resolve to a
    known location id is None.
    """

    locs = list(locations)
    known = {str(loc.get("id")) for loc in locs if loc.get("id")}

    nav: dict[str, dict[str, str | None]] = {}
    for loc in locs:
        loc_id = loc.get("id")
        if not loc_id:
            continue
        entry: dict[str, str | None] = {d: None for d in DIRECTIONS}
        connections = loc.get("connections") or []
        if isinstance(connections, list):
            for raw in connections:
                if not isinstance(raw, str):
                    continue
                parsed = _parse_connection(raw)
                if parsed is None:
                    continue
                direction, target = parsed
                # First connection per direction wins.
                if entry[direction] is None and target in known:
                    entry[direction] = target
        nav[str(loc_id)] = entry
    return nav
