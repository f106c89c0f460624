from __future__ import annotations

from typing import Any

from grue.errors import InvariantViolation
from grue.world.models import World


def validate_room_payload(obj: Any) -> str | None:
    """Duck-validate a structured room object returned by the generator.

    Checks presence/types only. Returns a human-readable reason naming the first
    failing field, or None when the payload is acceptable.
    """

    if not isinstance(obj, dict):
        return "missing object"
    if not isinstance(obj.get("room_id"), str):
        return "room_id must be string"
    title = obj.get("title", obj.get("name"))
    if not isinstance(title, str):
        return "title must be string"
    if not isinstance(obj.get("description"), str):
        return "description must be string"

    exits = obj.get("exits")
    if isinstance(exits, dict):
        # Simple form: {"north": "hall"}.
        for key, target in exits.items():
            if target is not None and not isinstance(target, str):
                return f"exits.{key} must be string or null"
    elif isinstance(exits, list):
        for ex in exits:
            if not isinstance(ex, dict):
                return "exit must be object"
            if not isinstance(ex.get("exit_id"), str):
                return "exit.exit_id must be string"
            if not isinstance(ex.get("label"), str):
                return "exit.label must be string"
            if not isinstance(ex.get("keywords"), list):
                return "exit.keywords must be array"
    else:
        return "exits must be array or object"

    if "items" in obj and obj["items"] is not None and not isinstance(obj["items"], list):
        return "items must be array if present"
    return None


def validate_world(world: World) -> str | None:
    """Check the structural invariants of a world; fail closed on the first problem."""

    if not world.rooms:
        return "world has no rooms"

    seen: set[str] = set()
    for room in world.rooms:
        if not room.id.strip():
            return "room id must be non-empty"
        if room.id in seen:
            return f"duplicate room id: {room.id}"
        seen.add(room.id)
        if not room.name.strip():
            return f"room {room.id}: name must be non-empty"

    for room in world.rooms:
        for direction, target in room.exits.items():
            if target is not None and target not in seen:
                return f"room {room.id}: exit {direction} points to unknown room {target}"

    if world.starting_room is not None and world.starting_room not in seen:
        return f"starting_room {world.starting_room} is not a room"

    for npc in world.npcs:
        if npc.location is not None and npc.location not in seen:
            return f"npc {npc.id}: location {npc.location} is not a room"

    return None


def check_world(world: World) -> World:
    err = validate_world(world)
    if err is not None:
        raise InvariantViolation(f"Invalid world: {err}")
    return world
