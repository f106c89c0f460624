from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Literal

from grue.errors import NotFoundError
from grue.world.models import ExitLabel, Room, World

TransferDirection = Literal["take", "drop"]


def find_room(world: World, room_id: str) -> Room | None:
    return next((r for r in world.rooms if r.id == room_id), None)


def require_room(world: World, room_id: str) -> Room:
    room = find_room(world, room_id)
    if room is None:
        raise NotFoundError(f"Room not found: {room_id}")
    return room


def fuzzy_index(entries: Sequence[str], target: str, *, name_of: Callable[[str], str] | None = None) -> int:
    """Index of the first entry matching `target`, or -1.

    Case-insensitive substring match in either direction, against the raw entry and,
    when `name_of` is given, its display name.
    """

    needle = target.strip().casefold()
    if not needle:
        return -1
    for idx, entry in enumerate(entries):
        candidates = {entry.casefold()}
        if name_of is not None:
            candidates.add(name_of(entry).casefold())
        for c in candidates:
            if c and (needle in c or c in needle):
                return idx
    return -1


def apply_item_transfer(
    world: World,
    room_id: str,
    item: str,
    direction: TransferDirection,
    inventory: list[str],
) -> str | None:
    """Move one item between a room and the caller's inventory.

    `take` fuzzy-matches against the room's items; `drop` against the inventory.
    Returns the moved entry, or None when nothing matched (nothing is mutated then).
    """

    room = require_room(world, room_id)
    if direction == "take":
        src, dst = room.items, inventory
    elif direction == "drop":
        src, dst = inventory, room.items
    else:
        raise ValueError(f"Unknown transfer direction: {direction}")

    idx = fuzzy_index(src, item, name_of=world.item_name)
    if idx < 0:
        return None
    moved = src.pop(idx)
    dst.append(moved)
    return moved


def room_from_payload(obj: dict[str, Any]) -> Room:
    """Convert a validated structured room object into a Room.

    List-shaped exits become unexplored exits keyed by exit_id, with their labels kept.
    """

    exits: dict[str, str | None] = {}
    labels: dict[str, ExitLabel] = {}
    raw_exits = obj.get("exits")
    if isinstance(raw_exits, dict):
        exits = {str(k): (str(v) if v else None) for k, v in raw_exits.items()}
    elif isinstance(raw_exits, list):
        for ex in raw_exits:
            exit_id = str(ex["exit_id"])
            exits[exit_id] = None
            labels[exit_id] = ExitLabel(label=str(ex["label"]), keywords=[str(k) for k in ex.get("keywords", [])])

    items: list[str] = []
    for it in obj.get("items") or []:
        if isinstance(it, str):
            items.append(it)
        elif isinstance(it, dict):
            name = it.get("name") or it.get("item_id")
            if isinstance(name, str) and name:
                items.append(name)

    return Room(
        id=str(obj["room_id"]),
        name=str(obj.get("title", obj.get("name", obj["room_id"]))),
        description=str(obj.get("description", "")),
        exits=exits,
        items=items,
        exit_labels=labels,
    )
