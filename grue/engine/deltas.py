"""Field-by-field application of state deltas.

Each `apply_*` function mutates the state/world it is handed and reports whether it
changed anything. `apply_delta` runs them all against deep copies and returns the
copies, so a delta that fails halfway leaves the caller's objects untouched.
"""
from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

from grue.errors import InvariantViolation
from grue.state import GameState, NpcState, QuestProgress, clamp_health
from grue.world.models import World
from grue.world.mutations import find_room, fuzzy_index


logger = logging.getLogger(__name__)

QUEST_PROGRESS_STEP = 25
QUEST_COMPLETION_REWARD = 100
PUZZLE_REWARD = 10


class QuestUpdate(BaseModel):
    quest_id: str
    action: Literal["start", "progress", "complete"]
    progress_note: str = ""


class NpcInteraction(BaseModel):
    npc_id: str
    relationship_change: int = 0
    unlocked_dialogue: str | None = None


class ResourceChanges(BaseModel):
    gold: int | None = None
    supplies: int | None = None
    health: int | None = None


class StateDelta(BaseModel):
    new_room_id: str | None = None
    inventory_add: list[str] = Field(default_factory=list)
    inventory_remove: list[str] = Field(default_factory=list)
    quest_updates: list[QuestUpdate] = Field(default_factory=list)
    npc_interactions: list[NpcInteraction] = Field(default_factory=list)
    resource_changes: ResourceChanges = Field(default_factory=ResourceChanges)
    game_flags: dict[str, bool] = Field(default_factory=dict)
    room_updates: dict[str, list[str]] = Field(default_factory=dict)
    score_change: int = 0


@dataclass(slots=True)
class AppliedDelta:
    state: GameState
    world: World
    changed: bool
    room_updates: dict[str, list[str]] = field(default_factory=dict)


def apply_movement(state: GameState, world: World, new_room_id: str | None) -> bool:
    """Move through an exit of the current room.

    A target with no room behind it is an InvariantViolation. A real room that no exit
    of the current room leads to is ignored, the same as walking into a wall.
    """

    if not new_room_id or new_room_id == state.current_room:
        return False
    if find_room(world, new_room_id) is None:
        raise InvariantViolation(f"Cannot move to unknown room: {new_room_id}")
    here = find_room(world, state.current_room)
    if here is None or new_room_id not in here.exits.values():
        logger.info("move %s -> %s ignored: no exit leads there", state.current_room, new_room_id)
        return False
    state.current_room = new_room_id
    state.mark_visited(new_room_id)
    return True


def apply_inventory(
    state: GameState,
    world: World,
    add: list[str],
    remove: list[str],
    *,
    rooms: Sequence[str] = (),
) -> bool:
    """Add and remove inventory entries.

    An added item that is lying in one of `rooms` (default: the current room) is moved
    out of that room, so it is never in both places. Removing an item the player does
    not hold is ignored.
    """

    changed = False
    nearby = [r for r in (find_room(world, rid) for rid in (rooms or [state.current_room])) if r is not None]
    for item in add:
        if not item:
            continue
        for room in nearby:
            idx = fuzzy_index(room.items, item, name_of=world.item_name)
            if idx >= 0:
                state.inventory.append(room.items.pop(idx))
                break
        else:
            state.inventory.append(item)
        changed = True

    for item in remove:
        idx = fuzzy_index(state.inventory, item, name_of=world.item_name)
        if idx < 0:
            logger.debug("inventory_remove: %r not held, ignoring", item)
            continue
        state.inventory.pop(idx)
        changed = True
    return changed


def apply_room_updates(world: World, updates: dict[str, list[str]], *, held: Sequence[str] = ()) -> bool:
    """Replace room item lists.

    Entries the player is holding (`held`, counted as a multiset) are left out of the
    new lists, so an update cannot put a carried item back on the floor.
    """

    rooms = {room_id: find_room(world, room_id) for room_id in updates}
    missing = [room_id for room_id, room in rooms.items() if room is None]
    if missing:
        raise InvariantViolation(f"Room update for unknown room: {missing[0]}")

    carried = Counter(held)
    changed = False
    for room_id, items in updates.items():
        room = rooms[room_id]
        if room is None:
            continue
        kept: list[str] = []
        for item in items:
            if carried[item] > 0:
                carried[item] -= 1
                logger.info("room update for %s dropped %r: already in inventory", room_id, item)
                continue
            kept.append(item)
        if room.items != kept:
            room.items = kept
            changed = True
    return changed


def apply_quest_update(state: GameState, world: World, update: QuestUpdate) -> bool:
    active = state.active_quest(update.quest_id)

    if update.action == "start":
        if active is not None or any(q.id == update.quest_id for q in state.completed_quests):
            return False
        quest = world.quest(update.quest_id)
        state.active_quests.append(
            QuestProgress(id=update.quest_id, name=quest.name if quest is not None else update.quest_id)
        )
        return True

    if active is None:
        logger.debug("quest %s %s ignored: not active", update.action, update.quest_id)
        return False

    if update.action == "progress":
        active.progress = min(100, active.progress + QUEST_PROGRESS_STEP)
        if update.progress_note:
            active.notes.append(update.progress_note)
        return True

    state.active_quests = [q for q in state.active_quests if q.id != update.quest_id]
    active.completed_at = state.turn_count
    if update.progress_note:
        active.notes.append(update.progress_note)
    state.completed_quests.append(active)
    state.score += QUEST_COMPLETION_REWARD
    return True


def apply_npc_interaction(state: GameState, interaction: NpcInteraction) -> bool:
    npc = state.npc_states.setdefault(interaction.npc_id, NpcState())
    changed = False
    if interaction.relationship_change:
        npc.relationship += interaction.relationship_change
        changed = True
    if interaction.unlocked_dialogue and interaction.unlocked_dialogue not in npc.unlocked_dialogue:
        npc.unlocked_dialogue.append(interaction.unlocked_dialogue)
        changed = True
    return changed


def apply_resources(state: GameState, changes: ResourceChanges) -> bool:
    changed = False
    if changes.health:
        state.health = clamp_health(state.health + changes.health)
        changed = True
    for name in ("gold", "supplies"):
        amount = getattr(changes, name)
        if amount:
            state.resources[name] = state.resources.get(name, 0) + amount
            changed = True
    return changed


def apply_flags(state: GameState, flags: dict[str, bool]) -> bool:
    changed = False
    for name, value in flags.items():
        if state.game_flags.get(name) != value:
            state.game_flags[name] = value
            changed = True
    return changed


def apply_score(state: GameState, score_change: int) -> bool:
    if not score_change:
        return False
    state.score += score_change
    return True


def apply_delta(state: GameState, world: World, delta: StateDelta) -> AppliedDelta:
    new_state = state.model_copy(deep=True)
    new_world = world.model_copy(deep=True)

    origin = new_state.current_room
    changed = apply_movement(new_state, new_world, delta.new_room_id)
    # Items are picked up from the room the command started in, then the one it ended in.
    changed = (
        apply_inventory(
            new_state,
            new_world,
            delta.inventory_add,
            delta.inventory_remove,
            rooms=list(dict.fromkeys([origin, new_state.current_room])),
        )
        or changed
    )
    changed = apply_room_updates(new_world, delta.room_updates, held=new_state.inventory) or changed
    for qu in delta.quest_updates:
        changed = apply_quest_update(new_state, new_world, qu) or changed
    for ni in delta.npc_interactions:
        changed = apply_npc_interaction(new_state, ni) or changed
    changed = apply_resources(new_state, delta.resource_changes) or changed
    changed = apply_flags(new_state, delta.game_flags) or changed
    changed = apply_score(new_state, delta.score_change) or changed

    room_updates = {
        room_id: list(room.items)
        for room_id in delta.room_updates
        if (room := find_room(new_world, room_id)) is not None
    }
    return AppliedDelta(state=new_state, world=new_world, changed=changed, room_updates=room_updates)


def delta_from_snapshot(
    before: GameState,
    *,
    current_room: str | None,
    inventory: list[str] | None,
    health: int | None,
    score: int | None,
) -> StateDelta:
    """Express a full state snapshot as the delta from `before`."""

    inv_add: list[str] = []
    inv_remove: list[str] = []
    if inventory is not None:
        old, new = Counter(before.inventory), Counter(inventory)
        inv_add = list((new - old).elements())
        inv_remove = list((old - new).elements())

    return StateDelta(
        new_room_id=current_room if current_room and current_room != before.current_room else None,
        inventory_add=inv_add,
        inventory_remove=inv_remove,
        resource_changes=ResourceChanges(health=(health - before.health) if health is not None else None),
        score_change=(score - before.score) if score is not None else 0,
    )
