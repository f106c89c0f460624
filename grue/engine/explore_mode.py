"""Exploration ("console") mode: rooms are generated one hop at a time as the player
walks through labelled exits, starting from a cave of five portals."""
from __future__ import annotations

import logging
import re
from typing import Any

from grue.engine.outcome import CommandContext, CommandOutcome
from grue.engine.parser_mode import ParserStrategy
from grue.errors import SchemaError
from grue.generator.gateway import NarrativeGateway
from grue.session_store import Session
from grue.state import GameState, new_game_state
from grue.world.models import ExitLabel, Room, World
from grue.world.mutations import require_room, room_from_payload


logger = logging.getLogger(__name__)

EXPLORE_HELP = (
    "Commands: look, look <thing>, inventory, take <item>, drop <item>, "
    "go <number|keyword|label>, try again <number|label>, back, quit"
)
STEER = 'You can do many things, but the way forward insists: choose an exit (e.g., "go 1" or "go east").'
START_MESSAGE = "You awaken in a cave of five glowing entrances..."

_START_INSTRUCTION = (
    "Create the starting cave room with five glowing entrances "
    "(space/sci-fi, historic, scary, travel mystery, fantasy)."
)
_NEXT_INSTRUCTION = (
    "Generate the next room entered via the chosen exit. Include a short challenge the player must overcome. "
    "Ensure exits are provided, items/NPCs if any. Do not generate rooms beyond one hop."
)


def room_payload(room: Room) -> dict[str, Any]:
    """Render a room back into the structured room shape the generator speaks."""

    return {
        "room_id": room.id,
        "title": room.name,
        "description": room.description,
        "exits": [
            {
                "exit_id": exit_id,
                "label": room.exit_labels[exit_id].label if exit_id in room.exit_labels else exit_id,
                "keywords": room.exit_labels[exit_id].keywords if exit_id in room.exit_labels else [exit_id],
            }
            for exit_id in room.exits
        ],
        "items": list(room.items),
    }


def describe_exits(room: Room) -> str:
    lines = []
    for n, exit_id in enumerate(room.exits, start=1):
        label = room.exit_labels[exit_id].label if exit_id in room.exit_labels else exit_id
        lines.append(f"{n}. {label}")
    return "\n".join(lines)


def resolve_exit(room: Room, arg: str) -> str | None:
    """Pick an exit id by 1-based number, exact keyword, exit id, or part of its label."""

    arg = arg.strip().casefold()
    if not arg:
        return None
    exit_ids = list(room.exits)
    if re.fullmatch(r"\d+", arg):
        i = int(arg) - 1
        return exit_ids[i] if 0 <= i < len(exit_ids) else None
    for exit_id in exit_ids:
        label = room.exit_labels.get(exit_id)
        if exit_id.casefold() == arg:
            return exit_id
        if label is not None and any(k.casefold() == arg for k in label.keywords):
            return exit_id
    for exit_id in exit_ids:
        label = room.exit_labels.get(exit_id)
        if label is not None and arg in label.label.casefold():
            return exit_id
    return None


def _unique_room_id(world: World, room_id: str) -> str:
    taken = set(world.room_ids())
    if room_id not in taken:
        return room_id
    n = 2
    while f"{room_id}_{n}" in taken:
        n += 1
    return f"{room_id}_{n}"


class ExploreStrategy:
    name = "explore"

    def __init__(self, gateway: NarrativeGateway) -> None:
        self.gateway = gateway
        self._parser = ParserStrategy()

    async def start(self, session: Session, *, corr: str | None = None) -> tuple[World, GameState, str]:
        """Generate the starting room. Raises GeneratorError subclasses on failure."""

        payload = {"kind": "start_room", "seed": session.seed, "instruction": _START_INSTRUCTION}
        data = await self.gateway.generate_room(payload, seed=session.seed, corr=corr)
        room = room_from_payload(data)
        world = World(
            title="The Cave of Portals",
            description="An ever-growing world generated one room at a time.",
            theme="explore",
            starting_room=room.id,
            rooms=[room],
        )
        return world, new_game_state(room.id), START_MESSAGE

    async def handle(self, ctx: CommandContext) -> CommandOutcome:
        raw = ctx.command.strip()
        lower = raw.casefold()
        room = require_room(ctx.world, ctx.state.current_room)

        if lower in {"help", "h", "?"}:
            return CommandOutcome(message=EXPLORE_HELP, action_type="system")
        if lower in {"look", "l"}:
            return CommandOutcome(message=f"{room.description}\n\n{describe_exits(room)}".strip(), action_type="examine")
        if lower == "quit":
            return CommandOutcome(message="Session ended.", ended=True, action_type="system")
        if lower.startswith("try again"):
            return await self._reroll(ctx, room, lower[len("try again") :].strip())
        if lower == "back":
            return await self._go(ctx, room, "back")
        if lower.startswith("go "):
            return await self._go(ctx, room, lower[3:].strip())

        verb = lower.split()[0]
        if verb in {"look", "l", "examine", "x", "inventory", "inv", "i", "take", "get", "grab", "pick", "drop", "put", "use", "talk", "speak"}:
            return await self._parser.handle(ctx)
        return CommandOutcome(message=STEER)

    async def _go(self, ctx: CommandContext, room: Room, arg: str) -> CommandOutcome:
        exit_id = resolve_exit(room, arg)
        if exit_id is None:
            return CommandOutcome(message="Which way? Match a number, direction, keyword, or part of a label.")

        linked = room.exits.get(exit_id)
        if linked is not None:
            target = require_room(ctx.world, linked)
            ctx.state.current_room = target.id
            ctx.state.mark_visited(target.id)
            return CommandOutcome(message=target.description, state_changed=True, action_type="movement")

        payload = {
            "kind": "next_room",
            "seed": ctx.session.seed,
            "previous_room": room_payload(room),
            "chosen_exit_id": exit_id,
            "instruction": _NEXT_INSTRUCTION,
        }
        data = await self.gateway.generate_room(payload, seed=ctx.session.seed, corr=ctx.corr)
        new_room = room_from_payload(data)
        new_room.id = _unique_room_id(ctx.world, new_room.id)
        new_room.exits.setdefault("back", room.id)
        new_room.exit_labels.setdefault("back", ExitLabel(label=f"Back to {room.name}", keywords=["back"]))

        room.exits[exit_id] = new_room.id
        ctx.world.rooms.append(new_room)
        ctx.state.current_room = new_room.id
        ctx.state.mark_visited(new_room.id)
        logger.info("explored corr=%s from=%s via=%s to=%s", ctx.corr, room.id, exit_id, new_room.id)
        return CommandOutcome(
            message=f"{new_room.description}\n\n{describe_exits(new_room)}".strip(),
            state_changed=True,
            action_type="movement",
        )

    async def _reroll(self, ctx: CommandContext, room: Room, arg: str) -> CommandOutcome:
        exit_id = resolve_exit(room, arg)
        if exit_id is None:
            return CommandOutcome(message='Specify which exit to reroll (e.g., "try again 3" or part of its label).')
        if room.exits.get(exit_id) is not None:
            return CommandOutcome(message="That way has already been explored; it cannot change now.")

        idx = list(room.exits).index(exit_id)
        payload = {
            "kind": "reroll_exit_label",
            "seed": ctx.session.seed,
            "current_room": room_payload(room),
            "exit_index": idx,
        }
        data = await self.gateway.generate_room(payload, seed=ctx.session.seed, corr=ctx.corr)
        exits = data.get("exits")
        if not isinstance(exits, list) or idx >= len(exits):
            raise SchemaError("Model failed to reroll exit label: exit missing from response")
        fresh = exits[idx]
        old = room.exit_labels.get(exit_id) or ExitLabel(label=exit_id)
        room.exit_labels[exit_id] = ExitLabel(
            label=fresh.get("label") or old.label,
            keywords=fresh["keywords"] if isinstance(fresh.get("keywords"), list) else old.keywords,
        )
        return CommandOutcome(
            message=f"The way shimmers and now reads: {room.exit_labels[exit_id].label}",
            state_changed=True,
            action_type="system",
        )
