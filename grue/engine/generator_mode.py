from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from grue.engine.deltas import StateDelta, apply_delta, delta_from_snapshot
from grue.engine.outcome import CommandContext, CommandOutcome
from grue.engine.parser_mode import npc_name
from grue.errors import UnrecognizedFormat
from grue.generator.base import GenerationRequest, Message
from grue.generator.gateway import NarrativeGateway
from grue.generator.json_schema import JsonSchema
from grue.prompts import render_prompt
from grue.session_store import Session, Turn
from grue.state import MAX_HEALTH, GameState
from grue.world.models import World
from grue.world.mutations import require_room


logger = logging.getLogger(__name__)

PROMPT_HISTORY_TURNS = 3

ACTION_TYPES = ["movement", "interaction", "combat", "dialogue", "examine", "use_item", "quest", "system"]


def _str_list() -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}}


UPDATE_GAME_STATE = JsonSchema(
    name="update_game_state",
    schema={
        "type": "object",
        "properties": {
            "narrative_response": {"type": "string"},
            "state_changes": {
                "type": "object",
                "properties": {
                    "new_room_id": {"type": "string"},
                    "inventory_add": _str_list(),
                    "inventory_remove": _str_list(),
                    "quest_updates": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "quest_id": {"type": "string"},
                                "action": {"type": "string", "enum": ["start", "progress", "complete"]},
                                "progress_note": {"type": "string"},
                            },
                            "required": ["quest_id", "action"],
                        },
                    },
                    "npc_interactions": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "npc_id": {"type": "string"},
                                "relationship_change": {"type": "integer"},
                                "unlocked_dialogue": {"type": "string"},
                            },
                            "required": ["npc_id"],
                        },
                    },
                    "resource_changes": {
                        "type": "object",
                        "properties": {
                            "gold": {"type": "integer"},
                            "supplies": {"type": "integer"},
                            "health": {"type": "integer"},
                        },
                    },
                    "game_flags": {"type": "object", "additionalProperties": {"type": "boolean"}},
                    "room_updates": {"type": "object", "additionalProperties": _str_list()},
                    "score_change": {"type": "integer"},
                },
            },
            "action_type": {"type": "string", "enum": ACTION_TYPES},
            "educational_note": {"type": "string"},
        },
        "required": ["narrative_response", "state_changes", "action_type"],
    },
)


class ToolCallUpdate(BaseModel):
    """Current format: the update_game_state tool-call arguments."""

    narrative_response: str
    state_changes: StateDelta = Field(default_factory=StateDelta)
    action_type: str = "system"
    educational_note: str | None = None


class LegacySnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_room: str | None = Field(default=None, alias="currentRoom")
    inventory: list[str] | None = None
    health: int | None = None
    score: int | None = None


class LegacyRoomUpdate(BaseModel):
    items: list[str] | None = None


class LegacyUpdate(BaseModel):
    """Older format: narrative plus a full state snapshot and per-room item lists."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    game_state: LegacySnapshot | None = Field(default=None, alias="gameState")
    room_updates: dict[str, LegacyRoomUpdate] = Field(default_factory=dict, alias="roomUpdates")


UPDATE_FORMATS: list[type[BaseModel]] = [ToolCallUpdate, LegacyUpdate]


def normalize_update(update: BaseModel, before: GameState) -> ToolCallUpdate:
    """Convert any decoded format into the tool-call shape with an explicit delta."""

    if isinstance(update, ToolCallUpdate):
        return update
    if not isinstance(update, LegacyUpdate):
        raise UnrecognizedFormat(f"Unsupported update format: {type(update).__name__}")
    snap = update.game_state or LegacySnapshot()
    delta = delta_from_snapshot(
        before,
        current_room=snap.current_room,
        inventory=snap.inventory,
        health=snap.health,
        score=snap.score,
    )
    delta.room_updates = {rid: ru.items for rid, ru in update.room_updates.items() if ru.items is not None}
    return ToolCallUpdate(narrative_response=update.message, state_changes=delta, action_type="system")


def format_history(turns: list[Turn]) -> str:
    if not turns:
        return "(none)"
    return "\n".join(f"{t.role}: {t.content}" for t in turns)


def build_context(world: World, state: GameState) -> str:
    room = require_room(world, state.current_room)
    exits = ", ".join(f"{d}: {t}" for d, t in room.exits.items() if t) or "none"
    quests = ", ".join(f"{q.name or q.id} ({q.id}, {q.progress}%)" for q in state.active_quests) or "none"
    available_quests = ", ".join(
        f"{q.name} ({q.id})"
        for q in world.quests
        if state.active_quest(q.id) is None and not any(c.id == q.id for c in state.completed_quests)
    )
    resources = ", ".join(f"{k.capitalize()}: {v}" for k, v in state.resources.items()) or "none"
    npcs = ", ".join(f"{npc_name(world, n)} ({n})" for n in room.npcs) or "none"
    items = ", ".join(world.item_name(i) for i in room.items) or "none"
    inventory = ", ".join(world.item_name(i) for i in state.inventory) or "empty"

    lines = [
        f"- Location: {room.name} ({room.id})",
        f"- Description: {room.description}",
        f"- Available Exits: {exits}",
        f"- Inventory: {inventory}",
        f"- Active Quests: {quests}",
    ]
    if available_quests:
        lines.append(f"- Quests not yet started: {available_quests}")
    lines += [
        f"- Health: {state.health}/{MAX_HEALTH}",
        f"- Resources: {resources}",
        f"- NPCs here: {npcs}",
        f"- Items here: {items}",
    ]
    return "\n".join(lines)


def build_request(session: Session, world: World, state: GameState, command: str) -> GenerationRequest:
    system = render_prompt(
        "dungeon_master.txt",
        title=world.title,
        setting=world.setting or world.theme,
        context=build_context(world, state),
        history=format_history(session.recent_turns(PROMPT_HISTORY_TURNS)),
    )
    return GenerationRequest(
        system=system,
        messages=[Message(role="user", content=command)],
        structured_output=UPDATE_GAME_STATE,
        previous_response_id=session.previous_response_id,
        seed=session.seed,
        metadata={"kind": "command"},
    )


class GeneratorStrategy:
    """Generator-mediated processing: the generator narrates and proposes a delta,
    which is applied with the same mutation rules as the parser."""

    name = "generator"

    def __init__(self, gateway: NarrativeGateway) -> None:
        self.gateway = gateway

    async def handle(self, ctx: CommandContext) -> CommandOutcome:
        request = build_request(ctx.session, ctx.world, ctx.state, ctx.command)
        update, result = await self.gateway.generate_model(request, UPDATE_FORMATS, corr=ctx.corr)
        tool_update = normalize_update(update, ctx.state)

        applied = apply_delta(ctx.state, ctx.world, tool_update.state_changes)
        # Hand the applied copies back through the context for the engine to commit.
        ctx.state = applied.state
        ctx.world = applied.world

        return CommandOutcome(
            message=tool_update.narrative_response,
            state_changed=applied.changed,
            room_updates=applied.room_updates,
            action_type=tool_update.action_type,
            educational_note=tool_update.educational_note,
            response_id=result.response_id,
        )
