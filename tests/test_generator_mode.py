from __future__ import annotations

import pytest
from conftest import ScriptedGenerator
from pydantic import BaseModel

from grue.engine.generator_mode import GeneratorStrategy, build_context, build_request, normalize_update
from grue.engine.outcome import CommandContext
from grue.errors import UnrecognizedFormat
from grue.generator.gateway import NarrativeGateway
from grue.session_store import SessionStore
from grue.state import new_game_state
from grue.world.models import World


def _ctx(world: World, command: str) -> CommandContext:
    session = SessionStore().get_or_create("s", seed=1234)
    return CommandContext(session=session, world=world, state=new_game_state("start"), command=command, corr="c")


def test_context_lists_exits_quests_and_resources(world: World) -> None:
    text = build_context(world, new_game_state("start"))
    assert "- Location: Start (start)" in text
    assert "- Available Exits: north: hall" in text
    assert "- Quests not yet started: Find the Light (q1)" in text
    assert "Gold: 100" in text and "- Health: 100/100" in text
    assert "- Items here: torch" in text


def test_request_carries_recent_history_seed_and_continuation(world: World) -> None:
    session = SessionStore().get_or_create("s", seed=99)
    for i in range(5):
        session.remember("user", f"turn {i}")
    session.previous_response_id = "resp_1"

    req = build_request(session, world, new_game_state("start"), "look")
    assert req.seed == 99
    assert req.previous_response_id == "resp_1"
    assert req.structured_output is not None and req.structured_output.name == "update_game_state"
    assert "turn 4" in req.system and "turn 2" in req.system and "turn 1" not in req.system
    assert req.messages[-1].content == "look"


@pytest.mark.asyncio
async def test_tool_call_update_is_applied(
    world: World, generator: ScriptedGenerator, gateway: NarrativeGateway
) -> None:
    generator.response_ids.append("resp_2")
    generator.queue(
        {
            "narrative_response": "You lift the torch and step north.",
            "state_changes": {
                "new_room_id": "hall",
                "inventory_add": ["torch"],
                "quest_updates": [{"quest_id": "q1", "action": "start"}],
                "score_change": 3,
            },
            "action_type": "movement",
            "educational_note": "Torches were often soaked in pitch.",
        }
    )
    ctx = _ctx(world, "take the torch and go north")
    out = await GeneratorStrategy(gateway).handle(ctx)

    assert out.message == "You lift the torch and step north."
    assert out.state_changed and out.action_type == "movement"
    assert out.educational_note == "Torches were often soaked in pitch."
    assert out.response_id == "resp_2"
    assert ctx.state.current_room == "hall"
    assert ctx.state.inventory == ["torch"]
    assert ctx.world.rooms[0].items == []
    assert ctx.state.active_quest("q1") is not None
    assert ctx.state.score == 3


@pytest.mark.asyncio
async def test_legacy_snapshot_update_is_applied(
    world: World, generator: ScriptedGenerator, gateway: NarrativeGateway
) -> None:
    generator.queue(
        'The hermit nods.\n{"message": "You pocket the torch.", '
        '"gameState": {"currentRoom": "start", "inventory": ["torch"], "health": 95, "score": 1}, '
        '"roomUpdates": {"start": {"items": []}}}'
    )
    ctx = _ctx(world, "take torch")
    out = await GeneratorStrategy(gateway).handle(ctx)

    assert out.message == "You pocket the torch."
    assert out.room_updates == {"start": []}
    assert ctx.state.inventory == ["torch"]
    assert ctx.state.health == 95 and ctx.state.score == 1
    assert ctx.world.rooms[0].items == []


@pytest.mark.asyncio
async def test_unrecognized_format_raises(world: World, generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    generator.queue({"reply": "hello"})
    ctx = _ctx(world, "wave")
    with pytest.raises(UnrecognizedFormat):
        await GeneratorStrategy(gateway).handle(ctx)
    assert ctx.state.turn_count == 0


def test_normalize_update_rejects_unknown_models() -> None:
    class Shrug(BaseModel):
        reply: str = "?"

    with pytest.raises(UnrecognizedFormat):
        normalize_update(Shrug(), new_game_state("start"))
