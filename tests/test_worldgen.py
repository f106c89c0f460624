from __future__ import annotations

import asyncio
import copy

import pytest
from conftest import PLAN, ScriptedGenerator, queue_generated_world

from grue.errors import GeneratorTransportError, PlanningError, WorldGenerationError
from grue.generator.base import GenerationRequest, GeneratorResult
from grue.generator.gateway import NarrativeGateway
from grue.world.navigation import DIRECTIONS
from grue.worldgen.builder import expand_world
from grue.worldgen.plan import WorldPlan, WorldRequest
from grue.worldgen.planner import plan_world
from grue.worldgen.service import generate_world


@pytest.mark.asyncio
async def test_generate_world_joins_plan_and_content(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    queue_generated_world(generator)
    generated = await generate_world(gateway, WorldRequest(theme="gothic", difficulty="hard"), planning_backoff_s=0)

    assert generated.source == "generated" and generated.error is None
    world = generated.world
    assert world.title == "The Sunken Bell"
    assert world.theme == "gothic" and world.difficulty == "hard"
    assert world.start_room_id() == "cloister"

    belfry = next(r for r in world.rooms if r.id == "belfry")
    assert set(belfry.exits) == set(DIRECTIONS)
    assert belfry.exits["south"] == "cloister"
    # "sky" is not a location.
    assert belfry.exits["up"] is None
    assert belfry.npcs == ["monk"]
    assert belfry.items == ["brass_key"]
    assert world.item_name("brass_key") == "Brass Key"

    monk = world.npc("monk")
    assert monk is not None and monk.name == "Brother Ash" and monk.dialogue == "Peace be with you."
    quest = world.quest("ring")
    assert quest is not None and quest.description == "The bell must ring." and quest.steps == ["Climb the belfry"]


@pytest.mark.asyncio
async def test_plan_world_retries_then_succeeds(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    generator.queue_for("plan_world", "no json here", {"title": "x", "locations": []}, PLAN)
    plan = await plan_world(gateway, WorldRequest(), max_attempts=3, backoff_s=0)
    assert isinstance(plan, WorldPlan)
    assert [loc.id for loc in plan.locations] == ["cloister", "belfry"]
    assert len(generator.requests) == 3


@pytest.mark.asyncio
async def test_plan_world_fails_after_attempts(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    generator.queue_for(
        "plan_world",
        {"locations": [], "characters": [], "quests": []},
        {"locations": [{"id": "a"}]},
    )
    with pytest.raises(PlanningError) as ei:
        await plan_world(gateway, WorldRequest(), max_attempts=2, backoff_s=0)
    assert "missing required keys" in str(ei.value)


@pytest.mark.asyncio
async def test_expand_world_rejects_content_for_unknown_ids(
    generator: ScriptedGenerator, gateway: NarrativeGateway
) -> None:
    plan = WorldPlan.model_validate(PLAN)
    queue_generated_world(generator)
    generator.by_kind["generate_all_rooms"] = [
        '{"rooms": [{"id": "cloister", "description": "a"}, {"id": "belfry", "description": "b"},'
        ' {"id": "crypt", "description": "c"}]}'
    ]
    with pytest.raises(WorldGenerationError) as ei:
        await expand_world(gateway, plan)
    assert "crypt" in str(ei.value)


@pytest.mark.asyncio
async def test_expand_world_rejects_missing_content(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    plan_data = copy.deepcopy(PLAN)
    plan_data["quests"].append({"id": "second", "name": "Second"})
    queue_generated_world(generator, plan_data)
    generator.by_kind["generate_quest_content"] = ['{"quests": [{"id": "ring"}]}']
    with pytest.raises(WorldGenerationError) as ei:
        await expand_world(gateway, WorldPlan.model_validate(plan_data))
    assert "second" in str(ei.value)


@pytest.mark.asyncio
async def test_generate_world_falls_back_to_canned(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    generator.queue_for("plan_world", GeneratorTransportError("down"))
    generated = await generate_world(gateway, WorldRequest(theme="horror"), planning_attempts=1)
    assert generated.source == "canned"
    assert generated.world.theme == "horror"
    assert generated.error and "down" in generated.error


class _SlowGenerator:
    name = "slow"

    async def complete(self, request: GenerationRequest) -> GeneratorResult:
        await asyncio.sleep(5)
        return GeneratorResult(text="{}")

    async def stream(self, request: GenerationRequest):  # type: ignore[no-untyped-def]
        yield  # pragma: no cover


@pytest.mark.asyncio
async def test_generate_world_times_out_to_canned() -> None:
    gateway = NarrativeGateway(_SlowGenerator())  # type: ignore[arg-type]
    generated = await generate_world(gateway, WorldRequest(theme="space"), timeout_s=0.05)
    assert generated.source == "canned"
    assert generated.world.theme == "space"
    assert "timed out" in (generated.error or "")
