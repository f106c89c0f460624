from __future__ import annotations

import asyncio
import json
import logging

from pydantic import ValidationError

from grue.errors import GeneratorError, PlanningError
from grue.generator.base import GenerationRequest, Message
from grue.generator.gateway import NarrativeGateway
from grue.prompts import render_prompt
from grue.worldgen.plan import PLAN_SCHEMA, WorldPlan, WorldRequest


logger = logging.getLogger(__name__)

REQUIRED_PLAN_KEYS = ("locations", "characters", "quests")


async def _plan_once(gateway: NarrativeGateway, request: WorldRequest, *, corr: str | None) -> WorldPlan:
    gen_request = GenerationRequest(
        system=render_prompt(
            "world_planner.txt",
            theme=request.theme,
            difficulty=request.difficulty,
            profile=request.profile,
        ),
        messages=[Message(role="user", content="Create the game now.")],
        structured_output=PLAN_SCHEMA,
        metadata={"kind": "plan_world"},
    )
    data, _ = await gateway.generate_json(gen_request, corr=corr)

    missing = [k for k in REQUIRED_PLAN_KEYS if not isinstance(data.get(k), list)]
    if missing:
        raise PlanningError(f"Plan is missing required keys: {', '.join(missing)}")
    if not data["locations"]:
        raise PlanningError("Plan has no locations")
    try:
        return WorldPlan.model_validate(data)
    except ValidationError as e:
        raise PlanningError(f"Plan does not match the design schema: {e.errors()[0].get('msg', e)}", cause=e) from e


async def plan_world(
    gateway: NarrativeGateway,
    request: WorldRequest,
    *,
    max_attempts: int = 3,
    backoff_s: float = 0.5,
    corr: str | None = None,
) -> WorldPlan:
    """Produce the locations/characters/quests skeleton, retrying up to `max_attempts`."""

    last: GeneratorError | None = None
    for attempt in range(1, max(1, max_attempts) + 1):
        try:
            plan = await _plan_once(gateway, request, corr=corr)
        except GeneratorError as e:
            last = e
            logger.warning("planning attempt %s/%s failed corr=%s: %s", attempt, max_attempts, corr, e)
            if attempt < max_attempts and backoff_s > 0:
                await asyncio.sleep(backoff_s * attempt)
            continue
        logger.info(
            "planned world corr=%s title=%s locations=%s",
            corr,
            json.dumps(plan.title),
            len(plan.locations),
        )
        return plan

    raise PlanningError(f"World planning failed after {max_attempts} attempts: {last}", cause=last)
