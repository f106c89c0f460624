from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from grue.errors import GeneratorError, InvariantViolation
from grue.generator.gateway import NarrativeGateway
from grue.world.canned import canned_world
from grue.world.models import World
from grue.worldgen.builder import expand_world
from grue.worldgen.planner import plan_world
from grue.worldgen.plan import WorldRequest


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GeneratedWorld:
    world: World
    source: str  # "generated" | "canned"
    error: str | None = None


async def build_world(
    gateway: NarrativeGateway,
    request: WorldRequest,
    *,
    planning_attempts: int = 3,
    planning_backoff_s: float = 0.5,
    corr: str | None = None,
) -> World:
    plan = await plan_world(gateway, request, max_attempts=planning_attempts, backoff_s=planning_backoff_s, corr=corr)
    return await expand_world(gateway, plan, request, corr=corr)


async def generate_world(
    gateway: NarrativeGateway,
    request: WorldRequest,
    *,
    timeout_s: float = 90.0,
    planning_attempts: int = 3,
    planning_backoff_s: float = 0.5,
    corr: str | None = None,
) -> GeneratedWorld:
    """Always returns a playable world: generated if possible, canned otherwise."""

    try:
        world = await asyncio.wait_for(
            build_world(
                gateway,
                request,
                planning_attempts=planning_attempts,
                planning_backoff_s=planning_backoff_s,
                corr=corr,
            ),
            timeout=timeout_s,
        )
    except TimeoutError:
        reason = f"World generation timed out after {timeout_s}s"
    except (GeneratorError, InvariantViolation) as e:
        reason = str(e)
    else:
        return GeneratedWorld(world=world, source="generated")

    logger.warning("world generation failed corr=%s theme=%s, using canned world: %s", corr, request.theme, reason)
    return GeneratedWorld(world=canned_world(request.theme), source="canned", error=reason)
