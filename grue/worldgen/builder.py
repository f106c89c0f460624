from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Sequence
from typing import TypeVar

from pydantic import BaseModel

from grue.errors import WorldGenerationError
from grue.generator.base import GenerationRequest, Message
from grue.generator.gateway import NarrativeGateway
from grue.generator.json_schema import JsonSchema
from grue.prompts import render_prompt
from grue.world.models import ItemDef, Npc, Quest, Room, World
from grue.world.navigation import build_navigation_map
from grue.world.validation import check_world
from grue.worldgen.plan import (
    CHARACTERS_SCHEMA,
    QUESTS_SCHEMA,
    ROOMS_SCHEMA,
    CharactersPayload,
    QuestsPayload,
    RoomsPayload,
    WorldPlan,
    WorldRequest,
)


logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.casefold()).strip("_") or "item"


def _join(kind: str, plan_ids: Sequence[str], content_ids: Sequence[str]) -> None:
    known = set(plan_ids)
    stray = [cid for cid in content_ids if cid not in known]
    if stray:
        raise WorldGenerationError(f"{kind} content references unknown ids: {', '.join(stray)}")
    missing = [pid for pid in plan_ids if pid not in set(content_ids)]
    if missing:
        raise WorldGenerationError(f"{kind} content is missing ids: {', '.join(missing)}")


async def _expand_part(
    gateway: NarrativeGateway,
    *,
    prompt: str,
    schema: JsonSchema,
    payload_model: type[P],
    user_content: str,
    plan: WorldPlan,
    corr: str | None,
) -> P:
    request = GenerationRequest(
        system=render_prompt(prompt, title=plan.title, setting=plan.setting, story=plan.main_story),
        messages=[Message(role="user", content=user_content)],
        structured_output=schema,
        metadata={"kind": schema.name},
    )
    model, _ = await gateway.generate_model(request, [payload_model], corr=corr)
    return model


async def expand_world(
    gateway: NarrativeGateway,
    plan: WorldPlan,
    request: WorldRequest | None = None,
    *,
    corr: str | None = None,
) -> World:
    """Fill in room, character and quest content for `plan` and join it into a World.

    The three generator calls run concurrently. Any failed call, or any content that does
    not line up one-to-one with the plan's ids, fails the whole expansion.
    """

    rooms_p, chars_p, quests_p = await asyncio.gather(
        _expand_part(
            gateway,
            prompt="rooms.txt",
            schema=ROOMS_SCHEMA,
            payload_model=RoomsPayload,
            user_content="Generate complete content for these rooms: "
            + json.dumps([{"id": loc.id, "name": loc.name, "description": loc.description} for loc in plan.locations]),
            plan=plan,
            corr=corr,
        ),
        _expand_part(
            gateway,
            prompt="characters.txt",
            schema=CHARACTERS_SCHEMA,
            payload_model=CharactersPayload,
            user_content="Create these characters: " + json.dumps([c.model_dump() for c in plan.characters]),
            plan=plan,
            corr=corr,
        ),
        _expand_part(
            gateway,
            prompt="quests.txt",
            schema=QUESTS_SCHEMA,
            payload_model=QuestsPayload,
            user_content="Create content for these quests: " + json.dumps([q.model_dump() for q in plan.quests]),
            plan=plan,
            corr=corr,
        ),
    )

    _join("room", [loc.id for loc in plan.locations], [r.id for r in rooms_p.rooms])
    _join("character", [c.id for c in plan.characters], [c.id for c in chars_p.characters])
    _join("quest", [q.id for q in plan.quests], [q.id for q in quests_p.quests])

    nav = build_navigation_map([loc.model_dump() for loc in plan.locations])
    room_content = {r.id: r for r in rooms_p.rooms}
    char_content = {c.id: c for c in chars_p.characters}
    quest_content = {q.id: q for q in quests_p.quests}
    location_ids = {loc.id for loc in plan.locations}

    npcs: list[Npc] = []
    for pc in plan.characters:
        content = char_content[pc.id]
        npcs.append(
            Npc(
                id=pc.id,
                name=content.name or pc.name or pc.id,
                location=pc.location if pc.location in location_ids else None,
                description=content.appearance or pc.role,
                personality=content.personality,
                dialogue=content.greeting,
            )
        )

    items: dict[str, ItemDef] = {}
    rooms: list[Room] = []
    for loc in plan.locations:
        content = room_content[loc.id]
        room_items: list[str] = []
        for name in content.items:
            item_id = _slug(name)
            items.setdefault(item_id, ItemDef(id=item_id, name=name))
            room_items.append(item_id)
        rooms.append(
            Room(
                id=loc.id,
                name=content.name or loc.name or loc.id,
                description=content.description or loc.description,
                exits=nav[loc.id],
                items=room_items,
                npcs=[n.id for n in npcs if n.location == loc.id],
                first_visit_text=content.first_visit_text,
            )
        )

    quests = [
        Quest(
            id=pq.id,
            name=quest_content[pq.id].name or pq.name or pq.id,
            description=quest_content[pq.id].introduction_text or pq.description,
            steps=quest_content[pq.id].objectives or pq.steps,
        )
        for pq in plan.quests
    ]

    world = World(
        title=plan.title,
        description=plan.main_story,
        theme=request.theme if request is not None else "fantasy",
        setting=plan.setting,
        difficulty=request.difficulty if request is not None else "medium",
        starting_room=plan.starting_location if plan.starting_location in location_ids else plan.locations[0].id,
        rooms=rooms,
        items=list(items.values()),
        npcs=npcs,
        quests=quests,
    )
    logger.info("expanded world corr=%s rooms=%s npcs=%s quests=%s", corr, len(rooms), len(npcs), len(quests))
    return check_world(world)
