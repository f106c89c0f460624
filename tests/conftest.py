from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from grue.config import EngineSettings
from grue.generator.base import GenerationRequest, GeneratorResult, StreamDelta
from grue.generator.gateway import NarrativeGateway
from grue.state import new_game_state
from grue.world.models import World


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs, only when opted in.

    Keeps live-provider integration tests skipped unless explicitly enabled with
    GRUE_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("GRUE_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


def _encode(reply: str | dict[str, Any] | BaseException) -> str | BaseException:
    return json.dumps(reply) if isinstance(reply, dict) else reply


@dataclass
class ScriptedGenerator:
    """Generator double: replays queued replies in order and records every request.

    A queued Exception is raised instead of returned. Replies queued under a request
    kind (`request.metadata["kind"]`) take precedence over the shared queue, so
    concurrent calls get the right answer. Streaming replays `stream_chunks`.
    """

    replies: list[str | BaseException] = field(default_factory=list)
    by_kind: dict[str, list[str | BaseException]] = field(default_factory=dict)
    stream_chunks: list[str] = field(default_factory=list)
    stream_error: BaseException | None = None
    stream_response_id: str | None = None
    name: str = "scripted"
    requests: list[GenerationRequest] = field(default_factory=list)
    response_ids: list[str] = field(default_factory=list)

    def queue(self, *replies: str | dict[str, Any] | BaseException) -> None:
        for reply in replies:
            self.replies.append(_encode(reply))

    def queue_for(self, kind: str, *replies: str | dict[str, Any] | BaseException) -> None:
        self.by_kind.setdefault(kind, []).extend(_encode(r) for r in replies)

    async def complete(self, request: GenerationRequest) -> GeneratorResult:
        self.requests.append(request)
        keyed = self.by_kind.get(str(request.metadata.get("kind")))
        if keyed:
            reply = keyed.pop(0)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise AssertionError(f"ScriptedGenerator ran out of replies (kind={request.metadata.get('kind')})")
        if isinstance(reply, BaseException):
            raise reply
        rid = self.response_ids.pop(0) if self.response_ids else None
        return GeneratorResult(text=reply, usage={"total_tokens": 1}, duration_ms=1, response_id=rid)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        self.requests.append(request)
        for chunk in self.stream_chunks:
            yield StreamDelta(text=chunk)
        if self.stream_error is not None:
            raise self.stream_error
        if self.stream_response_id:
            yield StreamDelta(response_id=self.stream_response_id)


def make_world() -> World:
    """Two linked rooms with a torch, a hermit and a quest."""

    return World.model_validate(
        {
            "title": "Test Keep",
            "setting": "A small test keep",
            "starting_room": "start",
            "rooms": [
                {
                    "id": "start",
                    "name": "Start",
                    "description": "A bare stone room.",
                    "exits": {"north": "hall"},
                    "items": ["torch"],
                    "puzzles": [{"description": "A dark alcove.", "solution": "The torch lights the alcove."}],
                },
                {
                    "id": "hall",
                    "name": "Hall",
                    "description": "A long hall.",
                    "exits": {"south": "start"},
                    "npcs": ["hermit"],
                    "first_visit_text": "Dust swirls as you enter.",
                },
            ],
            "items": [{"id": "torch", "name": "torch", "description": "A pitch-soaked torch.", "usable": True}],
            "npcs": [{"id": "hermit", "name": "Old Hermit", "location": "hall", "dialogue": "Bring light."}],
            "quests": [{"id": "q1", "name": "Find the Light", "steps": ["Take the torch"]}],
        }
    )


def room_json(room_id: str = "cave", *, exits: int = 2, title: str | None = None) -> dict[str, Any]:
    return {
        "room_id": room_id,
        "title": title or room_id.title(),
        "description": f"You stand in the {room_id}.",
        "exits": [
            {"exit_id": f"e{i}", "label": f"Portal {i} (glowing)", "keywords": [f"portal{i}"]}
            for i in range(1, exits + 1)
        ],
        "items": [{"item_id": "pebble", "name": "pebble", "takeable": True, "description": "A pebble."}],
    }


PLAN = {
    "title": "The Sunken Bell",
    "setting": "A drowned abbey",
    "main_story": "Ring the sunken bell before the tide returns.",
    "starting_location": "cloister",
    "locations": [
        {"id": "cloister", "name": "Cloister", "description": "Wet arches.", "connections": ["north-belfry"]},
        {"id": "belfry", "name": "Belfry", "description": "A tower.", "connections": ["south:cloister", "up-sky"]},
    ],
    "characters": [{"id": "monk", "name": "Brother Ash", "location": "belfry", "role": "keeper"}],
    "quests": [{"id": "ring", "name": "Ring the Bell", "steps": ["Climb the belfry"]}],
}


def queue_generated_world(gen: ScriptedGenerator, plan: dict[str, Any] | None = None) -> None:
    """Script one successful plan + expansion round."""

    plan = plan or PLAN
    gen.queue_for("plan_world", plan)
    gen.queue_for(
        "generate_all_rooms",
        {
            "rooms": [
                {"id": loc["id"], "name": loc["name"], "description": f"Inside the {loc['name']}.", "items": ["Brass Key"]}
                for loc in plan["locations"]
            ]
        },
    )
    gen.queue_for(
        "generate_all_characters",
        {"characters": [{"id": c["id"], "greeting": "Peace be with you."} for c in plan["characters"]]},
    )
    gen.queue_for(
        "generate_quest_content",
        {"quests": [{"id": q["id"], "introduction_text": "The bell must ring."} for q in plan["quests"]]},
    )


@pytest.fixture()
def world() -> World:
    return make_world()


@pytest.fixture()
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture()
def gateway(generator: ScriptedGenerator) -> NarrativeGateway:
    return NarrativeGateway(generator)


@pytest.fixture()
def test_settings() -> EngineSettings:
    return EngineSettings(
        command_mode="parser",
        history_window=10,
        session_log_size=200,
        worldgen_timeout_s=5.0,
        heartbeat_s=0.05,
        lock_timeout_s=0.5,
    )


@pytest.fixture()
def load_session() -> Callable[..., Any]:
    """Bind a ready game to a session in the given store."""

    from grue.games import restore_session

    def _load(store, session_id: str = "s1", *, world: World | None = None, user_id: str | None = None):  # type: ignore[no-untyped-def]
        w = world or make_world()
        return restore_session(
            store,
            session_id,
            world=w,
            state=new_game_state(w.start_room_id()),
            user_id=user_id,
            world_id="1" if user_id else None,
        )

    return _load


@pytest.fixture()
def client_and_redis(generator: ScriptedGenerator, test_settings: EngineSettings):
    """FastAPI TestClient over a fresh app, with fakeredis behind get_redis."""

    import fakeredis
    from fastapi.testclient import TestClient

    from grue.api.deps import get_redis
    from grue.main import create_app

    app = create_app(generator=generator, settings=test_settings)
    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
