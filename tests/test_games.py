from __future__ import annotations

import pytest
from conftest import ScriptedGenerator, make_world, queue_generated_world

import grue.games as games
from grue.engine.engine import GameEngine
from grue.errors import InvariantViolation, SessionBusyError
from grue.games import game_summary, rehydrate, restore_session, start_new_game, wait_for_pending
from grue.generator.gateway import NarrativeGateway
from grue.session_store import SessionStore
from grue.state import QuestProgress, SessionPhase, new_game_state
from grue.worldgen.plan import WorldRequest


@pytest.mark.asyncio
async def test_background_failure_is_reported(gateway: NarrativeGateway, monkeypatch: pytest.MonkeyPatch) -> None:
    store = SessionStore()
    engine = GameEngine(gateway)

    async def _boom(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise RuntimeError("worldgen exploded")

    # Fail below the canned fallback so the error reaches the session.
    monkeypatch.setattr(games, "generate_world", _boom)
    session, generated = await start_new_game(
        store=store, engine=engine, request=WorldRequest(), session_id="s", background=True
    )
    assert generated is None and session.phase == SessionPhase.generating
    assert await wait_for_pending(session, wait_ms=1000) == "failed"

    assert session.pending_error == "worldgen exploded"
    assert session.phase == SessionPhase.uninitialized


@pytest.mark.asyncio
async def test_second_generation_while_generating_is_refused(
    generator: ScriptedGenerator, gateway: NarrativeGateway
) -> None:
    store = SessionStore()
    engine = GameEngine(gateway)
    queue_generated_world(generator)
    session, _ = await start_new_game(store=store, engine=engine, request=WorldRequest(), session_id="s", background=True)
    with pytest.raises(SessionBusyError):
        await start_new_game(store=store, engine=engine, request=WorldRequest(), session_id="s")
    assert await wait_for_pending(session, wait_ms=1000) == "ready"


@pytest.mark.asyncio
async def test_new_game_replaces_previous_game(generator: ScriptedGenerator, gateway: NarrativeGateway) -> None:
    store = SessionStore()
    engine = GameEngine(gateway)
    session = restore_session(store, "s", world=make_world(), state=new_game_state("start"))
    session.remember("user", "look")
    session.previous_response_id = "resp_old"

    queue_generated_world(generator)
    _, generated = await start_new_game(store=store, engine=engine, request=WorldRequest(), session_id="s")
    assert generated is not None
    assert session.state is not None and session.state.current_room == "cloister"
    assert list(session.conversation) == []
    assert session.previous_response_id is None
    assert session.phase == SessionPhase.ready


def test_rehydrate_without_any_world_is_none() -> None:
    store = SessionStore()
    assert rehydrate(store, "x", repo=None, user_id=None, world_id=None) is None
    assert "x" not in store


def test_restore_rejects_invalid_world_and_repairs_room() -> None:
    store = SessionStore()
    broken = make_world()
    broken.rooms[0].exits["down"] = "pit"
    with pytest.raises(InvariantViolation):
        restore_session(store, "s", world=broken, state=new_game_state("start"))

    session = restore_session(store, "t", world=make_world(), state=new_game_state("attic"))
    assert session.state is not None and session.state.current_room == "start"
    assert session.phase == SessionPhase.ready


def test_summary_marks_completion() -> None:
    store = SessionStore()
    session = restore_session(store, "s", world=make_world(), state=new_game_state("start"))
    assert game_summary(session)["completed"] is False

    assert session.state is not None
    session.state.completed_quests.append(QuestProgress(id="q1", progress=100, completed_at=3))
    summary = game_summary(session)
    assert summary["completed"] is True
    assert summary["quests_completed"] == 1 and summary["total_rooms"] == 2
