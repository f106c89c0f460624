"""Session-level game operations: starting games (inline or in the background), waiting
on background generation, rehydrating sessions from storage, saving and summarizing."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from grue.engine.engine import GameEngine
from grue.errors import GeneratorError, PersistenceError, SessionBusyError
from grue.fsm import transition
from grue.persistence import GameRepository, GameStateRecord
from grue.session_store import Session, SessionStore
from grue.state import GameState, SessionPhase, new_game_state
from grue.world.models import World
from grue.world.validation import check_world
from grue.worldgen.plan import WorldRequest
from grue.worldgen.service import GeneratedWorld, generate_world


logger = logging.getLogger(__name__)


def _begin_generation(session: Session) -> None:
    if session.phase == SessionPhase.generating:
        raise SessionBusyError("A world is already being generated for this session")
    if session.phase == SessionPhase.ended:
        session.phase = SessionPhase.uninitialized
    transition(session, "begin_generation")
    session.pending_error = None


async def _store_world(repo: GameRepository | None, user_id: str | None, world: World) -> str | None:
    if repo is None:
        return None
    try:
        record = await asyncio.to_thread(repo.save_world, user_id=user_id, world=world)
    except PersistenceError as e:
        logger.warning("could not persist generated world: %s", e)
        return None
    return record.id


async def _generate_into(
    session: Session,
    engine: GameEngine,
    request: WorldRequest,
    *,
    repo: GameRepository | None,
    timeout_s: float,
    corr: str | None,
) -> GeneratedWorld:
    try:
        generated = await generate_world(engine.gateway, request, timeout_s=timeout_s, corr=corr)
        world_id = await _store_world(repo, request.user_id, generated.world)
    except BaseException as e:
        session.pending_error = str(e) or type(e).__name__
        if session.phase == SessionPhase.generating:
            transition(session, "generation_failed")
        session.log("generation_failed", error=session.pending_error, corr=corr)
        raise

    state = new_game_state(generated.world.start_room_id())
    session.bind(world=generated.world, state=state, world_id=world_id)
    session.conversation.clear()
    session.previous_response_id = None
    transition(session, "generation_succeeded")
    session.log("world_ready", source=generated.source, world_id=world_id, error=generated.error, corr=corr)
    if repo is not None:
        engine.persist_state(session, repo)
    return generated


async def _background(coro: Any) -> None:
    try:
        await coro
    except asyncio.CancelledError:
        raise
    except Exception:
        # Already recorded on the session as pending_error.
        logger.exception("background world generation failed")


async def start_new_game(
    *,
    store: SessionStore,
    engine: GameEngine,
    request: WorldRequest,
    session_id: str | None = None,
    repo: GameRepository | None = None,
    mode: str | None = None,
    background: bool = False,
    timeout_s: float = 90.0,
    corr: str | None = None,
) -> tuple[Session, GeneratedWorld | None]:
    """Generate a world and bind a fresh game to the session.

    With `background=True` the generation runs as a detached task and the session is
    returned at once in the `generating` phase; poll it with `wait_for_pending`.
    """

    session = store.get_or_create(session_id)
    session.user_id = request.user_id or session.user_id
    if mode is not None:
        session.mode = engine.resolve_mode(session, mode)
    _begin_generation(session)

    work = _generate_into(session, engine, request, repo=repo, timeout_s=timeout_s, corr=corr)
    if background:
        session.pending = asyncio.create_task(_background(work))
        return session, None
    return session, await work


async def wait_for_pending(session: Session, *, wait_ms: int = 0) -> str:
    """Wait at most `wait_ms` for background generation; report ready/generating/failed."""

    pending = session.pending
    if pending is not None and not pending.done() and wait_ms > 0:
        await asyncio.wait({pending}, timeout=wait_ms / 1000)

    if session.pending_error is not None:
        return "failed"
    if session.phase == SessionPhase.generating:
        return "generating"
    if session.is_ready:
        return "ready"
    return "failed"


async def start_exploration(
    *,
    store: SessionStore,
    engine: GameEngine,
    session_id: str | None = None,
    user_id: str | None = None,
    corr: str | None = None,
) -> tuple[Session, str]:
    """Create a session whose rooms are generated on demand. Generator failures drop the
    half-made session and propagate."""

    session = store.get_or_create(session_id)
    session.user_id = user_id or session.user_id
    _begin_generation(session)
    try:
        world, state, message = await engine.explorer.start(session, corr=corr)
    except GeneratorError as e:
        transition(session, "generation_failed")
        session.pending_error = str(e)
        store.delete(session.session_id)
        raise

    session.bind(world=world, state=state)
    session.mode = "explore"
    transition(session, "generation_succeeded")
    session.remember("assistant", message)
    session.log("exploration_started", room=state.current_room, corr=corr)
    return session, message


def restore_session(
    store: SessionStore,
    session_id: str,
    *,
    world: World,
    state: GameState,
    user_id: str | None = None,
    world_id: str | None = None,
    continuation_token: str | None = None,
) -> Session:
    check_world(world)
    if world.room_ids() and state.current_room not in world.room_ids():
        state = state.model_copy(update={"current_room": world.start_room_id()})
    session = store.get_or_create(session_id)
    session.user_id = user_id or session.user_id
    session.bind(world=world, state=state, world_id=world_id)
    if continuation_token:
        session.previous_response_id = continuation_token
    if session.phase == SessionPhase.uninitialized:
        transition(session, "restore")
    session.log("session_restored", world_id=world_id)
    return session


def rehydrate(
    store: SessionStore,
    session_id: str,
    *,
    repo: GameRepository | None,
    user_id: str | None,
    world_id: str | None,
    world_data: dict[str, Any] | None = None,
    game_state: dict[str, Any] | None = None,
) -> Session | None:
    """Resolve an unknown session from durable storage, then from client-carried data.

    Returns None when neither source has enough to play.
    """

    world: World | None = None
    state: GameState | None = None
    token: str | None = None

    if repo is not None and world_id:
        try:
            world_rec = repo.get_world(world_id)
            state_rec = repo.get_game_state(user_id=user_id, world_id=world_id) if user_id else None
        except PersistenceError as e:
            logger.warning("rehydrate from storage failed sid=%s: %s", session_id, e)
            world_rec, state_rec = None, None
        if world_rec is not None:
            world = world_rec.world_data
        if state_rec is not None:
            state = state_rec.game_state
            token = state_rec.continuation_token

    if world is None and world_data:
        world = World.model_validate(world_data)
    if state is None and game_state:
        state = GameState.model_validate(game_state)

    if world is None:
        return None
    if state is None:
        state = new_game_state(world.start_room_id())
    return restore_session(
        store,
        session_id,
        world=world,
        state=state,
        user_id=user_id,
        world_id=world_id,
        continuation_token=token,
    )


def save_now(session: Session, repo: GameRepository) -> GameStateRecord:
    if session.state is None or session.world is None:
        raise ValueError("Nothing to save: no game loaded")
    if not session.user_id:
        raise ValueError("Cannot save without a user_id")
    if not session.world_id:
        session.world_id = repo.save_world(user_id=session.user_id, world=session.world).id
    record = repo.save_game_state(
        user_id=session.user_id,
        world_id=session.world_id,
        state=session.state,
        continuation_token=session.previous_response_id,
    )
    session.log("saved", world_id=session.world_id)
    return record


def game_summary(session: Session) -> dict[str, Any]:
    if session.state is None or session.world is None:
        raise ValueError("No game loaded")
    state, world = session.state, session.world
    completed = {q.id for q in state.completed_quests}
    main = [q for q in world.quests if q.type == "main_story"]
    return {
        "completed": bool(main) and all(q.id in completed for q in main),
        "turns": state.turn_count,
        "score": state.score,
        "rooms_explored": len(state.visited_rooms),
        "total_rooms": len(world.rooms),
        "quests_completed": len(state.completed_quests),
        "total_quests": len(world.quests),
        "health": state.health,
    }
