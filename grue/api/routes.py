from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from grue.api.deps import get_engine, get_repository, get_session_store, get_settings
from grue.api.models import (
    CommandRequest,
    CommandResponse,
    ConsoleCommandRequest,
    ConsoleResponse,
    ConsoleStartRequest,
    GameStatusResponse,
    NewGameRequest,
    NewGameResponse,
    SessionView,
    WorldCreateRequest,
    WorldCreateResponse,
)
from grue.config import EngineSettings
from grue.engine.engine import CommandResult, GameEngine
from grue.engine.explore_mode import room_payload
from grue.errors import NotFoundError, RequestValidationError
from grue.games import (
    game_summary,
    rehydrate,
    save_now,
    start_exploration,
    start_new_game,
    wait_for_pending,
)
from grue.generator.gateway import new_correlation_id
from grue.persistence import ActionRecord, GameRepository, GameStateRecord, WorldRecord
from grue.session_store import Session, SessionStore
from grue.state import GameState, new_game_state
from grue.world.mutations import find_room
from grue.worldgen.plan import WorldRequest
from grue.worldgen.service import generate_world


logger = logging.getLogger(__name__)

router = APIRouter()


def _corr(request: Request) -> str:
    corr = new_correlation_id()
    request.state.corr = corr
    return corr


def _require_session(store: SessionStore, session_id: str) -> Session:
    session = store.get(session_id)
    if session is None:
        raise NotFoundError(f"Session not found: {session_id}")
    return session


def _world_request(payload: WorldCreateRequest) -> WorldRequest:
    return WorldRequest(
        user_id=payload.user_id,
        profile=payload.name or "an adventurer",
        theme=payload.theme,
        difficulty=payload.difficulty,
    )


def _console_room(session: Session) -> tuple[dict[str, Any] | None, GameState]:
    world, state = session.world, session.state
    if world is None or state is None:
        raise NotFoundError(f"No game loaded for session {session.session_id}")
    room = find_room(world, state.current_room)
    return (room_payload(room) if room is not None else None), state


def _command_response(result: CommandResult, *, include_world: bool) -> CommandResponse:
    session, outcome = result.session, result.outcome
    if session.state is None:
        raise NotFoundError(f"No game loaded for session {session.session_id}")
    return CommandResponse(
        success=outcome.success,
        message=outcome.message,
        session_id=session.session_id,
        correlation_id=result.correlation_id,
        game_state=session.state,
        world_data=session.world if include_world else None,
        room_updates=outcome.room_updates,
        state_changed=outcome.state_changed,
        action_type=outcome.action_type,
        educational_note=outcome.educational_note,
        phase=session.phase.value,
    )


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/worlds", response_model=WorldCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_world_route(
    payload: WorldCreateRequest,
    request: Request,
    engine: GameEngine = Depends(get_engine),
    repo: GameRepository = Depends(get_repository),
    settings: EngineSettings = Depends(get_settings),
) -> WorldCreateResponse:
    corr = _corr(request)
    generated = await generate_world(
        engine.gateway, _world_request(payload), timeout_s=settings.worldgen_timeout_s, corr=corr
    )
    record = repo.save_world(user_id=payload.user_id, world=generated.world)
    state = new_game_state(generated.world.start_room_id())
    if payload.user_id:
        repo.save_game_state(user_id=payload.user_id, world_id=record.id, state=state)
        repo.log_action(
            user_id=payload.user_id,
            world_id=record.id,
            action="create_world",
            details={"theme": payload.theme, "source": generated.source},
        )
    return WorldCreateResponse(
        world_id=record.id,
        world_data=generated.world,
        game_state=state,
        source=generated.source,
        error=generated.error,
    )


@router.get("/worlds/{world_id}", response_model=WorldRecord)
async def get_world_route(world_id: str, repo: GameRepository = Depends(get_repository)) -> WorldRecord:
    record = repo.get_world(world_id)
    if record is None:
        raise NotFoundError(f"World not found: {world_id}")
    return record


@router.get("/users/{user_id}/worlds", response_model=list[WorldRecord])
async def list_user_worlds_route(user_id: str, repo: GameRepository = Depends(get_repository)) -> list[WorldRecord]:
    return repo.list_user_worlds(user_id)


@router.get("/users/{user_id}/actions", response_model=list[ActionRecord])
async def list_user_actions_route(
    user_id: str,
    count: int = 50,
    repo: GameRepository = Depends(get_repository),
) -> list[ActionRecord]:
    if count < 1 or count > 500:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="count must be between 1 and 500")
    return repo.get_user_logs(user_id, count=count)


@router.post("/game/new", response_model=NewGameResponse)
async def new_game_route(
    payload: NewGameRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    engine: GameEngine = Depends(get_engine),
    repo: GameRepository = Depends(get_repository),
    settings: EngineSettings = Depends(get_settings),
) -> NewGameResponse:
    corr = _corr(request)
    session, generated = await start_new_game(
        store=store,
        engine=engine,
        request=_world_request(payload),
        session_id=payload.session_id,
        repo=repo,
        mode=payload.mode,
        background=payload.background,
        timeout_s=settings.worldgen_timeout_s,
        corr=corr,
    )
    if generated is None:
        return NewGameResponse(session_id=session.session_id, status="generating")
    return NewGameResponse(
        session_id=session.session_id,
        status="ready",
        world_id=session.world_id,
        world_data=session.world,
        game_state=session.state,
        source=generated.source,
        error=generated.error,
    )


@router.get("/game/{session_id}/status", response_model=GameStatusResponse)
async def game_status_route(
    session_id: str,
    wait_ms: int = 0,
    store: SessionStore = Depends(get_session_store),
) -> GameStatusResponse:
    if wait_ms < 0 or wait_ms > 60_000:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="wait_ms must be 0..60000")
    session = _require_session(store, session_id)
    state = await wait_for_pending(session, wait_ms=wait_ms)
    return GameStatusResponse(
        session_id=session.session_id,
        status=state,  # type: ignore[arg-type]
        phase=session.phase.value,
        error=session.pending_error,
        world_id=session.world_id,
        game_state=session.state if state == "ready" else None,
    )


def _resolve_command_session(payload: CommandRequest, store: SessionStore, repo: GameRepository) -> Session:
    key = payload.session_key()
    if not key:
        raise RequestValidationError("session_id or user_id is required")
    session = store.get(key)
    if session is not None and (session.is_ready or session.pending is not None):
        return session
    restored = rehydrate(
        store,
        key,
        repo=repo,
        user_id=payload.user_id,
        world_id=payload.world_id,
        world_data=payload.world_data,
        game_state=payload.game_state,
    )
    if restored is None:
        raise NotFoundError(f"Session not found: {key}")
    return restored


@router.post("/game/command", response_model=CommandResponse)
async def command_route(
    payload: CommandRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    store: SessionStore = Depends(get_session_store),
    engine: GameEngine = Depends(get_engine),
    repo: GameRepository = Depends(get_repository),
) -> CommandResponse:
    corr = _corr(request)
    session = _resolve_command_session(payload, store, repo)
    result = await engine.process_command(session, payload.command, mode=payload.mode, repo=repo, corr=corr)
    background_tasks.add_task(engine.writer.drain)

    response = _command_response(
        result,
        include_world=bool(result.outcome.room_updates) or result.mode in {"generator", "explore"},
    )
    if result.outcome.ended:
        store.delete(session.session_id)
    return response


@router.post("/game/command/stream")
async def command_stream_route(
    payload: CommandRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    engine: GameEngine = Depends(get_engine),
    repo: GameRepository = Depends(get_repository),
    settings: EngineSettings = Depends(get_settings),
) -> StreamingResponse:
    corr = _corr(request)
    session = _resolve_command_session(payload, store, repo)
    events = engine.stream_narration(session, payload.command, heartbeat_s=settings.heartbeat_s, corr=corr)
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no", "X-Correlation-Id": corr},
    )


@router.get("/game/{session_id}", response_model=SessionView)
async def get_game_route(session_id: str, store: SessionStore = Depends(get_session_store)) -> SessionView:
    session = _require_session(store, session_id)
    return SessionView(
        session_id=session.session_id,
        phase=session.phase.value,
        mode=session.mode,
        user_id=session.user_id,
        world_id=session.world_id,
        seed=session.seed,
        game_state=session.state,
        world_data=session.world,
        summary=game_summary(session) if session.is_ready else None,
        history=[{"role": t.role, "content": t.content} for t in session.conversation],
    )


@router.delete("/game/{session_id}")
async def delete_game_route(session_id: str, store: SessionStore = Depends(get_session_store)) -> dict[str, object]:
    if not store.delete(session_id):
        raise NotFoundError(f"Session not found: {session_id}")
    return {"success": True, "session_id": session_id}


@router.post("/game/{session_id}/save", response_model=GameStateRecord)
async def save_game_route(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    repo: GameRepository = Depends(get_repository),
) -> GameStateRecord:
    session = _require_session(store, session_id)
    try:
        return await asyncio.to_thread(save_now, session, repo)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.get("/game/{session_id}/logs")
async def session_logs_route(session_id: str, store: SessionStore = Depends(get_session_store)) -> dict[str, object]:
    session = _require_session(store, session_id)
    return {"session_id": session_id, "logs": [entry.as_dict() for entry in session.logs]}


@router.post("/console/start", response_model=ConsoleResponse)
async def console_start_route(
    payload: ConsoleStartRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    engine: GameEngine = Depends(get_engine),
) -> ConsoleResponse:
    corr = _corr(request)
    session, message = await start_exploration(
        store=store, engine=engine, session_id=payload.session_id, user_id=payload.user_id, corr=corr
    )
    room, state = _console_room(session)
    return ConsoleResponse(
        correlation_id=corr,
        session_id=session.session_id,
        message=message,
        room=room,
        game_state=state,
    )


@router.post("/console/command", response_model=ConsoleResponse)
async def console_command_route(
    payload: ConsoleCommandRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    engine: GameEngine = Depends(get_engine),
) -> ConsoleResponse:
    corr = _corr(request)
    session = _require_session(store, payload.session_id)
    result = await engine.process_command(session, payload.command, mode="explore", corr=corr)
    if result.outcome.ended:
        store.delete(session.session_id)
        return ConsoleResponse(correlation_id=corr, session_id=session.session_id, message=result.outcome.message)

    room, state = _console_room(session)
    return ConsoleResponse(
        correlation_id=corr,
        session_id=session.session_id,
        message=result.outcome.message,
        room=room,
        game_state=state,
    )
