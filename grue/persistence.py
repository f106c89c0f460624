"""Durable records on Redis: worlds, game-state snapshots and the append-only action log.

`GameRepository` is synchronous (redis-py); `PersistenceWriter` runs its writes off the
event loop in tracked background tasks and never lets a storage failure reach the player.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, cast

import redis
from pydantic import BaseModel, Field

from grue.errors import PersistenceError
from grue.state import GameState
from grue.world.models import World


logger = logging.getLogger(__name__)

WORLD_SEQ_KEY = "grue:world:seq"
WORLD_KEY_PREFIX = "grue:world:"  # + {world_id}


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _world_key(world_id: str) -> str:
    return f"{WORLD_KEY_PREFIX}{world_id}"


def _user_worlds_key(user_id: str) -> str:
    return f"grue:user:{user_id}:worlds"


def _state_key(user_id: str, world_id: str) -> str:
    return f"grue:state:{user_id}:{world_id}"


def _actions_key(user_id: str) -> str:
    return f"grue:actions:{user_id}"


class WorldRecord(BaseModel):
    id: str
    user_id: str | None = None
    title: str
    description: str = ""
    setting: str = ""
    world_data: World
    created_at: datetime


class GameStateRecord(BaseModel):
    user_id: str
    world_id: str
    current_room: str
    inventory: list[str] = Field(default_factory=list)
    health: int
    score: int
    game_state: GameState
    continuation_token: str | None = None
    updated_at: datetime


class ActionRecord(BaseModel):
    id: str
    user_id: str
    world_id: str | None = None
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class GameRepository:
    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    def save_world(self, *, user_id: str | None, world: World, world_id: str | None = None) -> WorldRecord:
        try:
            wid = world_id or str(self.r.incr(WORLD_SEQ_KEY))
            record = WorldRecord(
                id=wid,
                user_id=user_id,
                title=world.title,
                description=world.description,
                setting=world.setting,
                world_data=world,
                created_at=_now(),
            )
            self.r.set(_world_key(wid), record.model_dump_json())
            if user_id:
                self.r.sadd(_user_worlds_key(user_id), wid)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to save world: {e}") from e
        return record

    def get_world(self, world_id: str) -> WorldRecord | None:
        try:
            raw = self.r.get(_world_key(world_id))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to load world {world_id}: {e}") from e
        if not raw:
            return None
        return WorldRecord.model_validate_json(cast(str, raw))

    def list_user_worlds(self, user_id: str) -> list[WorldRecord]:
        try:
            ids = sorted(cast(set[str], self.r.smembers(_user_worlds_key(user_id))))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to list worlds for {user_id}: {e}") from e
        out: list[WorldRecord] = []
        for wid in ids:
            rec = self.get_world(wid)
            if rec is not None:
                out.append(rec)
        out.sort(key=lambda w: w.created_at, reverse=True)
        return out

    def save_game_state(
        self,
        *,
        user_id: str,
        world_id: str,
        state: GameState,
        continuation_token: str | None = None,
    ) -> GameStateRecord:
        """Upsert the snapshot for (user_id, world_id)."""

        record = GameStateRecord(
            user_id=user_id,
            world_id=world_id,
            current_room=state.current_room,
            inventory=list(state.inventory),
            health=state.health,
            score=state.score,
            game_state=state,
            continuation_token=continuation_token,
            updated_at=_now(),
        )
        try:
            self.r.set(_state_key(user_id, world_id), record.model_dump_json())
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to save game state: {e}") from e
        return record

    def get_game_state(self, *, user_id: str, world_id: str) -> GameStateRecord | None:
        try:
            raw = self.r.get(_state_key(user_id, world_id))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to load game state: {e}") from e
        if not raw:
            return None
        return GameStateRecord.model_validate_json(cast(str, raw))

    def log_action(self, *, user_id: str, world_id: str | None, action: str, details: dict[str, Any]) -> str:
        fields = {
            "user_id": user_id,
            "world_id": world_id or "",
            "action": action,
            "details": json.dumps(details, default=str),
            "created_at": _now().isoformat(),
        }
        try:
            stream_id = self.r.xadd(_actions_key(user_id), fields)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to log action: {e}") from e
        return cast(str, stream_id)

    def get_user_logs(self, user_id: str, *, count: int = 50) -> list[ActionRecord]:
        """Most recent actions first."""

        try:
            entries = self.r.xrevrange(_actions_key(user_id), count=count)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read actions for {user_id}: {e}") from e
        out: list[ActionRecord] = []
        for entry_id, fields in cast(list[tuple[str, dict[str, str]]], entries):
            out.append(
                ActionRecord(
                    id=entry_id,
                    user_id=fields.get("user_id", user_id),
                    world_id=fields.get("world_id") or None,
                    action=fields.get("action", ""),
                    details=json.loads(fields.get("details") or "{}"),
                    created_at=datetime.fromisoformat(fields["created_at"]),
                )
            )
        return out


class PersistenceWriter:
    """Fire-and-forget durable writes.

    Each scheduled write runs in a worker thread inside a tracked task. Failures are
    logged and swallowed; `drain()` waits for everything scheduled so far.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, label: str, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> asyncio.Task[None]:
        task = asyncio.create_task(self._run(label, fn, *args, **kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            await asyncio.to_thread(fn, *args, **kwargs)
        except Exception:
            self.failures += 1
            logger.exception("persistence write failed (%s)", label)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
