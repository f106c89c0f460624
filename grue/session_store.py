"""In-memory session registry.

One `SessionStore` is owned by the app (see `grue.main.create_app`); nothing here is a
module-level singleton, so tests can build as many isolated stores as they like.
"""
from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from grue.state import GameState, SessionPhase
from grue.world.models import World


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 10
DEFAULT_LOG_SIZE = 200


def _now() -> datetime:
    return datetime.now(tz=UTC)


def new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


@dataclass(frozen=True, slots=True)
class Turn:
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class LogEntry:
    at: datetime
    event: str
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"at": self.at.isoformat(), "event": self.event, "details": dict(self.details)}


@dataclass(slots=True)
class Session:
    session_id: str
    seed: int
    history_window: int = DEFAULT_HISTORY_WINDOW
    log_size: int = DEFAULT_LOG_SIZE

    user_id: str | None = None
    world_id: str | None = None
    world: World | None = None
    state: GameState | None = None

    phase: SessionPhase = SessionPhase.uninitialized
    # Command strategy this session was started with ("parser", "generator", "explore").
    mode: str | None = None
    previous_response_id: str | None = None
    created_at: datetime = field(default_factory=_now)

    # Background world generation started by a previous request.
    pending: asyncio.Task[Any] | None = None
    pending_error: str | None = None

    conversation: deque[Turn] = field(init=False)
    logs: deque[LogEntry] = field(init=False)
    lock: asyncio.Lock = field(init=False)

    def __post_init__(self) -> None:
        self.conversation = deque(maxlen=max(1, self.history_window))
        self.logs = deque(maxlen=max(1, self.log_size))
        self.lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self.world is not None and self.state is not None

    def remember(self, role: str, content: str) -> None:
        """Append a turn to the conversation window; the oldest turn falls off first."""

        if content:
            self.conversation.append(Turn(role=role, content=content))

    def recent_turns(self, n: int | None = None) -> list[Turn]:
        turns = list(self.conversation)
        return turns if n is None else turns[-n:]

    def log(self, event: str, **details: Any) -> None:
        self.logs.append(LogEntry(at=_now(), event=event, details=details))

    def bind(self, *, world: World, state: GameState, world_id: str | None = None) -> None:
        self.world = world
        self.state = state
        if world_id is not None:
            self.world_id = world_id


class SessionStore:
    def __init__(self, *, history_window: int = DEFAULT_HISTORY_WINDOW, log_size: int = DEFAULT_LOG_SIZE) -> None:
        self._sessions: dict[str, Session] = {}
        self.history_window = history_window
        self.log_size = log_size

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str | None = None, seed: int | None = None) -> Session:
        sid = session_id or str(uuid4())
        session = self._sessions.get(sid)
        if session is None:
            session = Session(
                session_id=sid,
                seed=seed if seed is not None else new_seed(),
                history_window=self.history_window,
                log_size=self.log_size,
            )
            self._sessions[sid] = session
            session.log("session_created", seed=session.seed)
            logger.debug("session created sid=%s seed=%s", sid, session.seed)
        return session

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if session.pending is not None and not session.pending.done():
            session.pending.cancel()
        logger.debug("session deleted sid=%s", session_id)
        return True

    def session_ids(self) -> list[str]:
        return list(self._sessions)
