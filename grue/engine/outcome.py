from __future__ import annotations

from dataclasses import dataclass, field

from grue.session_store import Session
from grue.state import GameState
from grue.world.models import World


@dataclass(slots=True)
class CommandContext:
    """What a strategy works on: working copies of the world and state, plus the session.

    Strategies mutate `world` and `state` freely; the engine only commits them back to
    the session when the strategy returns normally.
    """

    session: Session
    world: World
    state: GameState
    command: str
    corr: str


@dataclass(slots=True)
class CommandOutcome:
    message: str
    state_changed: bool = False
    success: bool = True
    room_updates: dict[str, list[str]] = field(default_factory=dict)
    action_type: str | None = None
    educational_note: str | None = None
    response_id: str | None = None
    ended: bool = False
