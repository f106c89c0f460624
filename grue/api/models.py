from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from grue.state import GameState
from grue.world.models import World


class GameClientResponse(BaseModel):
    """Responses read by game clients: top-level keys go out camelCase (`gameState`,
    `worldData`, `worldId`). Nested state and world objects keep their own field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, validation_alias=AliasChoices("session_id", "sessionId"))
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    world_id: str | None = Field(default=None, validation_alias=AliasChoices("world_id", "worldId"))
    command: str = Field(..., min_length=1, max_length=2000)
    mode: Literal["parser", "generator", "explore"] | None = None

    # Client-carried state, used only to rehydrate a session the server does not know.
    game_state: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("game_state", "gameState"))
    world_data: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("world_data", "worldData"))

    def session_key(self) -> str | None:
        if self.session_id:
            return self.session_id
        if self.user_id and self.world_id:
            return f"{self.user_id}:{self.world_id}"
        return self.user_id


class CommandResponse(GameClientResponse):
    success: bool
    message: str
    session_id: str
    correlation_id: str
    game_state: GameState
    world_data: World | None = None
    room_updates: dict[str, list[str]] = Field(default_factory=dict)
    state_changed: bool = False
    action_type: str | None = None
    educational_note: str | None = None
    phase: str


class WorldCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    name: str | None = Field(
        default=None, validation_alias=AliasChoices("name", "character_profile", "characterProfile")
    )
    theme: str = Field(default="fantasy", min_length=1, max_length=200)
    difficulty: str = "medium"


class WorldCreateResponse(GameClientResponse):
    success: bool = True
    world_id: str | None
    world_data: World
    game_state: GameState
    source: str
    session_id: str | None = None
    error: str | None = None


class NewGameRequest(WorldCreateRequest):
    session_id: str | None = Field(default=None, validation_alias=AliasChoices("session_id", "sessionId"))
    mode: Literal["parser", "generator"] | None = None
    background: bool = False


class NewGameResponse(GameClientResponse):
    success: bool = True
    session_id: str
    status: Literal["ready", "generating", "failed"]
    world_id: str | None = None
    world_data: World | None = None
    game_state: GameState | None = None
    source: str | None = None
    error: str | None = None


class GameStatusResponse(BaseModel):
    session_id: str
    status: Literal["ready", "generating", "failed"]
    phase: str
    error: str | None = None
    world_id: str | None = None
    game_state: GameState | None = None


class SessionView(BaseModel):
    session_id: str
    phase: str
    mode: str | None = None
    user_id: str | None = None
    world_id: str | None = None
    seed: int
    game_state: GameState | None = None
    world_data: World | None = None
    summary: dict[str, Any] | None = None
    history: list[dict[str, str]] = Field(default_factory=list)


class ConsoleStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, validation_alias=AliasChoices("session_id", "sessionId"))
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))


class ConsoleCommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, validation_alias=AliasChoices("session_id", "sessionId"))
    command: str = Field(..., min_length=1, max_length=2000)


class ConsoleResponse(BaseModel):
    success: bool = True
    correlation_id: str
    session_id: str
    message: str
    room: dict[str, Any] | None = None
    game_state: GameState | None = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    correlation_id: str | None = None
