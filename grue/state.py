from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


STARTING_GOLD = 100
STARTING_SUPPLIES = 10
MAX_HEALTH = 100


class SessionPhase(StrEnum):
    uninitialized = "uninitialized"
    generating = "generating"
    ready = "ready"
    processing = "processing"
    ended = "ended"


class QuestProgress(BaseModel):
    id: str
    name: str = ""
    progress: int = 0
    notes: list[str] = Field(default_factory=list)
    completed_at: int | None = None


class NpcState(BaseModel):
    relationship: int = 0
    unlocked_dialogue: list[str] = Field(default_factory=list)


def _default_resources() -> dict[str, int]:
    return {"gold": STARTING_GOLD, "supplies": STARTING_SUPPLIES}


class GameState(BaseModel):
    """The player's mutable state for one session (the world is held separately)."""

    model_config = ConfigDict(validate_assignment=True)

    current_room: str
    visited_rooms: list[str] = Field(default_factory=list)

    # Plain ordered list; duplicates are allowed.
    inventory: list[str] = Field(default_factory=list)

    health: int = MAX_HEALTH
    score: int = 0
    active_quests: list[QuestProgress] = Field(default_factory=list)
    completed_quests: list[QuestProgress] = Field(default_factory=list)
    game_flags: dict[str, bool] = Field(default_factory=dict)
    npc_states: dict[str, NpcState] = Field(default_factory=dict)
    turn_count: int = 0
    resources: dict[str, int] = Field(default_factory=_default_resources)

    @field_validator("health")
    @classmethod
    def _clamp_health(cls, v: int) -> int:
        return clamp_health(v)

    def active_quest(self, quest_id: str) -> QuestProgress | None:
        return next((q for q in self.active_quests if q.id == quest_id), None)

    def mark_visited(self, room_id: str) -> bool:
        if room_id in self.visited_rooms:
            return False
        self.visited_rooms.append(room_id)
        return True


def clamp_health(value: int) -> int:
    return max(0, min(MAX_HEALTH, int(value)))


def new_game_state(start_room: str) -> GameState:
    return GameState(current_room=start_room, visited_rooms=[start_room])
