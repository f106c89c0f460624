from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from grue.generator.json_schema import JsonSchema


@dataclass(frozen=True, slots=True)
class WorldRequest:
    """High-level input to world generation: who is playing and what kind of world."""

    user_id: str | None = None
    profile: str = "an adventurer"
    theme: str = "fantasy"
    difficulty: str = "medium"


class PlanLocation(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    connections: list[str] = Field(default_factory=list)


class PlanCharacter(BaseModel):
    id: str
    name: str = ""
    location: str | None = None
    role: str = ""


class PlanQuest(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    steps: list[str] = Field(default_factory=list)


class WorldPlan(BaseModel):
    title: str = "Untitled World"
    setting: str = ""
    main_story: str = ""
    starting_location: str | None = None
    locations: list[PlanLocation]
    characters: list[PlanCharacter]
    quests: list[PlanQuest]


class RoomContent(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    first_visit_text: str = ""
    items: list[str] = Field(default_factory=list)


class CharacterContent(BaseModel):
    id: str
    name: str = ""
    personality: str = ""
    greeting: str = ""
    appearance: str = ""


class QuestContent(BaseModel):
    id: str
    name: str = ""
    introduction_text: str = ""
    objectives: list[str] = Field(default_factory=list)


class RoomsPayload(BaseModel):
    rooms: list[RoomContent]


class CharactersPayload(BaseModel):
    characters: list[CharacterContent]


class QuestsPayload(BaseModel):
    quests: list[QuestContent]


def _string_array() -> dict[str, object]:
    return {"type": "array", "items": {"type": "string"}}


PLAN_SCHEMA = JsonSchema(
    name="create_game_design",
    schema={
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "setting": {"type": "string"},
            "main_story": {"type": "string"},
            "starting_location": {"type": "string"},
            "locations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "connections": _string_array(),
                    },
                    "required": ["id", "name", "connections"],
                },
            },
            "characters": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "location": {"type": "string"},
                        "role": {"type": "string"},
                    },
                    "required": ["id", "name"],
                },
            },
            "quests": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "steps": _string_array(),
                    },
                    "required": ["id", "name"],
                },
            },
        },
        "required": ["title", "setting", "main_story", "starting_location", "locations", "characters", "quests"],
    },
)

ROOMS_SCHEMA = JsonSchema(
    name="generate_all_rooms",
    schema={
        "type": "object",
        "properties": {
            "rooms": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "first_visit_text": {"type": "string"},
                        "items": _string_array(),
                    },
                    "required": ["id", "description"],
                },
            }
        },
        "required": ["rooms"],
    },
)

CHARACTERS_SCHEMA = JsonSchema(
    name="generate_all_characters",
    schema={
        "type": "object",
        "properties": {
            "characters": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "personality": {"type": "string"},
                        "greeting": {"type": "string"},
                        "appearance": {"type": "string"},
                    },
                    "required": ["id"],
                },
            }
        },
        "required": ["characters"],
    },
)

QUESTS_SCHEMA = JsonSchema(
    name="generate_quest_content",
    schema={
        "type": "object",
        "properties": {
            "quests": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "introduction_text": {"type": "string"},
                        "objectives": _string_array(),
                    },
                    "required": ["id"],
                },
            }
        },
        "required": ["quests"],
    },
)
