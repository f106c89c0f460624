from __future__ import annotations

from pydantic import BaseModel, Field


class ItemDef(BaseModel):
    id: str
    name: str
    description: str = ""
    usable: bool = False
    takeable: bool = True


class Npc(BaseModel):
    id: str
    name: str
    location: str | None = None
    description: str = ""
    personality: str = ""
    dialogue: str = ""


class Quest(BaseModel):
    id: str
    name: str
    description: str = ""
    steps: list[str] = Field(default_factory=list)
    type: str = "main_story"


class Puzzle(BaseModel):
    description: str = ""
    solution: str = ""


class ExitLabel(BaseModel):
    label: str
    keywords: list[str] = Field(default_factory=list)


class Room(BaseModel):
    id: str
    name: str
    description: str = ""

    # direction (or exit id) -> target room id; None means "no way through" / not generated yet.
    exits: dict[str, str | None] = Field(default_factory=dict)

    # Item ids or plain names. Mutated on take/drop.
    items: list[str] = Field(default_factory=list)

    # NPC ids (resolved through World.npcs) or plain names.
    npcs: list[str] = Field(default_factory=list)

    puzzles: list[Puzzle] = Field(default_factory=list)
    first_visit_text: str = ""

    # Only rooms produced by the exploration flow carry labels for their exits.
    exit_labels: dict[str, ExitLabel] = Field(default_factory=dict)


class World(BaseModel):
    title: str = "Untitled World"
    description: str = ""
    theme: str = "fantasy"
    setting: str = ""
    difficulty: str = "medium"
    starting_room: str | None = None

    rooms: list[Room] = Field(default_factory=list)
    items: list[ItemDef] = Field(default_factory=list)
    npcs: list[Npc] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)

    def room_ids(self) -> list[str]:
        return [r.id for r in self.rooms]

    def item_def(self, ref: str) -> ItemDef | None:
        return next((i for i in self.items if i.id == ref), None)

    def item_name(self, ref: str) -> str:
        item = self.item_def(ref)
        return item.name if item is not None else ref

    def npc(self, ref: str) -> Npc | None:
        return next((n for n in self.npcs if n.id == ref), None)

    def quest(self, quest_id: str) -> Quest | None:
        return next((q for q in self.quests if q.id == quest_id), None)

    def start_room_id(self) -> str:
        if self.starting_room and any(r.id == self.starting_room for r in self.rooms):
            return self.starting_room
        if not self.rooms:
            raise ValueError("World has no rooms")
        return self.rooms[0].id
