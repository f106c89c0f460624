"""Hand-authored fallback worlds, keyed by theme.

Used whenever generation fails or times out so callers always get something playable.
"""
from __future__ import annotations

from typing import Any

from grue.world.models import World


_CANNED: dict[str, dict[str, Any]] = {
    "fantasy": {
        "title": "The Hollow Crown",
        "description": "A ruined keep where a lost crown waits for a worthy hand.",
        "theme": "fantasy",
        "setting": "A mist-covered kingdom of old stone and older magic",
        "starting_room": "gatehouse",
        "rooms": [
            {
                "id": "gatehouse",
                "name": "Gatehouse",
                "description": "A crumbling gatehouse. Ivy chokes the portcullis, which hangs half-raised.",
                "exits": {"north": "courtyard"},
                "items": ["torch"],
            },
            {
                "id": "courtyard",
                "name": "Courtyard",
                "description": "Weeds split the flagstones of a wide courtyard. A well sits at its centre.",
                "exits": {"south": "gatehouse", "east": "chapel"},
                "items": ["rope"],
                "npcs": ["hermit"],
            },
            {
                "id": "chapel",
                "name": "Ruined Chapel",
                "description": "Broken pews face an altar. Something glints beneath the rubble.",
                "exits": {"west": "courtyard"},
                "items": ["crown"],
                "puzzles": [{"description": "The rubble is too dark to search.", "solution": "The torch reveals a hidden niche."}],
            },
        ],
        "items": [
            {"id": "torch", "name": "torch", "description": "A pitch-soaked torch.", "usable": True},
            {"id": "rope", "name": "rope", "description": "Twenty feet of hemp rope.", "usable": True},
            {"id": "crown", "name": "tarnished crown", "description": "A circlet of blackened gold."},
        ],
        "npcs": [
            {
                "id": "hermit",
                "name": "Old Hermit",
                "location": "courtyard",
                "personality": "Wry and cryptic",
                "dialogue": "The crown rests where prayers once did. Bring light.",
            }
        ],
        "quests": [
            {
                "id": "find_crown",
                "name": "The Hollow Crown",
                "description": "Recover the lost crown from the keep.",
                "steps": ["Enter the keep", "Speak with the hermit", "Search the chapel"],
            }
        ],
    },
    "space": {
        "title": "Derelict Station Kepler",
        "description": "A silent research station drifts above a gas giant.",
        "theme": "space",
        "setting": "A derelict orbital research station",
        "starting_room": "airlock",
        "rooms": [
            {
                "id": "airlock",
                "name": "Docking Airlock",
                "description": "Emergency lights pulse red. The inner door stands open.",
                "exits": {"north": "corridor"},
                "items": ["keycard"],
            },
            {
                "id": "corridor",
                "name": "Main Corridor",
                "description": "A long corridor of humming conduits. A maintenance ladder leads up.",
                "exits": {"south": "airlock", "up": "bridge"},
                "npcs": ["droid"],
            },
            {
                "id": "bridge",
                "name": "Command Bridge",
                "description": "Dead consoles ring a captain's chair. One terminal still blinks.",
                "exits": {"down": "corridor"},
                "puzzles": [{"description": "The terminal wants a keycard.", "solution": "The keycard wakes the station log."}],
            },
        ],
        "items": [{"id": "keycard", "name": "keycard", "description": "A scuffed crew keycard.", "usable": True}],
        "npcs": [
            {
                "id": "droid",
                "name": "Maintenance Droid",
                "location": "corridor",
                "personality": "Anxious and literal",
                "dialogue": "Crew status: unknown. Bridge access requires authorization.",
            }
        ],
        "quests": [
            {
                "id": "station_log",
                "name": "What Happened Here",
                "description": "Read the final station log.",
                "steps": ["Board the station", "Reach the bridge", "Unlock the terminal"],
            }
        ],
    },
    "historic": {
        "title": "The Scribe of Alexandria",
        "description": "Save a precious scroll before the great library burns.",
        "theme": "historic",
        "setting": "Alexandria, 48 BC",
        "starting_room": "harbor",
        "rooms": [
            {
                "id": "harbor",
                "name": "Great Harbor",
                "description": "Ships crowd the harbor. Smoke rises beyond the warehouses.",
                "exits": {"east": "agora"},
            },
            {
                "id": "agora",
                "name": "Agora",
                "description": "Merchants shout over one another. A scholar waves you closer.",
                "exits": {"west": "harbor", "north": "library"},
                "items": ["wax tablet"],
                "npcs": ["scholar"],
            },
            {
                "id": "library",
                "name": "Library Stacks",
                "description": "Endless shelves of papyrus scrolls. The air smells of cedar oil.",
                "exits": {"south": "agora"},
                "items": ["scroll"],
            },
        ],
        "npcs": [
            {
                "id": "scholar",
                "name": "Theon the Scholar",
                "location": "agora",
                "personality": "Urgent and learned",
                "dialogue": "The scroll of Eratosthenes must not be lost. Hurry to the stacks!",
            }
        ],
        "quests": [
            {
                "id": "save_scroll",
                "name": "Save the Scroll",
                "description": "Carry the scroll of Eratosthenes to safety.",
                "steps": ["Meet Theon", "Find the scroll"],
            }
        ],
    },
    "horror": {
        "title": "The House on Marrow Lane",
        "description": "Something in the old house wants you to stay.",
        "theme": "horror",
        "setting": "A decaying Victorian house",
        "starting_room": "foyer",
        "rooms": [
            {
                "id": "foyer",
                "name": "Foyer",
                "description": "Dust sheets cover the furniture. The front door has locked behind you.",
                "exits": {"north": "hallway"},
                "items": ["candle"],
            },
            {
                "id": "hallway",
                "name": "Upper Hallway",
                "description": "Portraits line the walls. Their eyes seem to follow you.",
                "exits": {"south": "foyer", "down": "cellar"},
            },
            {
                "id": "cellar",
                "name": "Cellar",
                "description": "Cold, wet stone. Scratches cover the inside of an old door.",
                "exits": {"up": "hallway"},
                "items": ["brass key"],
            },
        ],
        "quests": [
            {
                "id": "escape",
                "name": "Get Out",
                "description": "Find a way out of the house.",
                "steps": ["Explore the house", "Find the key"],
            }
        ],
    },
    "mystery": {
        "title": "The Midnight Express",
        "description": "A passenger has vanished between stations.",
        "theme": "mystery",
        "setting": "A night train crossing the mountains",
        "starting_room": "dining_car",
        "rooms": [
            {
                "id": "dining_car",
                "name": "Dining Car",
                "description": "Half-finished meals and an overturned glass. The conductor paces.",
                "exits": {"east": "sleeper"},
                "npcs": ["conductor"],
            },
            {
                "id": "sleeper",
                "name": "Sleeper Car",
                "description": "A row of compartments. Number seven's door is ajar.",
                "exits": {"west": "dining_car", "east": "baggage"},
                "items": ["torn ticket"],
            },
            {
                "id": "baggage",
                "name": "Baggage Car",
                "description": "Trunks stacked to the ceiling. One is far too heavy.",
                "exits": {"west": "sleeper"},
            },
        ],
        "npcs": [
            {
                "id": "conductor",
                "name": "The Conductor",
                "location": "dining_car",
                "personality": "Nervous and secretive",
                "dialogue": "Compartment seven was empty when I checked. Empty!",
            }
        ],
        "quests": [
            {
                "id": "vanished",
                "name": "The Vanished Passenger",
                "description": "Find out what happened to the passenger in compartment seven.",
                "steps": ["Question the conductor", "Search compartment seven", "Check the baggage car"],
            }
        ],
    },
}

_THEME_ALIASES: dict[str, str] = {
    "sci-fi": "space",
    "scifi": "space",
    "science fiction": "space",
    "history": "historic",
    "historical": "historic",
    "scary": "horror",
    "travel mystery": "mystery",
}


def canned_themes() -> list[str]:
    return sorted(_CANNED)


def canned_world(theme: str | None) -> World:
    """Return a fresh copy of the canned world closest to `theme` (fantasy by default)."""

    key = (theme or "").strip().casefold()
    key = _THEME_ALIASES.get(key, key)
    if key not in _CANNED:
        key = next((k for k in _CANNED if k in (theme or "").casefold()), "fantasy")
    return World.model_validate(_CANNED[key])
