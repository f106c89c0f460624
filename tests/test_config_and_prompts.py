from __future__ import annotations

import pytest

from grue.config import engine_settings_from_env
from grue.generator.factory import create_default_generator
from grue.prompts import PromptLoadError, load_prompt, render_prompt


@pytest.mark.parametrize(
    "name",
    ["dungeon_master.txt", "narrator.txt", "room_generator.txt", "world_planner.txt", "rooms.txt", "characters.txt", "quests.txt"],
)
def test_prompts_load(name: str) -> None:
    assert load_prompt(name).strip()


def test_render_prompt_fills_known_placeholders_only() -> None:
    text = render_prompt("world_planner.txt", theme="pirate", difficulty="easy", profile="a cabin boy")
    assert "pirate" in text and "a cabin boy" in text
    assert "{theme}" not in text

    with pytest.raises(PromptLoadError):
        load_prompt("missing.txt")


def test_engine_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRUE_COMMAND_MODE", "Generator")
    monkeypatch.setenv("GRUE_HISTORY_WINDOW", "4")
    monkeypatch.delenv("GRUE_HEARTBEAT_S", raising=False)
    s = engine_settings_from_env()
    assert s.command_mode == "generator"
    assert s.history_window == 4
    assert s.heartbeat_s == 15.0

    monkeypatch.setenv("GRUE_COMMAND_MODE", "telepathy")
    with pytest.raises(RuntimeError):
        engine_settings_from_env()

    monkeypatch.setenv("GRUE_COMMAND_MODE", "parser")
    monkeypatch.setenv("GRUE_LOCK_TIMEOUT_S", "soon")
    with pytest.raises(RuntimeError):
        engine_settings_from_env()


def test_generator_backend_selection(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_BASE_URL", "http://127.0.0.1:11434/v1")
    monkeypatch.setenv("GRUE_GENERATOR_BACKEND", "responses")
    assert create_default_generator().name == "responses"
    monkeypatch.setenv("GRUE_GENERATOR_BACKEND", "ag2")
    assert create_default_generator().name == "ag2"
    monkeypatch.setenv("GRUE_GENERATOR_BACKEND", "carrier-pigeon")
    with pytest.raises(RuntimeError):
        create_default_generator()
