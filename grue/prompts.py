from __future__ import annotations

from grue.config import project_root


class PromptLoadError(RuntimeError):
    pass


def load_prompt(name: str) -> str:
    """Load a prompt text file from the repo `prompts/` directory.

    Example:
        load_prompt("dungeon_master.txt")
    """

    path = project_root() / "prompts" / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e


def render_prompt(name: str, **values: object) -> str:
    """Load a prompt and fill `{placeholders}`; unknown braces are left alone."""

    text = load_prompt(name)
    for key, value in values.items():
        text = text.replace("{" + key + "}", str(value))
    return text
