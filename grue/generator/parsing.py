from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from grue.errors import GeneratorParseError, UnrecognizedFormat


M = TypeVar("M", bound=BaseModel)


def first_balanced_object(text: str) -> str | None:
    """Return the first balanced `{...}` substring of `text`, ignoring braces in strings."""

    start = text.find("{")
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from here on; try the next opening brace.
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the JSON object embedded in generator output.

    Surrounding prose and code fences are tolerated.
    """

    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data

    candidate = first_balanced_object(text)
    if candidate is None:
        raise GeneratorParseError("No JSON object found in generator output", raw=text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise GeneratorParseError(f"Invalid JSON from generator: {e}", raw=text, cause=e) from e
    if not isinstance(data, dict):
        raise GeneratorParseError("Expected a JSON object", raw=text)
    return data


def decode_variants(data: dict[str, Any], variants: Sequence[type[M]]) -> M:
    """Decode `data` against each known format in order; first match wins."""

    reasons: list[str] = []
    for model in variants:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = ".".join(str(p) for p in first.get("loc", ()))
            reasons.append(f"{model.__name__}: {loc or '?'} {first.get('msg', '')}".strip())
    raise UnrecognizedFormat("Unrecognized generator output format (" + "; ".join(reasons) + ")")
