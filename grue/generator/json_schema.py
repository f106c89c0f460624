from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class JsonSchema:
    """Named JSON Schema for OpenAI-style structured outputs."""

    name: str
    schema: dict[str, Any]
    strict: bool = False

    def response_format(self) -> dict[str, Any]:
        # Chat-completions shape.
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "schema": self.schema, "strict": self.strict},
        }

    def text_format(self) -> dict[str, Any]:
        # Responses API shape.
        return {"type": "json_schema", "name": self.name, "schema": self.schema, "strict": self.strict}
