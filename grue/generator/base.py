from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from grue.generator.json_schema import JsonSchema


@dataclass(frozen=True, slots=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One call to the text generator.

    `previous_response_id` chains the call to generator-side context from an earlier
    response, so `messages` can carry only the new turn.
    """

    system: str
    messages: list[Message]
    structured_output: JsonSchema | None = None
    previous_response_id: str | None = None
    seed: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GeneratorResult:
    text: str
    usage: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    raw: Any = None
    response_id: str | None = None


@dataclass(frozen=True, slots=True)
class StreamDelta:
    text: str = ""
    response_id: str | None = None


class Generator(Protocol):
    name: str

    async def complete(self, request: GenerationRequest) -> GeneratorResult:  # pragma: no cover
        ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:  # pragma: no cover
        ...
