"""The one place the rest of grue talks to a text generator.

`NarrativeGateway` adds what every call needs on top of a bare `Generator`: timing and
correlation-id logging, uniform transport-error wrapping, JSON extraction, duck
validation of structured rooms with a single retry, and channel-based streaming.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from grue.errors import GeneratorError, GeneratorParseError, GeneratorTransportError, SchemaError
from grue.generator.base import GenerationRequest, Generator, GeneratorResult, Message
from grue.generator.json_schema import JsonSchema
from grue.generator.parsing import decode_variants, extract_json_object
from grue.prompts import load_prompt
from grue.streams import TextChannel
from grue.world.validation import validate_room_payload


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ROOM_SCHEMA = JsonSchema(
    name="room",
    schema={
        "type": "object",
        "properties": {
            "room_id": {"type": "string"},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "exits": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "exit_id": {"type": "string"},
                        "label": {"type": "string"},
                        "keywords": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["exit_id", "label", "keywords"],
                },
            },
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "item_id": {"type": "string"},
                        "name": {"type": "string"},
                        "takeable": {"type": "boolean"},
                        "description": {"type": "string"},
                    },
                },
            },
        },
        "required": ["room_id", "title", "description", "exits"],
    },
)


def new_correlation_id() -> str:
    return str(uuid4())


class NarrativeGateway:
    def __init__(self, generator: Generator, *, room_retries: int = 1) -> None:
        self.generator = generator
        self.room_retries = room_retries

    async def generate_structured(self, request: GenerationRequest, *, corr: str | None = None) -> GeneratorResult:
        """Run one completion; transport problems surface as GeneratorTransportError."""

        corr = corr or new_correlation_id()
        logger.info("generator call corr=%s backend=%s", corr, getattr(self.generator, "name", "?"))
        t0 = time.perf_counter()
        try:
            result = await self.generator.complete(request)
        except GeneratorError:
            raise
        except Exception as e:
            elapsed = int((time.perf_counter() - t0) * 1000)
            logger.warning("generator call failed corr=%s elapsed_ms=%s: %s", corr, elapsed, e)
            raise GeneratorTransportError(f"Generator call failed: {e}", cause=e, elapsed_ms=elapsed) from e

        elapsed = result.duration_ms or int((time.perf_counter() - t0) * 1000)
        logger.info(
            "generator returned corr=%s elapsed_ms=%s usage=%s raw_len=%s",
            corr,
            elapsed,
            json.dumps(result.usage or {}),
            len(result.text or ""),
        )
        return result

    async def generate_json(
        self, request: GenerationRequest, *, corr: str | None = None
    ) -> tuple[dict[str, Any], GeneratorResult]:
        result = await self.generate_structured(request, corr=corr)
        return extract_json_object(result.text), result

    async def generate_model(
        self,
        request: GenerationRequest,
        variants: Sequence[type[M]],
        *,
        corr: str | None = None,
    ) -> tuple[M, GeneratorResult]:
        data, result = await self.generate_json(request, corr=corr)
        return decode_variants(data, variants), result

    async def generate_room(
        self,
        payload: dict[str, Any],
        *,
        seed: int | None = None,
        corr: str | None = None,
    ) -> dict[str, Any]:
        """Ask for one structured room object and duck-validate it.

        Parse and schema failures are retried `room_retries` times, then re-raised.
        """

        request = GenerationRequest(
            system=load_prompt("room_generator.txt"),
            messages=[Message(role="user", content=json.dumps(payload))],
            structured_output=ROOM_SCHEMA,
            seed=seed,
            metadata={"kind": payload.get("kind")},
        )
        attempts = 1 + max(0, self.room_retries)
        last: GeneratorError = SchemaError("No room was generated")
        for attempt in range(1, attempts + 1):
            try:
                data, _ = await self.generate_json(request, corr=corr)
            except GeneratorParseError as e:
                logger.warning("room parse error corr=%s attempt=%s: %s", corr, attempt, e)
                last = e
                continue
            err = validate_room_payload(data)
            if err is None:
                return data
            logger.warning("room schema error corr=%s attempt=%s: %s", corr, attempt, err)
            last = SchemaError(f"Schema validation failed: {err}")
        raise last

    def stream(self, request: GenerationRequest, *, corr: str | None = None) -> TextChannel:
        """Start a streaming completion and return the channel its chunks arrive on.

        The producer runs as a task attached to the channel; closing the channel cancels it.
        """

        corr = corr or new_correlation_id()
        channel = TextChannel()

        async def _produce() -> None:
            t0 = time.perf_counter()
            try:
                async for delta in self.generator.stream(request):
                    if delta.response_id:
                        channel.response_id = delta.response_id
                    if delta.text:
                        channel.push(delta.text)
            except asyncio.CancelledError:
                logger.info("stream cancelled corr=%s", corr)
                channel.end()
                raise
            except GeneratorError as e:
                channel.end(e)
            except Exception as e:
                elapsed = int((time.perf_counter() - t0) * 1000)
                channel.end(GeneratorTransportError(f"Generator stream failed: {e}", cause=e, elapsed_ms=elapsed))
            else:
                logger.info(
                    "stream finished corr=%s elapsed_ms=%s chars=%s",
                    corr,
                    int((time.perf_counter() - t0) * 1000),
                    len(channel.text),
                )
                channel.end()

        channel.producer = asyncio.create_task(_produce())
        return channel
