"""OpenAI Responses API client over httpx.

Supports server-side continuation (`previous_response_id`) and SSE streaming, which
the AG2 backend does not.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from grue.errors import GeneratorTransportError
from grue.generator.autogen_config import OpenAICompatibleSettings, resolve_api_key
from grue.generator.base import GenerationRequest, GeneratorResult, StreamDelta


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def build_payload(request: GenerationRequest, *, model: str, stream: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model,
        "instructions": request.system,
        "input": [{"role": m.role, "content": m.content} for m in request.messages],
    }
    if request.previous_response_id:
        payload["previous_response_id"] = request.previous_response_id
    if request.structured_output is not None:
        payload["text"] = {"format": request.structured_output.text_format()}
    if stream:
        payload["stream"] = True
    return payload


def output_text(data: dict[str, Any]) -> str:
    """Concatenate every output_text part of a Responses API result."""

    if isinstance(data.get("output_text"), str):
        return data["output_text"]
    parts: list[str] = []
    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                parts.append(content["text"])
    return "".join(parts)


def usage_of(data: dict[str, Any]) -> dict[str, int]:
    usage = data.get("usage") or {}
    return {k: int(v) for k, v in usage.items() if isinstance(v, int)}


@dataclass(slots=True)
class ResponsesGenerator:
    settings: OpenAICompatibleSettings
    transport: httpx.AsyncBaseTransport | None = None
    name: str = "responses"

    @property
    def url(self) -> str:
        return f"{(self.settings.base_url or DEFAULT_BASE_URL).rstrip('/')}/responses"

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {resolve_api_key(self.settings)}"}
        return httpx.AsyncClient(timeout=self.settings.timeout_s, headers=headers, transport=self.transport)

    async def complete(self, request: GenerationRequest) -> GeneratorResult:
        payload = build_payload(request, model=self.settings.model)
        t0 = time.perf_counter()
        try:
            async with self._client() as client:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise self._transport_error(f"Generator returned {e.response.status_code}", e, t0) from e
        except httpx.TimeoutException as e:
            raise self._transport_error("Generator timed out", e, t0) from e
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise self._transport_error(f"Generator request failed: {e}", e, t0) from e

        return GeneratorResult(
            text=output_text(data),
            usage=usage_of(data),
            duration_ms=int((time.perf_counter() - t0) * 1000),
            raw=data,
            response_id=data.get("id"),
        )

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        payload = build_payload(request, model=self.settings.model, stream=True)
        t0 = time.perf_counter()
        try:
            async with self._client() as client:
                async with client.stream("POST", self.url, json=payload) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        delta = parse_stream_line(line)
                        if delta is not None:
                            yield delta
        except httpx.HTTPStatusError as e:
            raise self._transport_error(f"Generator returned {e.response.status_code}", e, t0) from e
        except httpx.TimeoutException as e:
            raise self._transport_error("Generator timed out", e, t0) from e
        except httpx.HTTPError as e:
            raise self._transport_error(f"Generator stream failed: {e}", e, t0) from e

    @staticmethod
    def _transport_error(message: str, cause: BaseException, t0: float) -> GeneratorTransportError:
        return GeneratorTransportError(message, cause=cause, elapsed_ms=int((time.perf_counter() - t0) * 1000))


def parse_stream_line(line: str) -> StreamDelta | None:
    """Turn one SSE line from the Responses API into a delta (or None to skip it)."""

    if not line.startswith("data:"):
        return None
    body = line[len("data:") :].strip()
    if not body or body == "[DONE]":
        return None
    try:
        event = json.loads(body)
    except json.JSONDecodeError:
        logger.debug("skipping undecodable stream line: %r", body[:200])
        return None
    if not isinstance(event, dict):
        return None

    kind = event.get("type")
    if kind == "response.output_text.delta" and isinstance(event.get("delta"), str):
        return StreamDelta(text=event["delta"])
    if kind in {"response.created", "response.completed"}:
        response = event.get("response") or {}
        if isinstance(response, dict) and response.get("id"):
            return StreamDelta(response_id=str(response["id"]))
    return None
