from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent, LLMConfig

from grue.errors import GeneratorTransportError
from grue.generator.autogen_config import OpenAICompatibleSettings, llm_config_from_settings
from grue.generator.base import GenerationRequest, GeneratorResult, StreamDelta


def _extract_last_content(messages: object) -> str:
    """Extract the last message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


def _render_messages(request: GenerationRequest) -> str:
    # AG2 runs a single-turn chat, so earlier turns are folded into the prompt.
    if len(request.messages) == 1:
        return request.messages[0].content
    return "\n\n".join(f"{m.role.upper()}: {m.content}" for m in request.messages)


@dataclass(slots=True)
class Ag2Generator:
    """Generator backed by an AG2 `ConversableAgent`.

    AG2 has no server-side continuation, so `previous_response_id` is ignored and
    `stream()` yields the whole completion as one delta.
    """

    settings: OpenAICompatibleSettings
    name: str = "ag2"

    def _run(self, request: GenerationRequest, llm_config: LLMConfig) -> str:
        agent = ConversableAgent(
            name="narrator",
            system_message=request.system,
            llm_config=llm_config,
            human_input_mode="NEVER",
        )

        # AG2 forwards unknown kwargs through to the OpenAI client.
        extra: dict[str, Any] = {}
        if request.structured_output is not None:
            extra["response_format"] = request.structured_output.response_format()

        result = agent.run(message=_render_messages(request), max_turns=1, **extra)
        result.process()

        text = _extract_last_content(list(result.messages))
        if not text:
            summary = result.summary
            if isinstance(summary, str):
                text = summary.strip()
        return text

    async def complete(self, request: GenerationRequest) -> GeneratorResult:
        llm_config = llm_config_from_settings(self.settings)
        t0 = time.perf_counter()
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._run, request, llm_config), timeout=self.settings.timeout_s
            )
        except Exception as e:
            elapsed = int((time.perf_counter() - t0) * 1000)
            raise GeneratorTransportError(f"AG2 call failed: {e}", cause=e, elapsed_ms=elapsed) from e
        return GeneratorResult(text=text, duration_ms=int((time.perf_counter() - t0) * 1000), raw=None)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamDelta]:
        result = await self.complete(request)
        yield StreamDelta(text=result.text)
