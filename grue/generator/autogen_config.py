from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from autogen import LLMConfig


@dataclass(frozen=True, slots=True)
class OpenAICompatibleSettings:
    model: str
    base_url: str | None
    api_key: str | None
    backend: str
    timeout_s: float


def settings_from_env(*, default_model: str = "gpt-4o-mini") -> OpenAICompatibleSettings:
    raw_timeout = os.environ.get("GRUE_GENERATOR_TIMEOUT_S", "").strip()
    return OpenAICompatibleSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        # For Ollama, typically http://127.0.0.1:11434/v1
        base_url=os.environ.get("OPENAI_BASE_URL"),
        api_key=os.environ.get("OPENAI_API_KEY"),
        backend=os.environ.get("GRUE_GENERATOR_BACKEND", "responses").strip().lower(),
        timeout_s=float(raw_timeout) if raw_timeout else 120.0,
    )


def resolve_api_key(s: OpenAICompatibleSettings) -> str:
    # Many OpenAI-compatible servers ignore the key but some SDKs require it.
    api_key = s.api_key or ("ollama" if s.base_url else None)
    if not api_key:
        raise RuntimeError(
            "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
        )
    return api_key


def llm_config_from_settings(s: OpenAICompatibleSettings) -> LLMConfig:
    config: dict[str, Any] = {"model": s.model, "api_key": resolve_api_key(s)}
    if s.base_url:
        config["base_url"] = s.base_url
    return LLMConfig(config_list=[config])
