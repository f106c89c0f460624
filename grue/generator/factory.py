from __future__ import annotations

from typing import cast

from grue.generator.ag2_backend import Ag2Generator
from grue.generator.autogen_config import settings_from_env
from grue.generator.base import Generator
from grue.generator.responses_backend import ResponsesGenerator


def create_default_generator() -> Generator:
    """Create the LLM-backed generator selected by GRUE_GENERATOR_BACKEND.

    `responses` (default) talks to the OpenAI Responses API over httpx; `ag2` uses
    AG2/autogen. Both read model configuration from env.
    """

    settings = settings_from_env()
    if settings.backend == "ag2":
        return cast(Generator, Ag2Generator(settings=settings))
    if settings.backend == "responses":
        return cast(Generator, ResponsesGenerator(settings=settings))
    raise RuntimeError(f"Unknown GRUE_GENERATOR_BACKEND: {settings.backend!r}")
