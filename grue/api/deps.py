from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends, Request

from grue.config import EngineSettings
from grue.engine.engine import GameEngine
from grue.generator.gateway import NarrativeGateway
from grue.infra.redis_client import create_redis
from grue.persistence import GameRepository
from grue.session_store import SessionStore


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        try:
            client.close()
        except redis.RedisError:
            # Some redis client versions don't require explicit close.
            pass


def get_repository(r: redis.Redis = Depends(get_redis)) -> GameRepository:
    return GameRepository(r)


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_gateway(request: Request) -> NarrativeGateway:
    return request.app.state.gateway


def get_engine(request: Request) -> GameEngine:
    return request.app.state.engine


def get_settings(request: Request) -> EngineSettings:
    return request.app.state.settings
