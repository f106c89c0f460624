from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError as FastAPIRequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from grue.api.routes import router
from grue.config import EngineSettings, engine_settings_from_env, load_dotenv_if_present
from grue.engine.engine import GameEngine
from grue.errors import (
    GeneratorError,
    InvariantViolation,
    NotFoundError,
    RequestValidationError,
    SessionBusyError,
)
from grue.generator.base import Generator
from grue.generator.factory import create_default_generator
from grue.generator.gateway import NarrativeGateway, new_correlation_id
from grue.persistence import PersistenceWriter
from grue.session_store import SessionStore


APP_NAME = "grue"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _error(request: Request, status_code: int, message: str, **extra: object) -> JSONResponse:
    corr = getattr(request.state, "corr", None) or new_correlation_id()
    body: dict[str, object] = {"success": False, "error": message, "correlation_id": corr, **extra}
    return JSONResponse(status_code=status_code, content=body)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FastAPIRequestValidationError)
    async def _request_validation(request: Request, exc: FastAPIRequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = f"{field}: {first.get('msg', 'invalid request')}" if field else str(first.get("msg", "invalid request"))
        return _error(request, status.HTTP_400_BAD_REQUEST, msg)

    @app.exception_handler(RequestValidationError)
    async def _validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(request, status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(SessionBusyError)
    async def _busy(request: Request, exc: SessionBusyError) -> JSONResponse:
        return _error(request, status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(GeneratorError)
    async def _generator(request: Request, exc: GeneratorError) -> JSONResponse:
        logger.warning("generator error corr=%s elapsed_ms=%s: %s", getattr(request.state, "corr", None), exc.elapsed_ms, exc)
        return _error(request, status.HTTP_502_BAD_GATEWAY, str(exc), kind=type(exc).__name__)

    @app.exception_handler(InvariantViolation)
    async def _invariant(request: Request, exc: InvariantViolation) -> JSONResponse:
        return _error(request, status.HTTP_200_OK, str(exc), message=f"Something is wrong with this world: {exc}")

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(request, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error corr=%s", getattr(request.state, "corr", None))
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or type(exc).__name__)


def create_app(
    *,
    generator: Generator | None = None,
    settings: EngineSettings | None = None,
    sessions: SessionStore | None = None,
) -> FastAPI:
    """Build the app. Everything process-wide lives on `app.state`."""

    settings = settings or engine_settings_from_env()
    gateway = NarrativeGateway(generator if generator is not None else create_default_generator())

    app = FastAPI(title=APP_NAME, version=APP_VERSION)
    app.state.settings = settings
    app.state.sessions = sessions or SessionStore(
        history_window=settings.history_window, log_size=settings.session_log_size
    )
    app.state.gateway = gateway
    app.state.engine = GameEngine(
        gateway,
        writer=PersistenceWriter(),
        default_mode=settings.command_mode,
        lock_timeout_s=settings.lock_timeout_s,
    )
    app.include_router(router)
    install_error_handlers(app)

    @app.get("/info")
    async def info() -> dict[str, str]:
        return {"name": APP_NAME, "version": APP_VERSION, "command_mode": settings.command_mode}

    return app


def build_default_app() -> FastAPI:
    load_dotenv_if_present()
    logging.basicConfig(level=logging.DEBUG)
    return create_app()
