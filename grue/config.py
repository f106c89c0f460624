from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def project_root() -> Path:
    # grue/config.py -> grue/ -> project root
    return Path(__file__).resolve().parents[1]


def load_dotenv_if_present(*, override: bool = False) -> bool:
    env_path = project_root() / ".env"
    if not env_path.exists():
        return False
    from dotenv import load_dotenv

    return load_dotenv(dotenv_path=env_path, override=override)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class EngineSettings:
    command_mode: str
    history_window: int
    session_log_size: int
    worldgen_timeout_s: float
    heartbeat_s: float
    lock_timeout_s: float


def engine_settings_from_env() -> EngineSettings:
    mode = os.environ.get("GRUE_COMMAND_MODE", "parser").strip().lower()
    if mode not in {"parser", "generator"}:
        raise RuntimeError(f"GRUE_COMMAND_MODE must be 'parser' or 'generator', got {mode!r}")
    return EngineSettings(
        command_mode=mode,
        history_window=_env_int("GRUE_HISTORY_WINDOW", 10),
        session_log_size=_env_int("GRUE_SESSION_LOG_SIZE", 200),
        worldgen_timeout_s=_env_float("GRUE_WORLDGEN_TIMEOUT_S", 90.0),
        heartbeat_s=_env_float("GRUE_HEARTBEAT_S", 15.0),
        lock_timeout_s=_env_float("GRUE_LOCK_TIMEOUT_S", 30.0),
    )
