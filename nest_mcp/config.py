"""
Process configuration.

Everything is resolved from the environment once, at startup, and handed to
the server as plain values. Nothing below the CLI reads os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_ROW_CAP = 100


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    db_path: Path = Path("data") / "nest_mcp.db"
    row_cap: int = DEFAULT_ROW_CAP
    query_timeout: float = 30.0
    session_idle_timeout: float = 1800.0
    keepalive_seconds: int = 15
    log_level: str = "INFO"

    def override(self, **changes) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings from environment variables (PORT follows Cloud Run)."""
    env = os.environ if env is None else env
    defaults = Settings()
    db_path = env.get("NEST_DB_PATH")
    return Settings(
        host=env.get("NEST_HOST", defaults.host),
        port=_int_env(env, "PORT", defaults.port),
        db_path=Path(db_path).expanduser() if db_path else defaults.db_path,
        row_cap=_int_env(env, "NEST_ROW_CAP", defaults.row_cap),
        query_timeout=_float_env(env, "NEST_QUERY_TIMEOUT", defaults.query_timeout),
        session_idle_timeout=_float_env(
            env, "NEST_SESSION_IDLE_TIMEOUT", defaults.session_idle_timeout
        ),
        keepalive_seconds=_int_env(env, "NEST_KEEPALIVE_SECONDS", defaults.keepalive_seconds),
        log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
    )
