"""
Environment-driven settings shared by the API.

Values are read on every call so tests can monkeypatch the environment.
"""

from __future__ import annotations

import logging
import os

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_STORE_TIMEOUT_S = 10.0


def env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def kv_backend() -> str:
    """
    `postgres` when DATABASE_URL is configured, otherwise the in-memory store.
    """
    fallback = "postgres" if os.environ.get("DATABASE_URL", "").strip() else "memory"
    return env_str("KV_BACKEND", fallback).lower()


def store_timeout_s() -> float | None:
    # 0 or a negative value disables the per-call timeout.
    value = env_float("STORE_TIMEOUT_S", DEFAULT_STORE_TIMEOUT_S)
    return value if value > 0 else None


def cors_origins() -> list[str]:
    raw = env_str("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def static_dir() -> str:
    return env_str("STATIC_DIR", ".")


def configure_logging() -> None:
    level = env_str("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
