"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class OrchestratorSettings:
    """
    Runtime settings for freshness orchestration passes.
    """

    lock_key: str = "orchestrate-data"
    lock_lease_seconds: int = 1800
    heal_budget_ms: int = 120_000
    max_concurrency: int = 3
    retry_attempts: int = 0
    quality_window_hours: float = 48.0
    sources_file: str | None = None


@dataclass(frozen=True)
class IngestionHTTPSettings:
    """
    How healing reaches the ingestion job endpoints.
    """

    base_url: str = "http://localhost:3000"
    timeout_seconds: float = 110.0
    cron_secret: str | None = None


@dataclass(frozen=True)
class AuthSettings:
    """
    Operator authentication for side-effecting endpoints.
    """

    cron_secret: str | None = None
    allow_unauthenticated: bool = False


@dataclass(frozen=True)
class SchedulerSettings:
    """
    In-process APScheduler settings.
    """

    enabled: bool = True
    orchestrate_cron: str = "*/30 * * * *"
    stale_sweep_cron: str = "*/15 * * * *"
    misfire_grace_seconds: int = 300


@lru_cache(maxsize=1)
def get_orchestrator_settings() -> OrchestratorSettings:
    """
    Return cached orchestration settings from environment variables.
    """

    return OrchestratorSettings(
        lock_key=_get_str_env("FRESHNESS_LOCK_KEY", "orchestrate-data"),
        lock_lease_seconds=max(1, _get_int_env("FRESHNESS_LOCK_LEASE_SECONDS", 1800)),
        heal_budget_ms=max(1, _get_int_env("FRESHNESS_HEAL_BUDGET_MS", 120_000)),
        max_concurrency=max(1, _get_int_env("FRESHNESS_MAX_CONCURRENCY", 3)),
        retry_attempts=max(0, _get_int_env("FRESHNESS_RETRY_ATTEMPTS", 0)),
        quality_window_hours=max(1.0, _get_float_env("FRESHNESS_QUALITY_WINDOW_HOURS", 48.0)),
        sources_file=_get_optional_str_env("FRESHNESS_SOURCES_FILE"),
    )


@lru_cache(maxsize=1)
def get_ingestion_http_settings() -> IngestionHTTPSettings:
    """
    Return ingestion endpoint settings from environment variables.
    """

    return IngestionHTTPSettings(
        base_url=_get_str_env("APP_BASE_URL", "http://localhost:3000"),
        timeout_seconds=max(1.0, _get_float_env("FRESHNESS_TRIGGER_TIMEOUT_SECONDS", 110.0)),
        cron_secret=_get_optional_str_env("CRON_SECRET"),
    )


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """
    Return operator auth settings from environment variables.
    """

    return AuthSettings(
        cron_secret=_get_optional_str_env("CRON_SECRET"),
        allow_unauthenticated=_get_bool_env("FRESHNESS_ALLOW_UNAUTHENTICATED", False),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("SCHEDULER_ENABLED", True),
        orchestrate_cron=_get_str_env("FRESHNESS_ORCHESTRATE_CRON", "*/30 * * * *"),
        stale_sweep_cron=_get_str_env("FRESHNESS_STALE_SWEEP_CRON", "*/15 * * * *"),
        misfire_grace_seconds=max(1, _get_int_env("SCHEDULER_MISFIRE_GRACE_SECONDS", 300)),
    )
