"""
Engine settings.

Values come from environment variables (optionally from the project's .env
file, loaded the same way as the Supabase client does). Every setting has a
default so the engine can be built in tests without any environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).parent.parent / ".env"


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class EngineSettings:
    notification_dedup_window_minutes: int = 30
    notification_batch_size: int = 50
    notification_max_attempts: int = 3
    notification_retry_delay_seconds: float = 1.0
    storage_retry_attempts: int = 2
    storage_retry_delay_seconds: float = 0.5
    contract_writer_cache_ttl_seconds: float = 300.0
    orphan_grace_period_minutes: int = 5
    stale_pending_sale_hours: int = 1
    log_level: str = "INFO"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """
        Build settings from the environment.

        When `env` is None, the project's .env file is loaded first and
        os.environ is read.
        """

        if env is None:
            load_dotenv(dotenv_path=_ENV_PATH)
            env = os.environ

        return EngineSettings(
            notification_dedup_window_minutes=_int(env, "NOTIFICATION_DEDUP_WINDOW_MINUTES", 30),
            notification_batch_size=_int(env, "NOTIFICATION_BATCH_SIZE", 50),
            notification_max_attempts=_int(env, "NOTIFICATION_MAX_ATTEMPTS", 3),
            notification_retry_delay_seconds=_float(env, "NOTIFICATION_RETRY_DELAY_SECONDS", 1.0),
            storage_retry_attempts=_int(env, "STORAGE_RETRY_ATTEMPTS", 2),
            storage_retry_delay_seconds=_float(env, "STORAGE_RETRY_DELAY_SECONDS", 0.5),
            contract_writer_cache_ttl_seconds=_float(env, "CONTRACT_WRITER_CACHE_TTL_SECONDS", 300.0),
            orphan_grace_period_minutes=_int(env, "ORPHAN_GRACE_PERIOD_MINUTES", 5),
            stale_pending_sale_hours=_int(env, "STALE_PENDING_SALE_HOURS", 1),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


__all__ = ["EngineSettings"]
