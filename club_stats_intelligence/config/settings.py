"""
Engine settings.

Read from the environment (and a local ``.env`` file when present). Without
Supabase credentials the engine answers from the fallback dataset only.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


class ConfigurationError(ValueError):
    """Required configuration is missing or malformed."""

    pass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")


@dataclass(frozen=True)
class EngineSettings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    redis_host: Optional[str] = None
    redis_port: int = 6379
    redis_password: Optional[str] = None
    cache_ttl_seconds: int = 3600
    store_timeout_seconds: float = 5.0
    store_retry_backoff_seconds: float = 0.25
    store_max_backoff_seconds: float = 1.0
    ranking_default_limit: int = 10
    log_level: str = "WARNING"

    @property
    def has_live_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def has_cache(self) -> bool:
        return bool(self.redis_host)

    def require_live_store(self) -> None:
        if not self.has_live_store:
            raise ConfigurationError(
                "Supabase credentials not found. Please set SUPABASE_URL and "
                "SUPABASE_SERVICE_ROLE_KEY environment variables or pass them directly."
            )

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineSettings":
        load_dotenv(env_file)
        return cls(
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            redis_host=os.getenv("REDIS_HOST"),
            redis_port=_env_int("REDIS_PORT", 6379),
            redis_password=os.getenv("REDIS_PASSWORD"),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", 3600),
            store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", 5.0),
            store_retry_backoff_seconds=_env_float("STORE_RETRY_BACKOFF_SECONDS", 0.25),
            store_max_backoff_seconds=_env_float("STORE_MAX_BACKOFF_SECONDS", 1.0),
            ranking_default_limit=_env_int("RANKING_DEFAULT_LIMIT", 10),
            log_level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        )
