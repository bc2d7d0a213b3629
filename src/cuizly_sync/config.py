"""
config.py

Purpose:
    - get_supabase_client(): create the async Supabase client from env vars
      (realtime channels are only available on the async client).
    - SyncSettings: tunables for polling, retries, activity flushing and language.

Usage:
    from cuizly_sync.config import get_supabase_client, SyncSettings
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# Client connection details come from the environment, never hardcoded.
from supabase import AsyncClient, acreate_client

from dotenv import load_dotenv

from cuizly_sync.errors import ConfigError

load_dotenv()  # loads .env


def supabase_key() -> str:
    # Browser-equivalent sessions use the anon key (RLS applies); workers may use the service role.
    key = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not key:
        raise ConfigError("Set SUPABASE_ANON_KEY (or SUPABASE_SERVICE_ROLE_KEY) in the environment or .env")
    return key


def supabase_url() -> str:
    url = os.environ.get("SUPABASE_URL")
    if not url:
        raise ConfigError("Set SUPABASE_URL in the environment or .env")
    return url.rstrip("/")


async def get_supabase_client() -> AsyncClient:
    """Create an async Supabase client using env vars."""
    return await acreate_client(supabase_url(), supabase_key())


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {value}")
    return value


def _env_int(name: str, default: int) -> int:
    value = _env_float(name, float(default))
    if value != int(value):
        raise ConfigError(f"{name} must be an integer, got {value}")
    return int(value)


@dataclass(frozen=True)
class SyncSettings:
    # 0 disables polling for that resource (mount-only / push-only)
    profile_poll_seconds: float = 60.0
    favorites_poll_seconds: float = 0.0
    notifications_poll_seconds: float = 0.0
    ratings_poll_seconds: float = 0.0
    reservations_poll_seconds: float = 0.0
    offers_poll_seconds: float = 0.0
    comments_poll_seconds: float = 0.0

    reload_retries: int = 2
    reload_backoff_seconds: float = 1.0

    activity_flush_seconds: float = 30.0
    notifications_limit: int = 50
    functions_timeout_seconds: float = 30.0

    language: str = "fr"

    @classmethod
    def from_env(cls, language: Optional[str] = None) -> "SyncSettings":
        return cls(
            profile_poll_seconds=_env_float("CUIZLY_PROFILE_POLL_SECONDS", 60.0),
            favorites_poll_seconds=_env_float("CUIZLY_FAVORITES_POLL_SECONDS", 0.0),
            notifications_poll_seconds=_env_float("CUIZLY_NOTIFICATIONS_POLL_SECONDS", 0.0),
            ratings_poll_seconds=_env_float("CUIZLY_RATINGS_POLL_SECONDS", 0.0),
            reservations_poll_seconds=_env_float("CUIZLY_RESERVATIONS_POLL_SECONDS", 0.0),
            offers_poll_seconds=_env_float("CUIZLY_OFFERS_POLL_SECONDS", 0.0),
            comments_poll_seconds=_env_float("CUIZLY_COMMENTS_POLL_SECONDS", 0.0),
            reload_retries=_env_int("CUIZLY_RELOAD_RETRIES", 2),
            reload_backoff_seconds=_env_float("CUIZLY_RELOAD_BACKOFF_SECONDS", 1.0),
            activity_flush_seconds=_env_float("CUIZLY_ACTIVITY_FLUSH_SECONDS", 30.0),
            notifications_limit=_env_int("CUIZLY_NOTIFICATIONS_LIMIT", 50),
            functions_timeout_seconds=_env_float("CUIZLY_FUNCTIONS_TIMEOUT_SECONDS", 30.0),
            language=language or os.environ.get("CUIZLY_LANGUAGE", "fr"),
        )
