"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass

from feedsync.poller import DEFAULT_POLL_INTERVAL_MINUTES, DEFAULT_WARMUP_SECONDS
from feedsync.transport import DEFAULT_USER_AGENT

DEFAULT_DB_PATH = "feedsync.db"
DEFAULT_MAX_CONCURRENCY = 4


def get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    poll_interval_minutes: int = DEFAULT_POLL_INTERVAL_MINUTES
    warmup_seconds: float = DEFAULT_WARMUP_SECONDS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FEEDSYNC_* environment variables."""
        return cls(
            db_path=os.environ.get("FEEDSYNC_DB_PATH") or DEFAULT_DB_PATH,
            poll_interval_minutes=max(
                1, get_int("FEEDSYNC_POLL_INTERVAL_MINUTES", DEFAULT_POLL_INTERVAL_MINUTES)
            ),
            warmup_seconds=max(0.0, get_float("FEEDSYNC_WARMUP_SECONDS", DEFAULT_WARMUP_SECONDS)),
            max_concurrency=max(1, get_int("FEEDSYNC_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)),
            user_agent=os.environ.get("FEEDSYNC_USER_AGENT") or DEFAULT_USER_AGENT,
        )
