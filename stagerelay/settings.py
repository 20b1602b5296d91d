"""Process-level settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///stagerelay.db"


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Parse a truthy string value into ``bool``."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(slots=True)
class Settings:
    """Configuration derived from the environment for one relay process."""

    database_url: str = DEFAULT_DATABASE_URL
    orchestrator_interval: float = 3.0
    status_broadcast_interval: float = 2.0
    status_max_logs: int = 100
    broadcast_queue_size: int = 100
    browser_headless: bool = True
    browser_executable_path: str | None = None
    cors_origins: list[str] = field(default_factory=list)


def load_settings() -> Settings:
    """Build :class:`Settings` from environment variables (and ``.env``)."""

    load_dotenv()
    return Settings(
        database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        orchestrator_interval=float(os.getenv("ORCHESTRATOR_INTERVAL", "3")),
        status_broadcast_interval=float(os.getenv("STATUS_BROADCAST_INTERVAL", "2")),
        status_max_logs=int(os.getenv("STATUS_MAX_LOGS", "100")),
        broadcast_queue_size=int(os.getenv("BROADCAST_QUEUE_SIZE", "100")),
        browser_headless=_to_bool(os.getenv("BROWSER_HEADLESS"), default=True),
        browser_executable_path=os.getenv("BROWSER_EXECUTABLE_PATH") or None,
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
    )


__all__ = ["Settings", "load_settings"]
