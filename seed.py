"""Utility script to bootstrap the database with the default source configs."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker

from stagerelay.config import SourceType
from stagerelay.config.store import SqlConfigStore
from stagerelay.errors import ConfigNotFoundError
from stagerelay.models.session import get_sessionmaker
from stagerelay.settings import DEFAULT_DATABASE_URL

logger = logging.getLogger("seed")

DEFAULT_HOLYRICS: dict[str, str] = {
    "URL": "http://192.168.0.200:8092/view/text",
    "TIMEOUT": "30",
    "RETRY_TIME": "3",
    "MAX_NETWORK_FAILURES": "3",
    "POLLING_INTERVAL_MS": "100",
    "REFERENCE_SELECTOR": ".bible-header-custom",
    "TEXT_SELECTOR": ".bible_slide > ctt",
    "VERSION_SELECTOR": ".bible_slide > span",
}

DEFAULT_PRO_PRESENTER: dict[str, str] = {
    "HOST": "192.168.0.200",
    "PORT": "8999",
}


@dataclass(slots=True)
class SeedConfig:
    """Configuration derived from the environment for the seed process."""

    db_url: str
    reset: bool
    sets: dict[str, dict[str, str]] = field(default_factory=dict)


def _to_bool(value: str | None) -> bool:
    """Parse a truthy string value into ``bool``."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    redacted = parsed.set(password="***")
    return redacted.render_as_string(hide_password=False)


def _with_overrides(defaults: dict[str, str], prefix: str) -> dict[str, str]:
    """Apply ``<prefix><KEY>`` environment overrides to ``defaults``.

    Extra keys (e.g. ``SEED_HOLYRICS_MAX_DOM_READ_FAILURES``) are added too.
    """

    values = dict(defaults)
    for name, value in os.environ.items():
        if name.startswith(prefix) and value != "":
            values[name[len(prefix):]] = value
    return values


def _load_config() -> SeedConfig:
    return SeedConfig(
        db_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        reset=_to_bool(os.getenv("SEED_RESET")),
        sets={
            SourceType.HOLYRICS.value: _with_overrides(DEFAULT_HOLYRICS, "SEED_HOLYRICS_"),
            SourceType.PRO_PRESENTER.value: _with_overrides(
                DEFAULT_PRO_PRESENTER, "SEED_PRO_PRESENTER_"
            ),
        },
    )


def wait_for_database(
    factory: sessionmaker[Session], max_attempts: int = 10, delay: float = 3.0
) -> None:
    """Attempt to establish a database connection, retrying if necessary."""

    engine = factory.kw["bind"]
    safe_url = _safe_url(str(engine.url))

    for attempt in range(1, max_attempts + 1):
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception as exc:  # pragma: no cover - depends on external DB
            logger.info(
                "Database not ready (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                exc,
                delay,
            )
            if attempt >= max_attempts:
                raise RuntimeError("Database did not become ready in time") from exc
            time.sleep(delay)
            continue

        logger.info("Database connection established after %d attempt(s): %s", attempt, safe_url)
        return


def seed_configs(store: SqlConfigStore, config: SeedConfig) -> dict[str, dict[str, str]]:
    """Write every configured set, replacing existing ones when ``reset`` is set."""

    seeded: dict[str, dict[str, str]] = {}
    for code, values in config.sets.items():
        if config.reset:
            try:
                store.delete_config(code)
                logger.info("Cleared existing config set %s", code)
            except ConfigNotFoundError:
                pass
        seeded[code] = store.set_values(code, values)
        logger.info("Seeded config set %s with %d key(s)", code, len(values))
    return seeded


async def main() -> None:
    """Entrypoint for the seeding workflow."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = _load_config()
    logger.info("Starting seed process using %s", _safe_url(config.db_url))

    session_factory = get_sessionmaker(database_url=config.db_url)
    await asyncio.to_thread(wait_for_database, session_factory)

    store = SqlConfigStore(session_factory)
    await asyncio.to_thread(store.create_schema)
    seeded = await asyncio.to_thread(seed_configs, store, config)

    logger.info("Seed process completed: %s", ", ".join(sorted(seeded)))


if __name__ == "__main__":
    asyncio.run(main())
