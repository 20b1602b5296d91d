"""Configuration store backed by SQLAlchemy.

The orchestrator only needs :meth:`ConfigStore.get_config`; the remaining
methods back the ``/api/config`` routes and the seed script. Reads return
plain ``dict[str, str]`` copies so callers never hold ORM state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..errors import ConfigNotFoundError
from ..models import Base, ConfigSet, ConfigValue
from ..models.session import session_scope

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """Abstraction over where configuration sets live."""

    def get_config(self, code: str) -> dict[str, str] | None: ...

    def list_configs(self) -> dict[str, dict[str, str]]: ...

    def set_values(self, code: str, values: Mapping[str, str]) -> dict[str, str]: ...

    def delete_value(self, code: str, key: str) -> None: ...

    def delete_config(self, code: str) -> None: ...


class SqlConfigStore:
    """:class:`ConfigStore` implementation using the ``config`` tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_schema(self) -> None:
        """Create the configuration tables if they do not exist yet."""

        engine = self._session_factory.kw["bind"]
        Base.metadata.create_all(engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _find(self, session: Session, code: str) -> ConfigSet | None:
        stmt = (
            select(ConfigSet)
            .where(ConfigSet.code == code)
            .options(selectinload(ConfigSet.values))
        )
        return session.scalars(stmt).first()

    def get_config(self, code: str) -> dict[str, str] | None:
        with session_scope(self._session_factory) as session:
            config_set = self._find(session, code)
            if config_set is None:
                return None
            return config_set.as_dict()

    def list_configs(self) -> dict[str, dict[str, str]]:
        with session_scope(self._session_factory) as session:
            stmt = select(ConfigSet).options(selectinload(ConfigSet.values)).order_by(ConfigSet.code)
            return {config_set.code: config_set.as_dict() for config_set in session.scalars(stmt)}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_values(self, code: str, values: Mapping[str, str]) -> dict[str, str]:
        """Upsert ``values`` into set ``code``, creating the set if needed."""

        with session_scope(self._session_factory) as session:
            config_set = self._find(session, code)
            if config_set is None:
                config_set = ConfigSet(code=code)
                session.add(config_set)
                session.flush()
                logger.info("Created config set %s", code)

            existing = {row.key: row for row in config_set.values}
            for key, value in values.items():
                row = existing.get(key)
                if row is None:
                    config_set.values.append(ConfigValue(key=key, value=str(value)))
                else:
                    row.value = str(value)
            session.flush()
            logger.info("Updated config set %s keys: %s", code, ", ".join(sorted(values)))
            return config_set.as_dict()

    def delete_value(self, code: str, key: str) -> None:
        with session_scope(self._session_factory) as session:
            config_set = self._find(session, code)
            if config_set is None:
                raise ConfigNotFoundError(code)
            session.execute(
                delete(ConfigValue).where(
                    ConfigValue.config_id == config_set.id,
                    ConfigValue.key == key,
                )
            )
            logger.info("Deleted key %s from config set %s", key, code)

    def delete_config(self, code: str) -> None:
        with session_scope(self._session_factory) as session:
            config_set = self._find(session, code)
            if config_set is None:
                raise ConfigNotFoundError(code)
            session.delete(config_set)
            logger.info("Deleted config set %s", code)


__all__ = ["ConfigStore", "SqlConfigStore"]
