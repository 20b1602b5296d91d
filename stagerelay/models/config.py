"""Configuration set tables.

A configuration set is identified by its ``code`` (one per source type, e.g.
``holyrics``) and owns flat string key/value pairs. Values stay strings in
storage; typing happens in :mod:`stagerelay.config.models`.
"""

from __future__ import annotations

import uuid
from typing import List

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class ConfigSet(Base):
    """Named group of configuration values.

    Attributes:
        id: Random UUID rendered as text so SQLite and Postgres agree.
        code: Unique set name, matching a :class:`~stagerelay.config.models.SourceType` value.
        values: Key/value rows owned by this set.
    """

    __tablename__ = "config"

    id: Mapped[str] = mapped_column(String(length=36), primary_key=True, default=_new_id)
    code: Mapped[str] = mapped_column(String(length=64), nullable=False, unique=True)

    values: Mapped[List["ConfigValue"]] = relationship(
        back_populates="config_set",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def as_dict(self) -> dict[str, str]:
        return {row.key: row.value for row in self.values}


class ConfigValue(Base):
    """Single ``key -> value`` entry of a :class:`ConfigSet`."""

    __tablename__ = "config_values"

    config_id: Mapped[str] = mapped_column(
        String(length=36),
        ForeignKey("config.id", ondelete="CASCADE"),
        primary_key=True,
    )
    key: Mapped[str] = mapped_column(String(length=128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    config_set: Mapped[ConfigSet] = relationship(back_populates="values")
