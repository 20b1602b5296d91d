"""SQLAlchemy declarative base and configuration-store models.

The relay persists only its live-editable configuration; broadcast content
is never stored. Models live in dedicated modules within this package and
share the single declarative ``Base`` defined here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export so callers can write ``from stagerelay.models import ConfigSet``.
from .config import ConfigSet, ConfigValue


__all__ = [
    "Base",
    "ConfigSet",
    "ConfigValue",
]
