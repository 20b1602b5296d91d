"""Source configuration: schemas, validation and the backing store."""

from __future__ import annotations

from .models import (
    HolyricsConfig,
    ProPresenterConfig,
    SourceConfig,
    SourceType,
    required_keys,
    validate_config,
)
from .store import ConfigStore, SqlConfigStore

__all__ = [
    "ConfigStore",
    "HolyricsConfig",
    "ProPresenterConfig",
    "SourceConfig",
    "SourceType",
    "SqlConfigStore",
    "required_keys",
    "validate_config",
]
