"""Pydantic models and validation for source configuration sets.

Configuration sets are stored as flat ``key -> string`` maps (see
:mod:`stagerelay.config.store`). Each source type has a schema listing its
required keys; values are coerced from strings by pydantic's lax mode. A set
that is absent or fails validation is treated as "no config".
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..status import StatusNotifier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SourceType(str, Enum):
    """Live sources the relay knows how to connect to."""

    HOLYRICS = "holyrics"
    PRO_PRESENTER = "pro-presenter"


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class _SourceConfig(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )


class HolyricsConfig(_SourceConfig):
    """Validated settings for the scraped lyrics display."""

    url: str = Field(alias="URL", min_length=1)
    timeout: float = Field(alias="TIMEOUT", gt=0)
    retry_time: float = Field(alias="RETRY_TIME", ge=0)
    max_network_failures: int = Field(alias="MAX_NETWORK_FAILURES", ge=1)
    polling_interval_ms: int = Field(alias="POLLING_INTERVAL_MS", gt=0)
    reference_selector: str = Field(alias="REFERENCE_SELECTOR", min_length=1)
    text_selector: str = Field(alias="TEXT_SELECTOR", min_length=1)
    version_selector: str = Field(alias="VERSION_SELECTOR", min_length=1)
    max_dom_read_failures: int = Field(default=3, alias="MAX_DOM_READ_FAILURES", ge=1)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("URL must be an absolute http(s) URL")
        return value

    @property
    def timeout_ms(self) -> float:
        return self.timeout * 1000

    @property
    def polling_interval(self) -> float:
        """Polling interval in seconds."""
        return self.polling_interval_ms / 1000


class ProPresenterConfig(_SourceConfig):
    """Validated settings for the presentation-control HTTP API."""

    host: str = Field(alias="HOST", min_length=1)
    port: int = Field(alias="PORT", ge=1, le=65535)
    retry_delay: float = Field(default=3.0, alias="RETRY_DELAY", ge=0)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


SourceConfig = HolyricsConfig | ProPresenterConfig

SCHEMAS: dict[SourceType, type[_SourceConfig]] = {
    SourceType.HOLYRICS: HolyricsConfig,
    SourceType.PRO_PRESENTER: ProPresenterConfig,
}

def required_keys(source_type: SourceType) -> list[str]:
    """Return the store keys a configuration set must define."""

    schema = SCHEMAS[source_type]
    return [
        field.alias or name
        for name, field in schema.model_fields.items()
        if field.is_required()
    ]


def _invalid_keys(exc: ValidationError) -> list[str]:
    return sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})


def validate_config(
    source_type: SourceType,
    raw: Mapping[str, Any] | None,
    notifier: StatusNotifier | None = None,
) -> SourceConfig | None:
    """Validate ``raw`` against the schema for ``source_type``.

    Returns ``None`` when the set is absent or invalid. Invalid sets are
    reported on ``notifier`` (``active=False`` plus a log entry naming the
    offending keys) so dashboards can show why a source is idle.
    """

    schema = SCHEMAS[source_type]

    if not raw:
        logger.debug(
            "Config %s not found; missing keys: %s",
            source_type.value,
            ", ".join(required_keys(source_type)),
        )
        return None

    try:
        return schema.model_validate(dict(raw))
    except ValidationError as exc:
        invalid = _invalid_keys(exc)
        logger.warning("Config %s has invalid or missing fields: %s", source_type.value, ", ".join(invalid))
        if notifier is not None:
            notifier.set_status(
                source_type.value,
                {"active": False},
                logs=[
                    {
                        "message": "Config has missing or invalid fields",
                        "context": {"fields": invalid},
                    }
                ],
            )
        return None


__all__ = [
    "HolyricsConfig",
    "ProPresenterConfig",
    "SCHEMAS",
    "SourceConfig",
    "SourceType",
    "required_keys",
    "validate_config",
]
