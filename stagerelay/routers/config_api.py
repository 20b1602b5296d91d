"""CRUD routes for source configuration sets.

Changes take effect on the next reconciliation tick. A source that is
already running keeps its current configuration until its set becomes
invalid or is deleted.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..config.store import ConfigStore
from ..errors import ConfigNotFoundError

router = APIRouter(prefix="/api/config", tags=["config"])

logger = logging.getLogger(__name__)


class ConfigValueIn(BaseModel):
    key: str = Field(min_length=1)
    value: str


class ConfigSetIn(BaseModel):
    configCode: str = Field(min_length=1)
    values: list[ConfigValueIn] = Field(default_factory=list)


class ConfigSetOut(BaseModel):
    configCode: str
    values: dict[str, str]


def _store(request: Request) -> ConfigStore:
    return request.app.state.runtime.store


@router.get("", response_model=list[ConfigSetOut])
def list_configs(request: Request) -> list[ConfigSetOut]:
    """Return every stored configuration set."""
    return [
        ConfigSetOut(configCode=code, values=values)
        for code, values in _store(request).list_configs().items()
    ]


@router.get("/{code}", response_model=ConfigSetOut)
def get_config(code: str, request: Request) -> ConfigSetOut:
    values = _store(request).get_config(code)
    if values is None:
        raise HTTPException(status_code=404, detail=f"Config with code {code} not found")
    return ConfigSetOut(configCode=code, values=values)


@router.post("", response_model=ConfigSetOut, status_code=status.HTTP_201_CREATED)
def save_config(payload: ConfigSetIn, request: Request) -> ConfigSetOut:
    """Create the set if needed and upsert each provided key."""
    values = {item.key: item.value for item in payload.values}
    saved = _store(request).set_values(payload.configCode, values)
    logger.info("Saved config %s", payload.configCode)
    return ConfigSetOut(configCode=payload.configCode, values=saved)


@router.delete("/{code}/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_config_value(code: str, key: str, request: Request) -> None:
    try:
        _store(request).delete_value(code, key)
    except ConfigNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
def delete_config(code: str, request: Request) -> None:
    try:
        _store(request).delete_config(code)
    except ConfigNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


__all__ = ["router"]
