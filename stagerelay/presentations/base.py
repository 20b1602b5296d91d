"""Base abstractions for presentation adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..broadcast import BroadcastChannel
from ..config.models import SourceType
from ..connectors import Connector


class PresentationAdapter(ABC):
    """Turn connector callbacks into broadcast events for display clients."""

    #: Source type this adapter presents; one active adapter per type.
    source_type: SourceType

    #: Broadcast event name the adapter publishes on.
    event: str

    def __init__(self, connector: Connector, channel: BroadcastChannel) -> None:
        self.connector = connector
        self.channel = channel

    @abstractmethod
    async def execute(self) -> None:
        """Register callbacks on the connector and start it."""

    @abstractmethod
    def payload(self) -> Any:
        """Current state as sent on :attr:`event`."""

    def emit(self) -> None:
        self.channel.emit(self.event, self.payload())

    async def destroy(self) -> None:
        await self.connector.destroy()


__all__ = ["PresentationAdapter"]
