"""Connector abstractions for live presentation sources."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ..errors import InvalidStateTransition


class ConnectionState(str, Enum):
    """Lifecycle of one connector."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset(
        {ConnectionState.CONNECTING, ConnectionState.RECONNECTING, ConnectionState.STOPPED}
    ),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.STOPPED}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.RECONNECTING, ConnectionState.STOPPED}
    ),
    ConnectionState.RECONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.STOPPED}
    ),
    ConnectionState.STOPPED: frozenset(),
}


def check_transition(current: ConnectionState, target: ConnectionState) -> None:
    """Raise :class:`InvalidStateTransition` unless ``current -> target`` is legal."""

    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(current, target)


@dataclass(slots=True)
class FailureCounters:
    """Transient health counters, reset on every successful (re)connect."""

    network: int = 0
    dom: int = 0

    def reset(self) -> None:
        self.network = 0
        self.dom = 0


class Connector(Protocol):
    """Capabilities the orchestrator relies on for every source."""

    async def start(self) -> None: ...

    async def destroy(self) -> None: ...

    def current_state(self) -> ConnectionState: ...


__all__ = [
    "ALLOWED_TRANSITIONS",
    "ConnectionState",
    "Connector",
    "FailureCounters",
    "check_transition",
]
