"""Exception hierarchy shared by connectors, the config layer and routes."""

from __future__ import annotations


class StageRelayError(Exception):
    """Base class for errors raised by this package."""


class BrowserSessionError(StageRelayError):
    """Raised when a browser operation needs a page that is not open."""


class NavigationError(BrowserSessionError):
    """Raised when the page does not reach ``domcontentloaded`` in time."""

    def __init__(self, url: str, reason: str | None = None) -> None:
        self.url = url
        self.reason = reason
        message = f"Failed to navigate to {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidStateTransition(StageRelayError):
    """Raised when a connector is asked to move between incompatible states."""

    def __init__(self, current: object, target: object) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal connection state transition {current} -> {target}")


class ConfigNotFoundError(StageRelayError):
    """Raised by the config store when a configuration set does not exist."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Config with code {code} not found")


__all__ = [
    "BrowserSessionError",
    "ConfigNotFoundError",
    "InvalidStateTransition",
    "NavigationError",
    "StageRelayError",
]
