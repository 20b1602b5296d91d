"""Per-source health aggregation flushed to display dashboards.

Each subject (a source type) keeps an item map, where ``active`` is always
present, and a rolling log buffer. A periodic flush broadcasts the whole
snapshot on ``notification.status`` and empties the log buffers; item values
persist until they are explicitly changed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .broadcast import STATUS_EVENT, BroadcastChannel

logger = logging.getLogger(__name__)

StatusValue = str | int | float | bool | None
LogInput = str | Mapping[str, Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class StatusLog:
    timestamp: datetime
    message: str
    context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
        }
        if self.context:
            data["context"] = self.context
        return data


@dataclass(slots=True)
class SubjectStatus:
    items: dict[str, StatusValue]
    logs: deque[StatusLog] = field(default_factory=deque)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": dict(self.items),
            "logs": [entry.to_dict() for entry in self.logs],
        }


class StatusNotifier:
    """Collect connector health and broadcast it on a timer.

    The notifier is created once by the runtime and passed to every connector
    that reports on it; there is no global instance.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        subjects: Iterable[str] = (),
        *,
        interval: float = 2.0,
        max_logs: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._channel = channel
        self._interval = interval
        self._max_logs = max_logs
        self._clock = clock
        self._statuses: dict[str, SubjectStatus] = {}
        self._task: asyncio.Task[None] | None = None
        for subject in subjects:
            self._ensure(subject)

    def _ensure(self, subject: str) -> SubjectStatus:
        status = self._statuses.get(subject)
        if status is None:
            status = SubjectStatus(items={"active": False}, logs=deque(maxlen=self._max_logs))
            self._statuses[subject] = status
        return status

    def set_status(
        self,
        subject: str,
        items: Mapping[str, StatusValue] | None = None,
        logs: Iterable[LogInput] | None = None,
    ) -> None:
        """Merge ``items`` into ``subject`` and append ``logs``.

        Log entries may be plain strings or mappings with ``message`` and an
        optional ``context``; each is stamped with the current time.
        """

        status = self._ensure(subject)
        if items:
            status.items.update(items)
        for entry in logs or ():
            status.logs.append(self._to_log(entry))

    def _to_log(self, entry: LogInput) -> StatusLog:
        if isinstance(entry, str):
            return StatusLog(timestamp=self._clock(), message=entry)
        context = entry.get("context")
        return StatusLog(
            timestamp=self._clock(),
            message=str(entry.get("message", "")),
            context=dict(context) if context else None,
        )

    def get_status(self, subject: str) -> dict[str, Any]:
        return self._ensure(subject).to_dict()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {subject: status.to_dict() for subject, status in self._statuses.items()}

    def flush(self) -> dict[str, dict[str, Any]]:
        """Broadcast the current snapshot, then clear every log buffer."""

        snapshot = self.snapshot()
        logger.debug("Broadcasting status snapshot for %s", ", ".join(snapshot))
        self._channel.emit(STATUS_EVENT, snapshot)
        for status in self._statuses.values():
            status.logs.clear()
        return snapshot

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="status-notifier")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.flush()
            except Exception:
                logger.exception("Status broadcast failed")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["StatusLog", "StatusNotifier"]
