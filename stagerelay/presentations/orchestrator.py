"""Reconcile active presentations with the stored configuration.

Every tick reads each source's configuration set and validates it:

- invalid or absent and active: destroy, then unregister;
- valid and not active: build connector and adapter, register, execute;
- valid and already active: nothing. A running source keeps the
  configuration it was built with until it is removed.

The orchestrator is the only component that adds or removes registry
entries. Overlapping ticks are refused rather than queued.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from typing import Any

from ..broadcast import BroadcastChannel
from ..config.models import SourceConfig, SourceType, validate_config
from ..config.store import ConfigStore
from ..status import StatusNotifier
from .base import PresentationAdapter

logger = logging.getLogger(__name__)

PresentationFactory = Callable[[SourceConfig, StatusNotifier, BroadcastChannel], PresentationAdapter]


class Orchestrator:
    def __init__(
        self,
        store: ConfigStore,
        notifier: StatusNotifier,
        channel: BroadcastChannel,
        factories: Mapping[SourceType, PresentationFactory],
        *,
        interval: float = 3.0,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.channel = channel
        self.factories = dict(factories)
        self.interval = interval
        self.active: dict[SourceType, PresentationAdapter] = {}
        self._reconciling = False
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def is_presentation_active(self, source_type: SourceType) -> bool:
        return source_type in self.active

    def get_presentation(self, source_type: SourceType) -> PresentationAdapter | None:
        return self.active.get(source_type)

    async def add_presentation(self, presentation: PresentationAdapter) -> None:
        source_type = presentation.source_type
        self.active[source_type] = presentation
        logger.info("Added presentation %s", source_type.value)
        try:
            await presentation.execute()
        except Exception:
            logger.exception("Failed to start presentation %s", source_type.value)
            await self.remove_presentation(source_type)

    async def remove_presentation(self, source_type: SourceType) -> None:
        presentation = self.active.get(source_type)
        if presentation is None:
            return
        logger.info("Removing presentation %s", source_type.value)
        try:
            await presentation.destroy()
        finally:
            self.active.pop(source_type, None)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self) -> None:
        """Run one reconciliation pass over every known source type."""

        if self._reconciling:
            logger.debug("Reconciliation already running; skipping tick")
            return
        self._reconciling = True
        try:
            for source_type in self.factories:
                try:
                    await self._reconcile_source(source_type)
                except Exception:
                    logger.exception("Reconciliation failed for %s", source_type.value)
        finally:
            self._reconciling = False

    async def _reconcile_source(self, source_type: SourceType) -> None:
        raw = await asyncio.to_thread(self.store.get_config, source_type.value)
        config = validate_config(source_type, raw, self.notifier)

        if config is None:
            await self.remove_presentation(source_type)
            return
        if self.is_presentation_active(source_type):
            return

        presentation = self.factories[source_type](config, self.notifier, self.channel)
        await self.add_presentation(presentation)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="orchestrator")

    async def _run(self) -> None:
        logger.debug("Starting orchestration every %ss", self.interval)
        while True:
            await self.reconcile()
            await asyncio.sleep(self.interval)

    async def shutdown(self) -> None:
        """Stop the reconciliation loop and destroy every active presentation."""

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        for source_type in list(self.active):
            try:
                await self.remove_presentation(source_type)
            except Exception:
                logger.exception("Failed to destroy presentation %s", source_type.value)
        logger.info("Orchestrator stopped")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def emit(self) -> None:
        """Re-broadcast the current state of every active presentation."""

        for presentation in list(self.active.values()):
            presentation.emit()

    def describe(self) -> dict[str, Any]:
        return {
            source_type.value: {
                "event": presentation.event,
                "state": presentation.connector.current_state().value,
            }
            for source_type, presentation in self.active.items()
        }


__all__ = ["Orchestrator", "PresentationFactory"]
