"""Construct and wire the long-lived services of one relay process.

Nothing here is a module-level singleton: :func:`build_runtime` creates the
broadcaster, status notifier, config store and orchestrator and passes each
to the components that need it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .broadcast import Broadcaster, BroadcastChannel
from .config.models import HolyricsConfig, ProPresenterConfig, SourceConfig, SourceType
from .config.store import ConfigStore, SqlConfigStore
from .connectors.browser import BrowserSession
from .connectors.scraper import SceneScraperConnector
from .connectors.stream import StreamConnector
from .models.session import get_sessionmaker
from .presentations import Orchestrator, PresentationFactory, SlidePresentation, VersePresentation
from .presentations.base import PresentationAdapter
from .settings import Settings, load_settings
from .status import StatusNotifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    settings: Settings
    broadcaster: Broadcaster
    notifier: StatusNotifier
    store: ConfigStore
    orchestrator: Orchestrator

    def start(self) -> None:
        self.notifier.start()
        self.orchestrator.start()
        logger.info("Relay runtime started")

    async def stop(self) -> None:
        await self.orchestrator.shutdown()
        await self.notifier.stop()
        logger.info("Relay runtime stopped")


def default_factories(settings: Settings) -> dict[SourceType, PresentationFactory]:
    """Connector and adapter builders for every supported source type."""

    def build_holyrics(
        config: SourceConfig, notifier: StatusNotifier, channel: BroadcastChannel
    ) -> PresentationAdapter:
        if not isinstance(config, HolyricsConfig):
            raise TypeError(f"expected HolyricsConfig, got {type(config).__name__}")

        def browser_factory() -> BrowserSession:
            return BrowserSession(
                headless=settings.browser_headless,
                executable_path=settings.browser_executable_path,
                default_timeout_ms=config.timeout_ms,
            )

        connector = SceneScraperConnector(config, notifier, browser_factory=browser_factory)
        return VersePresentation(connector, channel)

    def build_pro_presenter(
        config: SourceConfig, notifier: StatusNotifier, channel: BroadcastChannel
    ) -> PresentationAdapter:
        if not isinstance(config, ProPresenterConfig):
            raise TypeError(f"expected ProPresenterConfig, got {type(config).__name__}")
        return SlidePresentation(StreamConnector(config, notifier), channel)

    return {
        SourceType.HOLYRICS: build_holyrics,
        SourceType.PRO_PRESENTER: build_pro_presenter,
    }


def build_runtime(
    settings: Settings | None = None,
    *,
    store: ConfigStore | None = None,
    factories: Mapping[SourceType, PresentationFactory] | None = None,
) -> Runtime:
    settings = settings or load_settings()
    broadcaster = Broadcaster(queue_size=settings.broadcast_queue_size)
    notifier = StatusNotifier(
        broadcaster,
        [source_type.value for source_type in SourceType],
        interval=settings.status_broadcast_interval,
        max_logs=settings.status_max_logs,
    )
    if store is None:
        sql_store = SqlConfigStore(get_sessionmaker(settings.database_url))
        sql_store.create_schema()
        store = sql_store
    orchestrator = Orchestrator(
        store,
        notifier,
        broadcaster,
        factories if factories is not None else default_factories(settings),
        interval=settings.orchestrator_interval,
    )
    return Runtime(
        settings=settings,
        broadcaster=broadcaster,
        notifier=notifier,
        store=store,
        orchestrator=orchestrator,
    )


__all__ = ["Runtime", "build_runtime", "default_factories"]
