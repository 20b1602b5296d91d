"""Scripture adapter: forwards the verse on the lyrics display."""

from __future__ import annotations

import logging
from typing import Any

from ..broadcast import BIBLE_SLIDE_EVENT, BroadcastChannel
from ..config.models import SourceType
from ..connectors.scraper import SceneScraperConnector
from ..content import Verse
from .base import PresentationAdapter

logger = logging.getLogger(__name__)


class VersePresentation(PresentationAdapter):
    source_type = SourceType.HOLYRICS
    event = BIBLE_SLIDE_EVENT

    def __init__(self, connector: SceneScraperConnector, channel: BroadcastChannel) -> None:
        super().__init__(connector, channel)
        self.connector: SceneScraperConnector = connector
        self.verse: Verse | None = None

    async def execute(self) -> None:
        logger.info("Starting scripture output monitoring")
        await self.connector.monitor(self.set_verse)

    def set_verse(self, verse: Verse | None) -> None:
        self.verse = verse
        self.emit()

    def payload(self) -> dict[str, Any] | None:
        return self.verse.to_dict() if self.verse is not None else None

    def emit(self) -> None:
        super().emit()
        logger.debug("Emitted %s event: %s", self.event, self.verse)

    async def destroy(self) -> None:
        logger.info("Destroying scripture presentation")
        await super().destroy()


__all__ = ["VersePresentation"]
