"""Song-slide adapter for the presentation-control API.

Three streams feed one view: the focused presentation (cached as a flat slide
list), the slide index within it, and whether audience screens are showing.
A slide index is only resolved against the cache when it refers to the cached
presentation, so an index that arrives before its presentation never shows a
slide from the previous song. The last index is kept and resolved again once
its presentation has loaded.
"""

from __future__ import annotations

import logging
from typing import Any

from ..broadcast import MUSIC_SLIDE_EVENT, BroadcastChannel
from ..config.models import SourceType
from ..connectors.stream import StreamConnector
from ..content import Presentation, Slide, SlideIndex
from .base import PresentationAdapter

logger = logging.getLogger(__name__)


class SlidePresentation(PresentationAdapter):
    source_type = SourceType.PRO_PRESENTER
    event = MUSIC_SLIDE_EVENT

    def __init__(self, connector: StreamConnector, channel: BroadcastChannel) -> None:
        super().__init__(connector, channel)
        self.connector: StreamConnector = connector
        self.presentation_uuid: str | None = None
        self.slides: list[Slide] = []
        self.slide_index: SlideIndex | None = None
        self.current_slide: Slide | None = None
        self.display_enabled = False

    async def execute(self) -> None:
        logger.info("Starting song slide monitoring")
        self.connector.on_presentation_focused_changed(self.set_presentation)
        self.connector.on_slide_index_changed(self.set_slide_index)
        self.connector.on_audience_visibility_changed(self.set_display_enabled)
        await self.connector.start()

    def set_presentation(self, presentation: Presentation | None) -> None:
        if presentation is None:
            self.presentation_uuid = None
            self.slides = []
        else:
            self.presentation_uuid = presentation.uuid
            self.slides = presentation.flatten_slides()
            logger.info(
                "Focused presentation changed to %s (%d slides)",
                presentation.presentation.id.name or presentation.uuid,
                len(self.slides),
            )
        slide = self._resolve(self.slide_index)
        if slide is not None or self.current_slide is not None:
            self.current_slide = slide
            self.emit()

    def set_slide_index(self, position: SlideIndex | None) -> None:
        self.slide_index = position
        self.current_slide = self._resolve(position)
        self.emit()

    def _resolve(self, position: SlideIndex | None) -> Slide | None:
        if position is None or self.presentation_uuid is None:
            return None
        if position.presentation_uuid != self.presentation_uuid:
            logger.debug(
                "Ignoring slide index for %s; cached presentation is %s",
                position.presentation_uuid,
                self.presentation_uuid,
            )
            return None
        if not 0 <= position.index < len(self.slides):
            logger.debug("Slide index %d out of range", position.index)
            return None
        return self.slides[position.index]

    def set_display_enabled(self, display_enabled: bool) -> None:
        self.display_enabled = display_enabled
        self.emit()

    def payload(self) -> dict[str, Any]:
        slide = self.current_slide
        return {
            "currentSlide": slide.model_dump() if slide is not None else None,
            "displayEnabled": self.display_enabled,
        }

    async def destroy(self) -> None:
        logger.info("Destroying song slide presentation")
        await super().destroy()


__all__ = ["SlidePresentation"]
