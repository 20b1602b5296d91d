"""Presentation adapters and the orchestrator that manages them."""

from __future__ import annotations

from .base import PresentationAdapter
from .bible import VersePresentation
from .music import SlidePresentation
from .orchestrator import Orchestrator, PresentationFactory

__all__ = [
    "Orchestrator",
    "PresentationAdapter",
    "PresentationFactory",
    "SlidePresentation",
    "VersePresentation",
]
