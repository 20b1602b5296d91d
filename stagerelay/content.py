"""Content payloads produced by the connectors.

``Verse`` is a tiny immutable value built on every scraper poll. The
presentation models mirror the JSON returned by the presentation-control API;
unknown fields are ignored so newer API versions keep parsing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def normalize_whitespace(value: Any) -> str:
    """Trim ``value`` and collapse whitespace runs to single spaces."""

    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


@dataclass(frozen=True, slots=True)
class Verse:
    """One scripture passage currently shown on the lyrics display."""

    reference: str
    text: str
    version: str

    @classmethod
    def from_dom(cls, raw: Any) -> Verse | None:
        """Build a verse from a DOM read, or ``None`` when nothing is shown.

        ``raw`` is the mapping returned by the in-page script. Any missing or
        blank field means the display is not showing a verse.
        """

        if not isinstance(raw, dict):
            return None
        reference = normalize_whitespace(raw.get("reference"))
        text = normalize_whitespace(raw.get("text"))
        version = normalize_whitespace(raw.get("version"))
        if not (reference and text and version):
            return None
        return cls(reference=reference, text=text, version=version)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Color(_ApiModel):
    red: float = 0
    green: float = 0
    blue: float = 0
    alpha: float = 1


class Size(_ApiModel):
    width: float
    height: float


class Slide(_ApiModel):
    """One slide of a presentation group."""

    text: str = ""
    label: str = ""
    notes: str = ""
    enabled: bool = True
    color: Color | None = None
    size: Size | None = None
    group: str | None = None


class Group(_ApiModel):
    name: str = ""
    color: Color | None = None
    slides: list[Slide] = Field(default_factory=list)


class PresentationId(_ApiModel):
    uuid: str
    name: str = ""
    index: int = 0


class PresentationDetail(_ApiModel):
    id: PresentationId
    groups: list[Group] = Field(default_factory=list)
    destination: str | None = None
    has_timeline: bool = False
    presentation_path: str | None = None


class Presentation(_ApiModel):
    """Envelope returned by ``GET /v1/presentation/{uuid}``."""

    presentation: PresentationDetail

    @property
    def uuid(self) -> str:
        return self.presentation.id.uuid

    def flatten_slides(self) -> list[Slide]:
        """Return every slide in group order, tagged with its group name."""

        return [
            slide.model_copy(update={"group": group.name})
            for group in self.presentation.groups
            for slide in group.slides
        ]


@dataclass(frozen=True, slots=True)
class SlideIndex:
    """Slide position reported by the slide-index stream."""

    index: int
    presentation_uuid: str


__all__ = [
    "Color",
    "Group",
    "Presentation",
    "PresentationDetail",
    "PresentationId",
    "Size",
    "Slide",
    "SlideIndex",
    "Verse",
    "normalize_whitespace",
]
