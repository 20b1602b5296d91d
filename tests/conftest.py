import pathlib
import sys
from typing import Any

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from stagerelay.config import HolyricsConfig, ProPresenterConfig
from stagerelay.status import StatusNotifier

HOLYRICS_URL = "http://display.local:8092/view/text"


class RecordingChannel:
    """Broadcast channel that keeps every emitted event in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def emit(self, event: str, payload: Any) -> None:
        self.events.append((event, payload))

    def payloads(self, event: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event]


class FakeRequest:
    def __init__(self, url: str, failure: str | None) -> None:
        self.url = url
        self.failure = failure


class FakeResponse:
    def __init__(self, url: str, status: int = 200) -> None:
        self.url = url
        self.status = status


class FakeBrowserSession:
    """Stand-in for :class:`BrowserSession` driven entirely by the test."""

    def __init__(
        self,
        *,
        dom_results: list[Any] | None = None,
        launch_error: Exception | None = None,
        navigate_error: Exception | None = None,
    ) -> None:
        self.dom_results = list(dom_results or [])
        self.launch_error = launch_error
        self.navigate_error = navigate_error
        self.handlers: dict[str, list[Any]] = {}
        self.launched = False
        self.closed = False
        self.page_open = False
        self.connected = False
        self.navigations: list[tuple[str, float | None]] = []
        self.evaluations: list[Any] = []

    async def launch(self) -> None:
        if self.launch_error is not None:
            raise self.launch_error
        self.launched = True
        self.page_open = True
        self.connected = True

    async def close(self) -> None:
        self.closed = True
        self.page_open = False
        self.connected = False

    async def navigate(self, url: str, timeout_ms: float | None = None) -> None:
        self.navigations.append((url, timeout_ms))
        if self.navigate_error is not None:
            raise self.navigate_error

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluations.append(arg)
        if not self.dom_results:
            return None
        result = self.dom_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Any) -> None:
        listeners = self.handlers.get(event, [])
        if handler in listeners:
            listeners.remove(handler)

    def fire(self, event: str, payload: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    def is_page_open(self) -> bool:
        return self.page_open

    def is_connected(self) -> bool:
        return self.connected

    def open_pages_count(self) -> int:
        return 1 if self.page_open else 0


def verse_dom(reference: str, text: str = "For God so loved the world", version: str = "NVI"):
    return {"reference": reference, "text": text, "version": version}


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture()
def notifier(channel: RecordingChannel) -> StatusNotifier:
    return StatusNotifier(channel, ["holyrics", "pro-presenter"], interval=3600)


@pytest.fixture()
def holyrics_values() -> dict[str, str]:
    return {
        "URL": HOLYRICS_URL,
        "TIMEOUT": "5",
        "RETRY_TIME": "0",
        "MAX_NETWORK_FAILURES": "3",
        "POLLING_INTERVAL_MS": "60000",
        "REFERENCE_SELECTOR": ".bible-header-custom",
        "TEXT_SELECTOR": ".bible_slide > ctt",
        "VERSION_SELECTOR": ".bible_slide > span",
    }


@pytest.fixture()
def holyrics_config(holyrics_values: dict[str, str]) -> HolyricsConfig:
    return HolyricsConfig.model_validate(holyrics_values)


@pytest.fixture()
def pro_presenter_config() -> ProPresenterConfig:
    return ProPresenterConfig.model_validate({"HOST": "presenter.local", "PORT": "8999", "RETRY_DELAY": "0"})
