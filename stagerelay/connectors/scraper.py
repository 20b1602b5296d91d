"""Scraper connector for the browser-rendered lyrics display.

The connector keeps one headless page open on the configured display URL and
polls three selectors (reference, text, version) on a fixed interval. A new
verse is emitted only when its reference changes, and ``None`` is emitted
once when a previously shown verse disappears.

Two independent failure counters decide when the page is beyond in-place
recovery and a full reconnect (fresh browser, fresh page) is needed:

- ``network``: failed requests to the display URL (connection refused or
  cancelled), counted while connected;
- ``dom``: consecutive exceptions from the in-page read.

All timers are asyncio tasks owned by the connector; :meth:`destroy` cancels
them and closes the browser, and may be called any number of times.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..config.models import HolyricsConfig, SourceType
from ..content import Verse
from ..status import StatusNotifier
from . import ConnectionState, FailureCounters, check_transition
from .browser import BrowserSession

READ_VERSE_SCRIPT = """
(selectors) => {
  const read = (selector) => {
    const node = document.querySelector(selector);
    return node ? node.textContent : null;
  };
  return {
    reference: read(selectors.reference),
    text: read(selectors.text),
    version: read(selectors.version),
  };
}
"""

# Substrings of Chromium failure texts that indicate the display went away.
CONNECTION_ERROR_MARKERS = ("ERR_CONNECTION_REFUSED", "canceled", "cancelled")

VerseCallback = Callable[[Verse | None], Any]
BrowserFactory = Callable[[], BrowserSession]


def _first_line(exc: BaseException) -> str:
    text = str(exc)
    return text.splitlines()[0] if text else type(exc).__name__


class SceneScraperConnector:
    """Connection state machine and DOM polling loop for the lyrics display."""

    subject = SourceType.HOLYRICS.value

    def __init__(
        self,
        config: HolyricsConfig,
        notifier: StatusNotifier,
        *,
        browser_factory: BrowserFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.notifier = notifier
        self.logger = logger or logging.getLogger(__name__)
        self._browser_factory = browser_factory or self._default_browser
        self.counters = FailureCounters()

        self._state = ConnectionState.DISCONNECTED
        self._session: BrowserSession | None = None
        self._listeners: list[tuple[str, Callable[..., Any]]] = []
        self._callback: VerseCallback | None = None
        self._previous: Verse | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._tick_in_progress = False

    def _default_browser(self) -> BrowserSession:
        return BrowserSession(
            default_timeout_ms=self.config.timeout_ms,
            logger=self.logger.getChild("browser"),
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def current_state(self) -> ConnectionState:
        return self._state

    @property
    def previous_verse(self) -> Verse | None:
        return self._previous

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def is_connected(self) -> bool:
        return (
            self._state is ConnectionState.CONNECTED
            and self._session is not None
            and self._session.is_connected()
        )

    def _set_state(self, target: ConnectionState) -> None:
        if self._state is target:
            return
        check_transition(self._state, target)
        self.logger.debug("Connection state transition: %s -> %s", self._state.value, target.value)
        self._state = target

    def _publish(self, active: bool, message: str, **context: Any) -> None:
        entry: dict[str, Any] = {"message": message}
        if context:
            entry["context"] = context
        self.notifier.set_status(self.subject, {"active": active}, logs=[entry])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def monitor(self, callback: VerseCallback) -> None:
        """Register ``callback`` for verse changes and start monitoring."""

        self._callback = callback
        await self.start()

    async def start(self) -> None:
        """Begin connecting in the background and start the poll loop."""

        if self._state is ConnectionState.STOPPED:
            self.logger.warning("Cannot start a stopped connector")
            return
        if self._poll_task is not None:
            return

        self.logger.info("Starting lyrics display monitoring for %s", self.config.url)
        self._trigger_reconnect("initial connection", initial=True)
        self._poll_task = asyncio.create_task(self._poll_loop(), name="holyrics-poll")

    async def destroy(self) -> None:
        """Stop timers, close the browser and move to ``STOPPED``."""

        if self._state is ConnectionState.STOPPED:
            return

        self.logger.info("Cleaning up lyrics display resources")
        self._set_state(ConnectionState.STOPPED)

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._poll_task, self._reconnect_task)
            if task is not None and task is not current
        ]
        self._poll_task = None
        self._reconnect_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self._teardown_session()
        self.counters.reset()
        self._previous = None
        self._publish(False, "Holyrics monitoring stopped and resources cleaned up.")
        self.logger.info("Lyrics display resources cleaned up")

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _trigger_reconnect(self, reason: str, *, initial: bool = False) -> None:
        if self._state is ConnectionState.STOPPED:
            return
        if self.reconnecting:
            self.logger.debug("Reconnection already in progress; ignoring trigger (%s)", reason)
            return

        if initial:
            self.logger.debug("Connecting: %s", reason)
        else:
            self.logger.warning("Triggering reconnection: %s", reason)
        if self._state is ConnectionState.CONNECTED:
            self._set_state(ConnectionState.RECONNECTING)
        self._clear_verse()
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(initial=initial), name="holyrics-reconnect"
        )

    async def _reconnect_loop(self, *, initial: bool) -> None:
        await self._teardown_session()
        attempt = 0
        while self._state is not ConnectionState.STOPPED:
            attempt += 1
            if self._state is ConnectionState.DISCONNECTED:
                first = initial and attempt == 1
                self._set_state(ConnectionState.CONNECTING if first else ConnectionState.RECONNECTING)
            if await self._connect(attempt):
                return
            self.logger.info("Retrying lyrics display connection in %ss", self.config.retry_time)
            await asyncio.sleep(self.config.retry_time)

    async def _connect(self, attempt: int) -> bool:
        url = self.config.url
        session = self._browser_factory()
        self._session = session
        self.logger.info("Attempting to connect to lyrics display (attempt %d)", attempt)
        try:
            await session.launch()
            self._attach_listeners(session)
            await session.navigate(url, self.config.timeout_ms)
        except Exception as exc:
            error_message = _first_line(exc)
            self.logger.error("Failed to connect to lyrics display at %s: %s", url, error_message)
            await self._teardown_session()
            self._set_state(ConnectionState.DISCONNECTED)
            self._publish(
                False,
                "Failed to connect to Holyrics",
                url=url,
                errorMessage=error_message,
                attempt=attempt,
            )
            return False

        self.counters.reset()
        self._set_state(ConnectionState.CONNECTED)
        self.logger.info("Successfully loaded lyrics display page %s", url)
        self._publish(
            True,
            "Successfully loaded Holyrics page",
            url=url,
            openPages=session.open_pages_count(),
        )
        return True

    def _attach_listeners(self, session: BrowserSession) -> None:
        for event, handler in (
            ("requestfailed", self._on_request_failed),
            ("response", self._on_response),
        ):
            session.on(event, handler)
            self._listeners.append((event, handler))

    async def _teardown_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        for event, handler in self._listeners:
            session.remove_listener(event, handler)
        self._listeners.clear()
        await session.close()

    # ------------------------------------------------------------------
    # Page observers
    # ------------------------------------------------------------------

    def _on_request_failed(self, request: Any) -> None:
        if self._state is not ConnectionState.CONNECTED:
            return
        failure = request.failure or ""
        if not any(marker in failure for marker in CONNECTION_ERROR_MARKERS):
            return
        if self.config.url not in request.url:
            return
        if self._session is None or not self._session.is_page_open():
            return

        self.counters.network += 1
        self.logger.warning(
            "Network request failed: %s - %s (%d/%d)",
            request.url,
            failure,
            self.counters.network,
            self.config.max_network_failures,
        )
        self._publish(
            False,
            "Holyrics connection issue detected. Attempting to recover...",
            url=self.config.url,
            failureCount=self.counters.network,
        )

        if self.counters.network >= self.config.max_network_failures:
            self.logger.error(
                "Max network failures (%d) reached", self.config.max_network_failures
            )
            self.counters.network = 0
            self._trigger_reconnect("max network failures reached")

    def _on_response(self, response: Any) -> None:
        if self.counters.network == 0 or response.status != 200:
            return
        if self.config.url not in response.url:
            return
        self.counters.network = 0
        self.logger.info("Lyrics display connection restored")
        self._publish(True, "Connection restored")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.polling_interval)
            try:
                await self.poll_once()
            except Exception:
                self.logger.exception("Unexpected error while polling the lyrics display")

    async def poll_once(self) -> None:
        """Run one poll tick; a tick still in flight makes this a no-op."""

        if self._tick_in_progress:
            return
        self._tick_in_progress = True
        try:
            await self._tick()
        finally:
            self._tick_in_progress = False

    async def _tick(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            self._clear_verse()
            return

        session = self._session
        if session is None or not session.is_connected() or not session.is_page_open():
            self.logger.warning("Browser or page closed unexpectedly")
            self._trigger_reconnect("browser or page is no longer open")
            return

        selectors = {
            "reference": self.config.reference_selector,
            "text": self.config.text_selector,
            "version": self.config.version_selector,
        }
        try:
            raw = await session.evaluate(READ_VERSE_SCRIPT, selectors)
        except Exception as exc:
            self._on_dom_failure(exc)
            return

        if self._state is not ConnectionState.CONNECTED:
            self._clear_verse()
            return

        self.counters.dom = 0
        self._apply(Verse.from_dom(raw))

    def _on_dom_failure(self, exc: Exception) -> None:
        self.counters.dom += 1
        error_message = _first_line(exc)
        self.logger.error(
            "Failed to read DOM during polling: %s (%d/%d)",
            error_message,
            self.counters.dom,
            self.config.max_dom_read_failures,
        )
        self._publish(
            False,
            "Failed to read DOM during polling. Attempting recovery.",
            errorMessage=error_message,
            currentDomReadFailures=self.counters.dom,
        )
        if self.counters.dom >= self.config.max_dom_read_failures:
            self._trigger_reconnect("max DOM read failures reached")

    def _apply(self, current: Verse | None) -> None:
        previous = self._previous
        if current is None:
            if previous is not None:
                self.logger.info("Verse disappeared from display")
                self._previous = None
                self._emit(None)
            return
        if previous is not None and previous.reference == current.reference:
            return
        self._previous = current
        self.logger.debug("New verse detected: %s", current.reference)
        self._emit(current)

    def _clear_verse(self) -> None:
        if self._previous is None:
            return
        self._previous = None
        self.logger.info("Cleared previous verse; display is not connected")
        self._emit(None)

    def _emit(self, verse: Verse | None) -> None:
        if self._callback is None:
            return
        try:
            self._callback(verse)
        except Exception:
            self.logger.exception("Verse callback failed")


__all__ = ["CONNECTION_ERROR_MARKERS", "READ_VERSE_SCRIPT", "SceneScraperConnector"]
