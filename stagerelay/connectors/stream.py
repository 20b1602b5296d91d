"""Chunked-HTTP connector for the presentation-control API.

Each subscription holds one long-lived ``GET <route>?chunked=true`` request
open and parses every received chunk as JSON. Streams never give up: an end
of stream, a stream error or a failed setup all lead to a retry after
``RETRY_DELAY`` seconds until the subscription is destroyed.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from ..config.models import ProPresenterConfig, SourceType
from ..content import Presentation, SlideIndex
from ..status import StatusNotifier
from . import ConnectionState

logger = logging.getLogger(__name__)

FOCUSED_ROUTE = "/v1/presentation/focused"
SLIDE_INDEX_ROUTE = "/v1/presentation/slide_index"
AUDIENCE_SCREENS_ROUTE = "/v1/status/audience_screens"
PRESENTATION_ROUTE = "/v1/presentation/{uuid}"

CHUNK_SEPARATOR = "\r\n\r\n"

# Streams stay open indefinitely; only connecting is bounded.
STREAM_TIMEOUT = httpx.Timeout(10.0, read=None)

DataCallback = Callable[[Any], Any]
ClearCallback = Callable[[], Any]


def _is_connection_refused(exc: BaseException) -> bool:
    """True for refused or reset connections, however deeply wrapped."""

    if isinstance(exc, httpx.ConnectError):
        return True
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, (ConnectionRefusedError, ConnectionResetError)):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class StreamSubscription:
    """One retrying chunked stream; :meth:`destroy` stops it for good."""

    def __init__(
        self,
        connector: StreamConnector,
        route: str,
        on_data: DataCallback,
        on_clear: ClearCallback,
    ) -> None:
        self.connector = connector
        self.route = route
        self._on_data = on_data
        self._on_clear = on_clear
        self._stopped = False
        self._opened = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._opened

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        if self._stopped or self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name=f"stream:{self.route}")

    def destroy(self) -> None:
        """Stop retrying and abort the open stream, if any."""

        self._stopped = True
        self._opened = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Retry loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        client = self.connector.client
        while not self._stopped:
            try:
                logger.info("Connecting to presentation stream %s", self.route)
                async with client.stream(
                    "GET", self.route, params={"chunked": "true"}, timeout=STREAM_TIMEOUT
                ) as response:
                    response.raise_for_status()
                    self._opened = True
                    logger.info("Connected to presentation stream %s", self.route)
                    self.connector._publish(f"Stream {self.route} connected", route=self.route)
                    async for chunk in response.aiter_bytes():
                        await self._handle_chunk(chunk)
                if self._stopped:
                    return
                logger.info("Presentation stream %s ended; reconnecting", self.route)
                await self._closed(f"Stream {self.route} ended")
            except httpx.HTTPError as exc:
                if self._stopped:
                    return
                await self._failed(exc)
            except Exception as exc:
                if self._stopped:
                    return
                logger.exception("Unexpected error on presentation stream %s", self.route)
                await self._closed(f"Stream {self.route} failed", error=str(exc))

            if self._stopped:
                return
            await asyncio.sleep(self.connector.retry_delay)

    async def _handle_chunk(self, chunk: bytes) -> None:
        text = chunk.decode("utf-8", errors="replace")
        for part in text.split(CHUNK_SEPARATOR):
            if not part.strip():
                continue
            try:
                data = json.loads(part)
            except json.JSONDecodeError as exc:
                logger.error("Error parsing chunk from %s: %s", self.route, exc)
                continue
            if self._stopped:
                return
            try:
                await _call(self._on_data, data)
            except Exception:
                logger.exception("Stream callback for %s failed", self.route)

    async def _closed(self, message: str, **context: Any) -> None:
        self._opened = False
        self.connector._publish(message, route=self.route, **context)
        await self._clear()

    async def _failed(self, exc: httpx.HTTPError) -> None:
        if self._opened:
            logger.warning("Presentation stream %s error: %s", self.route, exc)
            await self._closed("ProPresenter stream error", error=str(exc))
            return

        if _is_connection_refused(exc):
            logger.info(
                "Presentation API at %s refused the connection; retrying in %ss",
                self.connector.base_url,
                self.connector.retry_delay,
            )
            self.connector._publish(
                "ProPresenter connection refused", url=self.connector.base_url
            )
            return

        status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
        logger.error(
            "Error connecting to presentation stream %s: %s (status=%s)",
            self.route,
            exc,
            status,
        )
        self.connector._publish(
            "Error connecting to ProPresenter",
            url=self.connector.base_url,
            route=self.route,
            status=status,
        )
        await self._clear()

    async def _clear(self) -> None:
        if self._stopped:
            return
        try:
            await _call(self._on_clear)
        except Exception:
            logger.exception("Clear callback for %s failed", self.route)


class StreamConnector:
    """Owns the HTTP client and every stream subscription for one host."""

    subject = SourceType.PRO_PRESENTER.value

    def __init__(
        self,
        config: ProPresenterConfig,
        notifier: StatusNotifier,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.notifier = notifier
        self.base_url = config.base_url
        self.retry_delay = config.retry_delay
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=self.base_url, transport=transport)
        self.subscriptions: list[StreamSubscription] = []
        self._started = False
        self._stopped = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def current_state(self) -> ConnectionState:
        if self._stopped:
            return ConnectionState.STOPPED
        if any(subscription.is_open for subscription in self.subscriptions):
            return ConnectionState.CONNECTED
        if self._started:
            return ConnectionState.CONNECTING
        return ConnectionState.DISCONNECTED

    def _publish(self, message: str, **context: Any) -> None:
        entry: dict[str, Any] = {"message": message}
        if context:
            entry["context"] = context
        active = self.current_state() is ConnectionState.CONNECTED
        self.notifier.set_status(self.subject, {"active": active}, logs=[entry])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._stopped:
            logger.warning("Cannot start a stopped presentation connector")
            return
        self._started = True
        for subscription in self.subscriptions:
            subscription.start()

    async def destroy(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        subscriptions, self.subscriptions = self.subscriptions, []
        for subscription in subscriptions:
            subscription.destroy()
        for subscription in subscriptions:
            await subscription.wait_closed()
        if self._owns_client:
            await self.client.aclose()
        self.notifier.set_status(
            self.subject,
            {"active": False},
            logs=["ProPresenter streams stopped and resources cleaned up."],
        )
        logger.info("Presentation connector for %s destroyed", self.base_url)

    def subscribe(
        self, route: str, on_data: DataCallback, on_clear: ClearCallback
    ) -> StreamSubscription:
        """Register a stream; it starts now if the connector is running."""

        subscription = StreamSubscription(self, route, on_data, on_clear)
        self.subscriptions.append(subscription)
        if self._started and not self._stopped:
            subscription.start()
        return subscription

    # ------------------------------------------------------------------
    # Typed subscriptions
    # ------------------------------------------------------------------

    def on_presentation_focused_changed(
        self, callback: Callable[[Presentation | None], Any]
    ) -> StreamSubscription:
        async def handle(data: Any) -> None:
            uuid = _focused_uuid(data)
            if uuid is None:
                logger.warning("Focused presentation event without uuid: %r", data)
                return
            presentation = await self.fetch_presentation(uuid)
            if presentation is not None:
                await _call(callback, presentation)

        return self.subscribe(FOCUSED_ROUTE, handle, lambda: callback(None))

    def on_slide_index_changed(
        self, callback: Callable[[SlideIndex | None], Any]
    ) -> StreamSubscription:
        def handle(data: Any) -> Any:
            return callback(_slide_index(data))

        return self.subscribe(SLIDE_INDEX_ROUTE, handle, lambda: callback(None))

    def on_audience_visibility_changed(
        self, callback: Callable[[bool], Any]
    ) -> StreamSubscription:
        def handle(data: Any) -> Any:
            return callback(bool(data))

        return self.subscribe(AUDIENCE_SCREENS_ROUTE, handle, lambda: callback(False))

    async def fetch_presentation(self, uuid: str) -> Presentation | None:
        """Fetch one presentation; failures are logged and reported, not raised."""

        route = PRESENTATION_ROUTE.format(uuid=uuid)
        try:
            response = await self.client.get(route)
            response.raise_for_status()
            return Presentation.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.error("Error fetching presentation details for %s: %s", uuid, exc)
            self._publish("Error fetching presentation details", uuid=uuid)
            return None


def _focused_uuid(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    uuid = data.get("uuid")
    if uuid is None and isinstance(data.get("id"), dict):
        uuid = data["id"].get("uuid")
    return str(uuid) if uuid else None


def _slide_index(data: Any) -> SlideIndex | None:
    if not isinstance(data, dict):
        return None
    position = data.get("presentation_index")
    if not isinstance(position, dict):
        return None
    presentation_id = position.get("presentation_id") or {}
    uuid = presentation_id.get("uuid") if isinstance(presentation_id, dict) else None
    index = position.get("index")
    if uuid is None or not isinstance(index, int):
        return None
    return SlideIndex(index=index, presentation_uuid=str(uuid))


__all__ = [
    "AUDIENCE_SCREENS_ROUTE",
    "FOCUSED_ROUTE",
    "SLIDE_INDEX_ROUTE",
    "StreamConnector",
    "StreamSubscription",
]
