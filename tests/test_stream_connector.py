from __future__ import annotations

import asyncio
import json
from collections import defaultdict

import httpx

from stagerelay.connectors import ConnectionState
from stagerelay.connectors.stream import (
    AUDIENCE_SCREENS_ROUTE,
    FOCUSED_ROUTE,
    SLIDE_INDEX_ROUTE,
    StreamConnector,
)
from stagerelay.content import Presentation, SlideIndex


async def _hang():
    await asyncio.Event().wait()
    yield b""  # pragma: no cover - never reached


async def _chunks(*chunks: bytes, hang: bool = True):
    for chunk in chunks:
        yield chunk
    if hang:
        await asyncio.Event().wait()


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class _Upstream:
    """Scripted presentation API: one queued reply per request to a path."""

    def __init__(self, replies):
        self.replies = {path: list(items) for path, items in replies.items()}
        self.requests: dict[str, list[httpx.Request]] = defaultdict(list)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests[path].append(request)
        queue = self.replies.get(path)
        if not queue:
            return httpx.Response(200, content=_hang())
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply


def _connector(config, notifier, upstream):
    return StreamConnector(config, notifier, transport=httpx.MockTransport(upstream))


def test_bad_chunk_is_skipped_without_retry(pro_presenter_config, notifier):
    upstream = _Upstream(
        {AUDIENCE_SCREENS_ROUTE: [httpx.Response(200, content=_chunks(b"{not json", b"true"))]}
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[bool] = []
        connector.on_audience_visibility_changed(received.append)
        await connector.start()

        await _wait_for(lambda: received)
        assert received == [True]
        assert len(upstream.requests[AUDIENCE_SCREENS_ROUTE]) == 1
        assert upstream.requests[AUDIENCE_SCREENS_ROUTE][0].url.params["chunked"] == "true"
        assert connector.current_state() is ConnectionState.CONNECTED
        assert notifier.get_status("pro-presenter")["items"]["active"] is True

        await connector.destroy()

    asyncio.run(scenario())


def test_multiple_documents_in_one_chunk(pro_presenter_config, notifier):
    body = b"false\r\n\r\ntrue\r\n\r\n"
    upstream = _Upstream({AUDIENCE_SCREENS_ROUTE: [httpx.Response(200, content=_chunks(body))]})

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[bool] = []
        connector.on_audience_visibility_changed(received.append)
        await connector.start()

        await _wait_for(lambda: len(received) == 2)
        assert received == [False, True]

        await connector.destroy()

    asyncio.run(scenario())


def test_stream_end_clears_and_reconnects(pro_presenter_config, notifier):
    position = {"presentation_index": {"index": 2, "presentation_id": {"uuid": "song-1"}}}
    upstream = _Upstream(
        {
            SLIDE_INDEX_ROUTE: [
                httpx.Response(200, content=_chunks(json.dumps(position).encode(), hang=False)),
            ]
        }
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[SlideIndex | None] = []
        connector.on_slide_index_changed(received.append)
        await connector.start()

        await _wait_for(lambda: len(upstream.requests[SLIDE_INDEX_ROUTE]) == 2)
        assert received == [SlideIndex(index=2, presentation_uuid="song-1"), None]
        messages = [log["message"] for log in notifier.get_status("pro-presenter")["logs"]]
        assert f"Stream {SLIDE_INDEX_ROUTE} ended" in messages

        await connector.destroy()

    asyncio.run(scenario())


def test_connection_refused_retries_without_clearing(pro_presenter_config, notifier):
    position = {"presentation_index": None}
    upstream = _Upstream(
        {
            SLIDE_INDEX_ROUTE: [
                httpx.ConnectError("[Errno 111] Connection refused"),
                httpx.Response(200, content=_chunks(json.dumps(position).encode())),
            ]
        }
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[SlideIndex | None] = []
        connector.on_slide_index_changed(received.append)
        await connector.start()

        await _wait_for(lambda: received)
        assert received == [None]
        assert len(upstream.requests[SLIDE_INDEX_ROUTE]) == 2
        messages = [log["message"] for log in notifier.get_status("pro-presenter")["logs"]]
        assert "ProPresenter connection refused" in messages

        await connector.destroy()

    asyncio.run(scenario())


def test_other_setup_failures_clear_and_retry(pro_presenter_config, notifier):
    upstream = _Upstream(
        {
            AUDIENCE_SCREENS_ROUTE: [
                httpx.Response(500),
                httpx.Response(200, content=_chunks(b"true")),
            ]
        }
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[bool] = []
        connector.on_audience_visibility_changed(received.append)
        await connector.start()

        await _wait_for(lambda: True in received)
        assert received == [False, True]

        await connector.destroy()

    asyncio.run(scenario())


def test_focused_presentation_is_fetched(pro_presenter_config, notifier):
    detail = {
        "presentation": {
            "id": {"uuid": "song-1", "name": "Amazing Grace", "index": 0},
            "groups": [
                {"name": "Verse 1", "slides": [{"text": "Amazing grace"}, {"text": "How sweet"}]},
                {"name": "Chorus", "slides": [{"text": "My chains are gone"}]},
            ],
            "has_timeline": False,
            "presentation_path": "/library/amazing-grace.pro",
        }
    }
    focused = {"uuid": "song-1", "name": "Amazing Grace", "index": 0}
    upstream = _Upstream(
        {
            FOCUSED_ROUTE: [httpx.Response(200, content=_chunks(json.dumps(focused).encode()))],
            "/v1/presentation/song-1": [httpx.Response(200, json=detail)],
        }
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[Presentation | None] = []
        connector.on_presentation_focused_changed(received.append)
        await connector.start()

        await _wait_for(lambda: received)
        presentation = received[0]
        assert presentation is not None
        assert presentation.uuid == "song-1"
        assert [slide.group for slide in presentation.flatten_slides()] == [
            "Verse 1",
            "Verse 1",
            "Chorus",
        ]

        await connector.destroy()

    asyncio.run(scenario())


def test_failed_presentation_fetch_is_reported(pro_presenter_config, notifier):
    upstream = _Upstream(
        {
            FOCUSED_ROUTE: [httpx.Response(200, content=_chunks(b'{"uuid": "missing"}'))],
            "/v1/presentation/missing": [httpx.Response(404)],
        }
    )

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        received: list[Presentation | None] = []
        connector.on_presentation_focused_changed(received.append)
        await connector.start()

        await _wait_for(lambda: upstream.requests["/v1/presentation/missing"])
        await asyncio.sleep(0.01)
        assert received == []
        messages = [log["message"] for log in notifier.get_status("pro-presenter")["logs"]]
        assert "Error fetching presentation details" in messages

        await connector.destroy()

    asyncio.run(scenario())


def test_destroy_stops_every_subscription(pro_presenter_config, notifier):
    upstream = _Upstream({})

    async def scenario():
        connector = _connector(pro_presenter_config, notifier, upstream)
        cleared: list[bool] = []
        subscription = connector.on_audience_visibility_changed(cleared.append)
        connector.on_slide_index_changed(lambda position: None)
        await connector.start()
        await _wait_for(lambda: len(upstream.requests) == 2)

        await connector.destroy()
        await connector.destroy()

        assert subscription.stopped
        assert connector.current_state() is ConnectionState.STOPPED
        assert connector.client.is_closed
        assert cleared == []
        assert notifier.get_status("pro-presenter")["items"]["active"] is False

    asyncio.run(scenario())


def test_retry_loop_stops_after_destroy(pro_presenter_config, notifier):
    requests: list[httpx.Request] = []

    def upstream(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"true")

    async def scenario():
        connector = StreamConnector(pro_presenter_config, notifier, transport=httpx.MockTransport(upstream))
        connector.on_audience_visibility_changed(lambda visible: None)
        await connector.start()
        await _wait_for(lambda: len(requests) >= 3)

        await connector.destroy()
        made = len(requests)
        for _ in range(20):
            await asyncio.sleep(0)
        await asyncio.sleep(0.05)

        assert len(requests) == made
        assert connector.current_state() is ConnectionState.STOPPED

    asyncio.run(scenario())
