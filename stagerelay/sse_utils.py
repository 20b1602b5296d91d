"""SSE helpers for the display event stream.

Event format produced, one frame per broadcast event:

    event: <name>
    data: <json payload>

A comment frame (``: keep-alive``) is sent when nothing was broadcast for a
while so proxies keep the connection open.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from .broadcast import Subscriber

KEEP_ALIVE_FRAME = ": keep-alive\n\n"


def format_sse(event: str, payload: Any) -> str:
    """Render one Server-Sent Event frame with a JSON ``data`` line."""

    data = json.dumps(payload, default=str, ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n"


async def sse_event_stream(
    subscriber: Subscriber, keep_alive: float = 15.0
) -> AsyncIterator[str]:
    """Yield SSE frames for every event delivered to ``subscriber``.

    The subscription is released when the consumer stops iterating (client
    disconnect cancels the response task).
    """

    try:
        while True:
            try:
                message = await asyncio.wait_for(subscriber.get(), timeout=keep_alive)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE_FRAME
                continue
            yield format_sse(message.name, message.payload)
    finally:
        subscriber.unsubscribe()
