"""FastAPI application wiring for the stage relay.

- Configures logging, optional CORS and Prometheus metrics.
- Builds the runtime (broadcaster, status notifier, config store and
  orchestrator) in the lifespan and tears it down on shutdown.
- Exposes health and status probes, the display event stream (SSE) and the
  configuration routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from prometheus_fastapi_instrumentator import Instrumentator

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .routers import config_api
from .runtime import Runtime, build_runtime
from .settings import Settings, load_settings
from .sse_utils import sse_event_stream

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[Settings], Runtime]


def create_app(
    settings: Settings | None = None,
    runtime_factory: RuntimeFactory = build_runtime,
) -> FastAPI:
    """Create the HTTP application; the runtime is built when it starts."""

    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = runtime_factory(settings)
        app.state.runtime = runtime
        runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Stage Relay", version=__version__, lifespan=lifespan)
    init_logging(app)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(config_api.router)

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {
            "status": "ok",
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    @app.get("/api/status")
    async def status(request: Request):
        """Active sources with their connection state and the health snapshot."""
        runtime: Runtime = request.app.state.runtime
        return {
            "sources": runtime.orchestrator.describe(),
            "status": runtime.notifier.snapshot(),
            "subscribers": runtime.broadcaster.subscriber_count,
        }

    @app.get("/api/events")
    async def events(request: Request):
        """Server-Sent Events stream of every broadcast event.

        Subscribing re-broadcasts the current state of each active
        presentation so a new display does not wait for the next change.
        """
        runtime: Runtime = request.app.state.runtime
        subscriber = runtime.broadcaster.subscribe()
        runtime.orchestrator.emit()
        return StreamingResponse(
            sse_event_stream(subscriber),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # Expose Prometheus metrics
    Instrumentator().instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )

    return app


app = create_app()


__all__ = ["app", "create_app"]
