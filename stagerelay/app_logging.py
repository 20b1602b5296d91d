"""Application and access logging setup.

Everything under the ``stagerelay`` logger namespace (connectors, adapters,
the orchestrator and the status notifier) shares one rotating ``app.log``.
HTTP requests go to ``access.log`` through a small middleware.

- A JSON formatter (opt-in via LOG_JSON) or a human-readable formatter.
- Timed rotation of both files, honoring retention and timezone options.
- Access records carry method, path, status, latency, client IP, a request
  id echoed back as ``X-Request-Id`` and scrubbed headers.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_RETENTION_DAYS,
LOG_ROTATE_UTC, LOG_TO_STDERR.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request

APP_LOGGER_NAME = "stagerelay"
ACCESS_LOGGER_NAME = "uvicorn.access"


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}

# Never written to the access log.
SKIP_PATHS = {"/api/health", "/api/metrics", "/api/events"}


def _scrub_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: ("***" if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}


def _install_access_logging(app: FastAPI) -> None:
    """Install request/response access logging middleware."""

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id

        start = time.time()
        response = await call_next(request)
        process_time_ms = (time.time() - start) * 1000

        client = request.client
        client_ip = request.headers.get("X-Forwarded-For")
        if not client_ip and client is not None:
            client_ip = client.host

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(process_time_ms, 2),
            "client_ip": client_ip,
            "headers": _scrub_headers(dict(request.headers)),
        }
        response.headers["X-Request-Id"] = request_id

        access_logger.info(json.dumps(log_data, default=str))
        return response


def _rotating_handler(path: str, retention_days: int, rotate_utc: bool) -> TimedRotatingFileHandler:
    return TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=retention_days,
        utc=rotate_utc,
    )


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"
    to_stderr = os.getenv("LOG_TO_STDERR", "true").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)

    formatter = _get_formatter(log_json)
    log_level = getattr(logging, log_level_str, logging.INFO)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        handler = _rotating_handler(os.path.join(log_dir, "app.log"), retention_days, rotate_utc)
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)
        if to_stderr:
            console = logging.StreamHandler(sys.stderr)
            console.setFormatter(formatter)
            app_logger.addHandler(console)
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    handler = _rotating_handler(os.path.join(log_dir, "access.log"), retention_days, rotate_utc)
    handler.setFormatter(formatter)
    access_logger.addHandler(handler)
    access_logger.setLevel(log_level)

    if app is not None:
        _install_access_logging(app)
