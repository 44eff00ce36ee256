"""
Per-request id and duration.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``. Requests slower than ``SLOW_REQUEST_MS`` log
a warning, 5xx responses an error, the rest a debug line.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
UNLOGGED_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})


def _level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _begin():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.started_at = time.perf_counter()

    @app.after_request
    def _finish(response):
        if "started_at" not in g:
            return response
        elapsed = (time.perf_counter() - g.started_at) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path not in UNLOGGED_PATHS:
            ctx = g.get("auth")
            logger.log(
                _level_for(response.status_code, elapsed),
                "%s %s -> %d", request.method, request.path, response.status_code,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": elapsed,
                    "remote_addr": request.remote_addr,
                    "user_id": ctx.user_id if ctx else None,
                },
            )
        return response
