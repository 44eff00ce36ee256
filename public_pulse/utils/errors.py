"""JSON error bodies: ``{"error": message, "code": "ERR_...", "details"?: {...}}``.

Usage
-----
    from public_pulse.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "User not found")
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from public_pulse.core.exceptions import PublicPulseError

logger = logging.getLogger(__name__)


class E:
    """Machine-readable error codes."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    STORAGE = "ERR_STORAGE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE = {
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.STORAGE: 500,
    E.INTERNAL: 500,
}
CODE_BY_STATUS = {
    400: E.VALIDATION_INVALID,
    401: E.UNAUTHORIZED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    413: E.PAYLOAD_TOO_LARGE,
    415: E.UNSUPPORTED_MEDIA_TYPE,
    429: E.RATE_LIMITED,
}


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None, **extra):
    """``(response, status)`` for a view to return; status defaults from ``code``."""
    body = {"error": message, "code": code, **extra}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)


def _http_error(exc: HTTPException):
    code = CODE_BY_STATUS.get(exc.code, E.INTERNAL)
    if exc.code == 404:
        return api_error(code, "Not found", status=404, path=request.path)
    if exc.code == 413:
        return api_error(code, "Request body too large", status=413,
                         max_bytes=request.max_content_length)
    if exc.code == 429:
        return api_error(code, "Too many requests", status=429, retry_after=exc.description)
    if exc.code == 405:
        return api_error(code, "Method not allowed", status=405)
    return api_error(code, exc.description or exc.name, status=exc.code)


def register_error_handlers(app):
    """Service exceptions and werkzeug HTTP errors both render as JSON."""

    @app.errorhandler(PublicPulseError)
    def _service_error(exc):
        if exc.status >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        return api_error(exc.code, exc.public_message, status=exc.status,
                         details=exc.details)

    app.register_error_handler(HTTPException, _http_error)

    # Only reached outside TESTING; tests see the original exception
    @app.errorhandler(500)
    def _unexpected(exc):
        original = getattr(exc, "original_exception", None) or exc
        logger.error("Unhandled %s", type(original).__name__, exc_info=original)
        return api_error(E.INTERNAL, "Internal server error", status=500)
