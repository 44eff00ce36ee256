"""
Per-blueprint Flask-Limiter limits.

The shared ``Limiter`` in ``public_pulse/__init__.py`` has no default limit;
``init_rate_limits`` attaches these after the blueprints are registered.
Requests are keyed by local user id when signed in, else by client address.
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]

# blueprint → (write limit, read limit); intake is tighter because each
# request uploads images and makes two model calls
LIMITS = {
    "issue": ("20/minute", "200/minute"),
    "comment": ("60/minute", "200/minute"),
    "vote": ("60/minute", "200/minute"),
    "auth": ("60/minute", "200/minute"),
    "user": ("60/minute", "200/minute"),
    "department": ("60/minute", "200/minute"),
    "notification": ("60/minute", "200/minute"),
    "image": ("60/minute", "200/minute"),
}
EXEMPT = ("health",)


def rate_limit_key():
    ctx = g.get("auth")
    if ctx is not None and ctx.user_id:
        return f"user:{ctx.user_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped under TESTING")
        return

    for name, (writes, reads) in LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is None:
            continue
        limiter.limit(writes, key_func=rate_limit_key, methods=WRITE_METHODS)(bp)
        limiter.limit(reads, key_func=rate_limit_key, methods=["GET"])(bp)

    for name in EXEMPT:
        if name in app.blueprints:
            limiter.exempt(app.blueprints[name])
