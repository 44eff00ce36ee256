"""
Permission Decorators — role checks for route protection.

Each decorator hands the request's ``AuthContext`` to the view as the
``ctx`` keyword argument, so handlers pass it on to services explicitly.

Usage:
    @bp.route("/issues", methods=["POST"])
    @require_roles(ROLE_CITIZEN)
    def create_issue(ctx):
        ...

    @bp.route("/issues", methods=["GET"])
    @optional_auth
    def list_issues(ctx):
        ...

Responses:
    401 — no credential, or the credential failed verification
    404 — verified subject without a local user ("User not found")
    403 — local user lacks the role (ADMIN passes every role check)
"""

import functools
import logging

from flask import g

from public_pulse.core.auth_context import ANONYMOUS
from public_pulse.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _context():
    return getattr(g, "auth", ANONYMOUS)


def _unauthorized():
    reason = getattr(g, "auth_error", None) or "Authentication required"
    return api_error(E.UNAUTHORIZED, f"Unauthorized: {reason}")


def optional_auth(f):
    """Pass the caller's context (possibly anonymous) without requiring it."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        return f(*args, ctx=_context(), **kwargs)
    return decorated


def require_auth(f):
    """Require a verified credential; the subject need not be registered."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        ctx = _context()
        if not ctx.is_authenticated:
            return _unauthorized()
        return f(*args, ctx=ctx, **kwargs)
    return decorated


def require_user(f):
    """Require a verified credential mapped to a local user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        ctx = _context()
        if not ctx.is_authenticated:
            return _unauthorized()
        if not ctx.is_registered:
            return api_error(E.NOT_FOUND, "User not found")
        return f(*args, ctx=ctx, **kwargs)
    return decorated


def require_roles(*roles: str):
    """Require a local user holding one of ``roles`` (or ADMIN)."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            ctx = _context()
            if not ctx.is_authenticated:
                return _unauthorized()
            if not ctx.is_registered:
                return api_error(E.NOT_FOUND, "User not found")
            if not ctx.has_role(*roles):
                logger.warning(
                    "User %s (%s) denied on %s: requires one of %s",
                    ctx.user_id, ctx.role, f.__name__, roles,
                )
                return api_error(
                    E.FORBIDDEN,
                    "Forbidden: insufficient role",
                    details={"required_any": list(roles)},
                )
            return f(*args, ctx=ctx, **kwargs)
        return decorated
    return decorator
