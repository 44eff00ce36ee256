"""
Identity Auth Middleware — verifies the bearer token and sets ``g.auth``.

Every API request gets an ``AuthContext``:
  1. No Authorization header        →  anonymous context
  2. Invalid / expired bearer token →  anonymous context, ``g.auth_error`` set
  3. Valid token                    →  subject + email, plus local user id/role
                                       when the subject is registered

The middleware never rejects a request itself; the route decorators in
``permission_required`` decide whether a credential is required.
"""

import logging

from flask import g, request

from public_pulse.core.auth_context import ANONYMOUS, AuthContext
from public_pulse.models import db
from public_pulse.models.user import User
from public_pulse.services.identity_service import IdentityError, verify_token

logger = logging.getLogger(__name__)

# Paths that never need identity resolution
AUTH_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/media/",
)


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def resolve_context(token: str) -> AuthContext:
    """Verify ``token`` and map its subject to a local user."""
    claims = verify_token(token)
    subject = str(claims["sub"])
    email = claims.get("email")
    user = db.session.execute(
        db.select(User).where(User.external_id == subject)
    ).scalar_one_or_none()
    if user is None:
        return AuthContext(subject=subject, email=email)
    return AuthContext.for_user(user, subject=subject, email=email)


def init_identity_middleware(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _identity_auth():
        g.auth = ANONYMOUS
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in AUTH_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        token = bearer_token()
        if token is None:
            return

        try:
            g.auth = resolve_context(token)
        except IdentityError as e:
            g.auth_error = str(e)
            logger.info("Rejected bearer token on %s %s: %s", request.method, path, e)
