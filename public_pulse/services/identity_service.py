"""
Identity Service — bearer-token verification against the identity provider.

Production: RS256 ID tokens verified with the provider's JWKS
(``IDENTITY_JWKS_URL``, Firebase securetoken keys by default), checking
``aud``/``iss`` when ``IDENTITY_AUDIENCE``/``IDENTITY_ISSUER`` are set.

Development/testing: HS256 tokens signed with ``IDENTITY_SHARED_SECRET``
(falls back to ``SECRET_KEY``); ``issue_token`` mints them.

Token payload (verified):
{
    "sub": <provider subject>,
    "email": <email>,           # optional
    "iat": <issued_at>,
    "exp": <expires_at>
}
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_EXPIRES = 3600
SHARED_ALGORITHM = "HS256"
JWKS_ALGORITHMS = ["RS256"]

# JWKS URL → PyJWKClient (keys cached by the client)
_jwks_clients: dict[str, jwt.PyJWKClient] = {}


class IdentityError(Exception):
    """Token missing, malformed, expired or not signed by the provider."""


def _shared_secret():
    return current_app.config.get("IDENTITY_SHARED_SECRET") or current_app.config["SECRET_KEY"]


def _jwks_client(url: str) -> jwt.PyJWKClient:
    client = _jwks_clients.get(url)
    if client is None:
        client = jwt.PyJWKClient(url, cache_keys=True)
        _jwks_clients[url] = client
    return client


def verify_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    Raises:
        IdentityError: verification failed for any reason.
    """
    if not token:
        raise IdentityError("Missing token")

    audience = current_app.config.get("IDENTITY_AUDIENCE")
    issuer = current_app.config.get("IDENTITY_ISSUER")
    jwks_url = current_app.config.get("IDENTITY_JWKS_URL")

    options = {"require": ["sub", "exp"], "verify_aud": bool(audience)}
    kwargs = {"options": options}
    if audience:
        kwargs["audience"] = audience
    if issuer:
        kwargs["issuer"] = issuer

    try:
        if jwks_url:
            signing_key = _jwks_client(jwks_url).get_signing_key_from_jwt(token)
            claims = jwt.decode(token, signing_key.key, algorithms=JWKS_ALGORITHMS, **kwargs)
        else:
            claims = jwt.decode(token, _shared_secret(), algorithms=[SHARED_ALGORITHM], **kwargs)
    except jwt.ExpiredSignatureError as e:
        raise IdentityError("Token expired") from e
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as e:
        raise IdentityError(f"Invalid token: {e}") from e

    if not str(claims.get("sub") or "").strip():
        raise IdentityError("Token has no subject")
    return claims


def issue_token(subject: str, *, email: str | None = None,
                expires_in: int = DEFAULT_TOKEN_EXPIRES) -> str:
    """Mint an HS256 token for local development and tests."""
    if current_app.config.get("IDENTITY_JWKS_URL"):
        raise RuntimeError("Local tokens cannot be issued while a JWKS provider is configured")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    if email:
        payload["email"] = email
    if current_app.config.get("IDENTITY_AUDIENCE"):
        payload["aud"] = current_app.config["IDENTITY_AUDIENCE"]
    if current_app.config.get("IDENTITY_ISSUER"):
        payload["iss"] = current_app.config["IDENTITY_ISSUER"]
    return jwt.encode(payload, _shared_secret(), algorithm=SHARED_ALGORITHM)
