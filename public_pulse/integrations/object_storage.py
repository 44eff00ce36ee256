"""
Object Storage Gateway.

All reads/writes of issue photos go through a ``StorageBackend``; services
never touch the filesystem or the S3 SDK directly.

Backends:
    - LocalStorageBackend: files under STORAGE_LOCAL_ROOT, signed URLs are
      itsdangerous tokens served by ``GET /api/v1/media/<token>``
    - S3StorageBackend: boto3 (imported lazily), presigned GET URLs

Database rows only ever hold the opaque storage key returned by
``upload()``; signed URLs are recomputed on every read.

Usage:
    storage = create_storage(app)
    key = storage.upload(data, filename="crack.jpg", content_type="image/jpeg")
    url = storage.signed_url(key)
    storage.delete(key)
"""

from __future__ import annotations

import logging
import mimetypes
import os
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from itsdangerous import BadSignature, URLSafeSerializer
from werkzeug.utils import secure_filename

from public_pulse.core.exceptions import StorageError

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_EXPIRES = 3600
MEDIA_URL_PREFIX = "/api/v1/media/"


def build_object_key(filename: str | None, content_type: str | None) -> str:
    """``uploads/<uuid>-<sanitised name>``; extension guessed from the mimetype if absent."""
    name = secure_filename(filename or "") or "image"
    if not os.path.splitext(name)[1] and content_type:
        name += mimetypes.guess_extension(content_type) or ""
    return f"uploads/{uuid.uuid4()}-{name}"


class InvalidMediaToken(Exception):
    """Signed media token is malformed, tampered with or expired."""


class StorageBackend(ABC):
    """Abstract interface for object storage."""

    name = "abstract"

    def __init__(self, *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES):
        self.expires_in = expires_in

    @abstractmethod
    def upload(self, data: bytes, *, filename: str | None = None,
               content_type: str | None = None) -> str:
        """Store ``data`` and return its storage key."""

    @abstractmethod
    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        """Return a time-limited URL for ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing objects are not an error."""

    def delete_many(self, keys) -> list[str]:
        """
        Best-effort deletion. Returns the keys that could not be deleted.

        Used for compensating cleanup, so failures are logged, not raised.
        """
        failed = []
        for key in keys:
            try:
                self.delete(key)
            except StorageError as e:
                logger.warning("Could not delete stored object %s: %s", key, e)
                failed.append(key)
        return failed


# ── Local filesystem backend ────────────────────────────────────────────────

class LocalStorageBackend(StorageBackend):
    """
    Filesystem storage for development and tests.

    Args:
        root: directory objects are written under.
        secret_key: key for signing media tokens.
        clock: callable returning epoch seconds (injectable for expiry tests).
    """

    name = "local"

    def __init__(self, root: str, secret_key: str, *,
                 expires_in: int = DEFAULT_SIGNED_URL_EXPIRES, clock=time.time):
        super().__init__(expires_in=expires_in)
        self.root = Path(root).resolve()
        self._serializer = URLSafeSerializer(secret_key, salt="public-pulse-media")
        self._clock = clock

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Key escapes storage root: {key!r}")
        return path

    def upload(self, data, *, filename=None, content_type=None):
        key = build_object_key(filename, content_type)
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Local upload failed for %s: %s", key, e)
            raise StorageError(f"Upload failed: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), key)
        return key

    def signed_url(self, key, expires_in=None):
        expires_at = int(self._clock()) + (expires_in or self.expires_in)
        token = self._serializer.dumps({"k": key, "e": expires_at})
        return f"{MEDIA_URL_PREFIX}{token}"

    def resolve_token(self, token: str) -> Path:
        """Verify a media token and return the object's path."""
        try:
            payload = self._serializer.loads(token)
        except BadSignature as e:
            raise InvalidMediaToken("Invalid media token") from e
        if not isinstance(payload, dict) or "k" not in payload or "e" not in payload:
            raise InvalidMediaToken("Invalid media token")
        if self._clock() >= payload["e"]:
            raise InvalidMediaToken("Media link expired")
        path = self.path_for(payload["k"])
        if not path.is_file():
            raise InvalidMediaToken("Media object missing")
        return path

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key):
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Delete failed: {e}") from e


# ── Amazon S3 backend ───────────────────────────────────────────────────────

class S3StorageBackend(StorageBackend):
    """S3 bucket storage via boto3 (``pip install public-pulse[s3]``)."""

    name = "s3"

    def __init__(self, bucket: str, *, region: str | None = None,
                 timeout: float = 10, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES,
                 client=None):
        super().__init__(expires_in=expires_in)
        if not bucket:
            raise RuntimeError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        self.bucket = bucket
        self.region = region
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                import boto3
                from botocore.config import Config
            except ImportError:
                raise RuntimeError("boto3 package not installed. Run: pip install boto3")
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                config=Config(
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
        return self._client

    def upload(self, data, *, filename=None, content_type=None):
        key = build_object_key(filename, content_type)
        params = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            self._get_client().put_object(**params)
        except Exception as e:
            logger.error("S3 upload failed for %s: %s", key, e)
            raise StorageError(f"Upload failed: {e}") from e
        return key

    def signed_url(self, key, expires_in=None):
        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in or self.expires_in,
            )
        except Exception as e:
            logger.error("S3 presign failed for %s: %s", key, e)
            raise StorageError(f"Signing failed: {e}") from e

    def delete(self, key):
        try:
            self._get_client().delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(f"Delete failed: {e}") from e


def create_storage(app) -> StorageBackend:
    """Build the backend selected by ``STORAGE_BACKEND``."""
    backend = (app.config.get("STORAGE_BACKEND") or "local").lower()
    expires_in = app.config.get("SIGNED_URL_EXPIRES", DEFAULT_SIGNED_URL_EXPIRES)

    if backend == "s3":
        return S3StorageBackend(
            app.config.get("S3_BUCKET"),
            region=app.config.get("AWS_REGION"),
            timeout=app.config.get("STORAGE_TIMEOUT_SECONDS", 10),
            expires_in=expires_in,
        )
    if backend == "local":
        return LocalStorageBackend(
            app.config["STORAGE_LOCAL_ROOT"],
            app.config["SECRET_KEY"],
            expires_in=expires_in,
        )
    raise RuntimeError(f"Unknown STORAGE_BACKEND: {backend!r}")
