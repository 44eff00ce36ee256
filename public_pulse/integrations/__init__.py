"""public_pulse.integrations — external service gateway modules.

Object storage is reached only through a backend in this package, never via
SDK calls in services or blueprints. Mirrors the ``ai/gateway.py`` pattern:
SDKs are imported lazily, calls are bounded by a timeout, and failures
surface as ``StorageError``.

Current gateways:
  object_storage.LocalStorageBackend — filesystem + itsdangerous-signed media URLs
  object_storage.S3StorageBackend    — S3 bucket + presigned GET URLs
"""
