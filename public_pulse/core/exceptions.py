"""
Exceptions raised by the service layer.

Each type carries the HTTP status and ``ERR_*`` code it is reported with,
so ``utils.errors.register_error_handlers`` needs a single handler for all
of them.

Usage:
    from public_pulse.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Issue", issue_id)
    raise ValidationError("title is required", details={"title": "missing"})
"""


class PublicPulseError(Exception):
    status = 500
    code = "ERR_INTERNAL"

    def __init__(self, message: str = "", details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}

    @property
    def public_message(self) -> str:
        """Text safe to return to the client."""
        return str(self)


class ValidationError(PublicPulseError):
    """Missing or malformed input, or a business rule that refuses the change."""

    status = 400
    code = "ERR_VALIDATION_INVALID"


class AuthorizationError(PublicPulseError):
    """Caller is known but lacks the role or ownership."""

    status = 403
    code = "ERR_FORBIDDEN"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFoundError(PublicPulseError):
    """
    A looked-up row does not exist, or the caller may not know it exists
    (another user's notification). The id goes to logs only.
    """

    status = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        suffix = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{suffix} not found")

    @property
    def public_message(self) -> str:
        return f"{self.resource} not found"


class ConflictError(PublicPulseError):
    status = 409
    code = "ERR_CONFLICT_DUPLICATE"

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class StorageError(PublicPulseError):
    """The object store refused an upload, signing or delete."""

    status = 500
    code = "ERR_STORAGE"

    @property
    def public_message(self) -> str:
        return "Object storage failure"
