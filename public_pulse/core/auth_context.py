"""
Per-request authentication context.

Built once by the identity middleware and handed explicitly to every
service call that needs to know who is acting.
"""

from dataclasses import dataclass

from public_pulse.models.user import ROLE_ADMIN


@dataclass(frozen=True)
class AuthContext:
    """Verified identity of the caller.

    Attributes:
        subject:  identity-provider subject (``sub`` claim); None when anonymous.
        email:    email claim from the token, if any.
        user_id:  local ``users.id`` mapped from the subject; None if unregistered.
        role:     local role of that user.
    """

    subject: str | None = None
    email: str | None = None
    user_id: str | None = None
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.subject is not None

    @property
    def is_registered(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def has_role(self, *roles: str) -> bool:
        """ADMIN satisfies every role check."""
        return self.is_admin or self.role in roles

    @classmethod
    def for_user(cls, user, *, subject=None, email=None) -> "AuthContext":
        return cls(
            subject=subject or user.external_id,
            email=email or user.email,
            user_id=user.id,
            role=user.role,
        )


ANONYMOUS = AuthContext()
