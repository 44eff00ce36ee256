"""
Public Pulse
Identity domain models.

Models:
    - Department: municipal department that owns issues and employs users
    - User: local account bound to an identity-provider subject
"""

import uuid
from datetime import datetime, timezone

from public_pulse.models import db


def _uuid():
    """Generate a UUID4 string for primary keys."""
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

ROLE_CITIZEN = "CITIZEN"
ROLE_GOVERNMENT = "GOVERNMENT"
ROLE_ADMIN = "ADMIN"
ROLES = {ROLE_CITIZEN, ROLE_GOVERNMENT, ROLE_ADMIN}


class Department(db.Model):
    """Responsible department, referenced by issues and staff users."""

    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(150), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    users = db.relationship("User", back_populates="department", lazy="dynamic")
    issues = db.relationship("Issue", back_populates="department", lazy="dynamic")

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_counts:
            d["user_count"] = self.users.count()
            d["issue_count"] = self.issues.count()
        return d

    def __repr__(self):
        return f"<Department {self.name}>"


class User(db.Model):
    """
    Local user row.

    ``external_id`` is the opaque subject issued by the identity provider;
    the bearer token's ``sub`` claim is mapped to a user through it.
    """

    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    external_id = db.Column(db.String(128), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(200), nullable=True, unique=True)
    profile_url = db.Column(db.String(500), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_CITIZEN, index=True)
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    department = db.relationship("Department", back_populates="users")

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    def to_summary(self):
        """Compact author representation embedded in issues and comments."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "profile_url": self.profile_url,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "email": self.email,
            "profile_url": self.profile_url,
            "role": self.role,
            "department_id": self.department_id,
            "department": self.department.to_dict() if self.department else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} {self.role}>"
