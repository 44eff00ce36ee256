"""
Public Pulse
Issue domain models.

Models:
    - Issue: citizen-reported civic problem with location, severity and status
    - Image: stored photo attached to an issue (storage key, never a signed URL)
    - IssueStatusHistory: append-only log of status changes
"""

import uuid
from datetime import datetime, timezone

from public_pulse.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_PENDING = "PENDING"
STATUS_ONGOING = "ONGOING"
STATUS_PAUSED = "PAUSED"
STATUS_CLOSED = "CLOSED"
ISSUE_STATUSES = (STATUS_PENDING, STATUS_ONGOING, STATUS_PAUSED, STATUS_CLOSED)

SEVERITY_MIN = 1
SEVERITY_MAX = 10
DEFAULT_SEVERITY = 5


class Issue(db.Model):
    """
    Civic issue reported by a citizen.

    ``severity`` may be NULL for rows written outside the intake pipeline;
    readers must treat NULL as unknown. ``department_id`` NULL means
    unclassified and is a valid steady state.
    """

    __tablename__ = "issues"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    severity = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id"), nullable=True, index=True,
    )
    author_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            f"severity IS NULL OR (severity >= {SEVERITY_MIN} AND severity <= {SEVERITY_MAX})",
            name="ck_issues_severity_range",
        ),
    )

    author = db.relationship("User", foreign_keys=[author_id])
    department = db.relationship("Department", back_populates="issues")
    images = db.relationship(
        "Image", back_populates="issue", order_by="Image.created_at",
    )
    status_logs = db.relationship(
        "IssueStatusHistory", back_populates="issue",
        order_by="IssueStatusHistory.changed_at.desc()",
    )

    def to_dict(self, image_urls=None):
        """
        Serialize the issue.

        Args:
            image_urls: optional {image_id: url} mapping used in place of the
                        stored storage keys (signed URLs are computed by the
                        caller on every read).
        """
        image_urls = image_urls or {}
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "severity": self.severity,
            "status": self.status,
            "department_id": self.department_id,
            "department": self.department.to_dict() if self.department else None,
            "author_id": self.author_id,
            "author": self.author.to_summary() if self.author else None,
            "images": [img.to_dict(url=image_urls.get(img.id)) for img in self.images],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Issue {self.id}: {self.title[:40]}>"


class Image(db.Model):
    """Photo attached to an issue; ``url`` holds the opaque storage key."""

    __tablename__ = "images"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    url = db.Column(db.String(500), nullable=False)
    issue_id = db.Column(
        db.String(36), db.ForeignKey("issues.id"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    issue = db.relationship("Issue", back_populates="images")

    def to_dict(self, url=None):
        return {
            "id": self.id,
            "url": url if url is not None else self.url,
            "issue_id": self.issue_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class IssueStatusHistory(db.Model):
    """Immutable audit entry written on every status transition."""

    __tablename__ = "issue_status_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    status = db.Column(db.String(20), nullable=False)
    changed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    issue_id = db.Column(
        db.String(36), db.ForeignKey("issues.id"), nullable=False, index=True,
    )
    # NULL once the acting user account has been deleted
    changed_by_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)

    issue = db.relationship("Issue", back_populates="status_logs")
    changed_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "issue_id": self.issue_id,
            "changed_by": self.changed_by.to_summary() if self.changed_by else None,
        }
