"""
Public Pulse
Notification model.

Models:
    - Notification: in-app notification record with read tracking
"""

import uuid
from datetime import datetime, timezone

from public_pulse.models import db


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. ``issue_id`` is an optional context
    reference to the issue the event concerns.
    """

    __tablename__ = "notifications"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    message = db.Column(db.Text, nullable=False)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )
    issue_id = db.Column(
        db.String(36), db.ForeignKey("issues.id"), nullable=True, index=True,
    )

    # Read tracking
    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True,
    )

    def mark_read(self):
        self.read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "message": self.message,
            "user_id": self.user_id,
            "issue_id": self.issue_id,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.message[:40]}>"
