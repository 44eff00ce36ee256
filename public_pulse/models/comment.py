"""
Public Pulse
Comment model.

A comment is either top-level on an issue or a reply to another comment.
Replies carry the ``issue_id`` of their thread so an issue's whole discussion
can be removed with one filter.
"""

import uuid
from datetime import datetime, timezone

from public_pulse.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    content = db.Column(db.Text, nullable=False)
    author_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )
    issue_id = db.Column(
        db.String(36), db.ForeignKey("issues.id"), nullable=True, index=True,
    )
    parent_id = db.Column(
        db.String(36), db.ForeignKey("comments.id"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    author = db.relationship("User")
    issue = db.relationship("Issue")
    parent = db.relationship("Comment", remote_side=[id], back_populates="replies")
    replies = db.relationship(
        "Comment", back_populates="parent", order_by="Comment.created_at",
    )

    @property
    def is_reply(self):
        return self.parent_id is not None

    def to_dict(self, include_replies=False):
        d = {
            "id": self.id,
            "content": self.content,
            "author_id": self.author_id,
            "author": self.author.to_summary() if self.author else None,
            "issue_id": self.issue_id,
            "parent_id": self.parent_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_replies:
            d["replies"] = [r.to_dict() for r in self.replies]
        return d

    def __repr__(self):
        return f"<Comment {self.id}>"
