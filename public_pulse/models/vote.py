"""
Public Pulse
Vote model.

One vote per (user, issue) and per (user, comment), enforced by unique
constraints. Exactly one of ``issue_id`` / ``comment_id`` is set.
"""

import uuid
from datetime import datetime, timezone

from public_pulse.models import db


def _uuid():
    return str(uuid.uuid4())


# ── Constants ────────────────────────────────────────────────────────────────

VOTE_UPVOTE = "UPVOTE"
VOTE_DOWNVOTE = "DOWNVOTE"
VOTE_TYPES = (VOTE_UPVOTE, VOTE_DOWNVOTE)


class Vote(db.Model):
    __tablename__ = "votes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    type = db.Column(db.String(10), nullable=False)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True,
    )
    issue_id = db.Column(
        db.String(36), db.ForeignKey("issues.id"), nullable=True, index=True,
    )
    comment_id = db.Column(
        db.String(36), db.ForeignKey("comments.id"), nullable=True, index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "issue_id", name="uq_votes_user_issue"),
        db.UniqueConstraint("user_id", "comment_id", name="uq_votes_user_comment"),
        db.CheckConstraint(
            "(issue_id IS NULL) <> (comment_id IS NULL)",
            name="ck_votes_single_target",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "user_id": self.user_id,
            "issue_id": self.issue_id,
            "comment_id": self.comment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Vote {self.type} by {self.user_id}>"
