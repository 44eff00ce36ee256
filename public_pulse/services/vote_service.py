"""
Vote Service — one vote per user per issue or comment.

Casting the same type again removes the vote; casting the other type flips
it. The unique constraints on ``votes`` make a concurrent duplicate insert
fail with IntegrityError; that attempt is rolled back and replayed once
against the row the other request created.
"""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from public_pulse.core.exceptions import NotFoundError, ValidationError
from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import Issue
from public_pulse.models.vote import VOTE_DOWNVOTE, VOTE_TYPES, VOTE_UPVOTE, Vote

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


def _target_filter(issue_id, comment_id):
    if bool(issue_id) == bool(comment_id):
        raise ValidationError(
            "Exactly one of issue_id or comment_id is required",
            details={"issue_id": issue_id, "comment_id": comment_id},
        )
    if issue_id:
        if db.session.get(Issue, issue_id) is None:
            raise NotFoundError("Issue", issue_id)
        return Vote.issue_id == issue_id
    if db.session.get(Comment, comment_id) is None:
        raise NotFoundError("Comment", comment_id)
    return Vote.comment_id == comment_id


def _apply(user_id, vote_type, issue_id, comment_id, target):
    existing = db.session.execute(
        select(Vote).where(Vote.user_id == user_id, target).with_for_update()
    ).scalar_one_or_none()

    if existing is None:
        vote = Vote(type=vote_type, user_id=user_id, issue_id=issue_id, comment_id=comment_id)
        db.session.add(vote)
        db.session.flush()
        return vote
    if existing.type == vote_type:
        db.session.delete(existing)
        db.session.flush()
        return None
    existing.type = vote_type
    db.session.flush()
    return existing


def cast_vote(ctx, vote_type, *, issue_id=None, comment_id=None):
    """
    Toggle the caller's vote on an issue or a comment.

    Returns:
        The resulting Vote, or None when the vote was toggled off.
    """
    if vote_type not in VOTE_TYPES:
        raise ValidationError(
            f"Invalid vote type. Must be one of: {list(VOTE_TYPES)}",
            details={"type": vote_type},
        )
    target = _target_filter(issue_id, comment_id)

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            vote = _apply(ctx.user_id, vote_type, issue_id, comment_id, target)
            db.session.commit()
            return vote
        except IntegrityError:
            db.session.rollback()
            if attempt == MAX_ATTEMPTS:
                raise
            logger.info("Concurrent vote by %s on %s; replaying",
                        ctx.user_id, issue_id or comment_id)


def vote_summary(*, issue_id=None, comment_id=None, user_id=None):
    """``{upvotes, downvotes, user_vote}`` for a single target."""
    target = _target_filter(issue_id, comment_id)
    counts = dict(db.session.execute(
        select(Vote.type, func.count(Vote.id)).where(target).group_by(Vote.type)
    ).all())
    user_vote = None
    if user_id:
        user_vote = db.session.scalar(
            select(Vote.type).where(target, Vote.user_id == user_id)
        )
    return {
        "upvotes": counts.get(VOTE_UPVOTE, 0),
        "downvotes": counts.get(VOTE_DOWNVOTE, 0),
        "user_vote": user_vote,
    }


def vote_summaries(column, ids, user_id=None):
    """
    Batch form of ``vote_summary`` for list views.

    Args:
        column: ``Vote.issue_id`` or ``Vote.comment_id``.
        ids: target ids.
    Returns:
        {target_id: {upvotes, downvotes, user_vote}}
    """
    ids = list(ids)
    summaries = {i: {"upvotes": 0, "downvotes": 0, "user_vote": None} for i in ids}
    if not ids:
        return summaries

    rows = db.session.execute(
        select(column, Vote.type, func.count(Vote.id))
        .where(column.in_(ids))
        .group_by(column, Vote.type)
    ).all()
    for target_id, vote_type, count in rows:
        key = "upvotes" if vote_type == VOTE_UPVOTE else "downvotes"
        summaries[target_id][key] = count

    if user_id:
        own = db.session.execute(
            select(column, Vote.type).where(column.in_(ids), Vote.user_id == user_id)
        ).all()
        for target_id, vote_type in own:
            summaries[target_id]["user_vote"] = vote_type
    return summaries


def delete_votes_for(column, ids):
    """Stage removal of every vote on the given targets (no commit)."""
    ids = list(ids)
    if ids:
        db.session.execute(delete(Vote).where(column.in_(ids)))
