"""
Comment Service — threaded discussion on issues.

A comment targets an issue (top-level) or a parent comment (reply). Replies
inherit the parent's ``issue_id``; replies to replies are allowed and are
removed together with their ancestor.
"""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from public_pulse.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import Issue
from public_pulse.models.vote import Vote
from public_pulse.services import vote_service
from public_pulse.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

DETAIL_COMMENT_LIMIT = 10


def _clean_content(content):
    content = (content or "").strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("content is required", details={"content": "missing"})
    return content


def get_comment(comment_id):
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment", comment_id)
    return comment


def _ensure_can_modify(ctx, comment):
    if comment.author_id != ctx.user_id and not ctx.is_admin:
        raise AuthorizationError("Only the author or an admin may change this comment")


def create_comment(ctx, content, *, issue_id=None, parent_id=None):
    """Create a top-level comment or a reply and notify the relevant author."""
    content = _clean_content(content)
    if not issue_id and not parent_id:
        raise ValidationError(
            "Either issue_id or parent_id is required",
            details={"issue_id": "missing", "parent_id": "missing"},
        )

    parent = None
    if parent_id:
        parent = get_comment(parent_id)
        if issue_id and parent.issue_id != issue_id:
            raise ValidationError(
                "parent_id belongs to a different issue",
                details={"issue_id": issue_id, "parent_id": parent_id},
            )
        issue_id = parent.issue_id

    issue = db.session.get(Issue, issue_id) if issue_id else None
    if issue_id and issue is None:
        raise NotFoundError("Issue", issue_id)

    comment = Comment(
        content=content,
        author_id=ctx.user_id,
        issue_id=issue_id,
        parent_id=parent.id if parent else None,
    )
    db.session.add(comment)
    if parent is not None:
        NotificationService.notify_reply(parent, issue, ctx.user_id)
    else:
        NotificationService.notify_comment(issue, ctx.user_id)
    db.session.commit()
    logger.info("Comment %s created by %s on issue %s", comment.id, ctx.user_id, issue_id)
    return comment


def serialize_threads(comments, user_id=None):
    """Top-level comments with replies (oldest first) and vote summaries."""
    ids = [c.id for c in comments]
    for c in comments:
        ids.extend(r.id for r in c.replies)
    votes = vote_service.vote_summaries(Vote.comment_id, ids, user_id)

    result = []
    for c in comments:
        d = c.to_dict()
        d["votes"] = votes[c.id]
        replies = []
        for r in c.replies:
            rd = r.to_dict()
            rd["votes"] = votes[r.id]
            replies.append(rd)
        d["replies"] = replies
        result.append(d)
    return result


def _top_level_stmt(issue_id):
    return (
        select(Comment)
        .where(Comment.issue_id == issue_id, Comment.parent_id.is_(None))
        .options(
            selectinload(Comment.author),
            selectinload(Comment.replies).selectinload(Comment.author),
        )
        .order_by(Comment.created_at.desc(), Comment.id)
    )


def list_issue_comments(issue_id, *, user_id=None, page=1, limit=10):
    """
    Paginated top-level comments of an issue, newest first.

    Returns:
        (comment dicts, Pagination, total_comments incl. replies)
    """
    if db.session.get(Issue, issue_id) is None:
        raise NotFoundError("Issue", issue_id)
    pagination = db.paginate(_top_level_stmt(issue_id), page=page, per_page=limit,
                             error_out=False)
    total_comments = db.session.scalar(
        select(func.count(Comment.id)).where(Comment.issue_id == issue_id)
    ) or 0
    return serialize_threads(pagination.items, user_id), pagination, total_comments


def latest_comments(issue_id, *, user_id=None, limit=DETAIL_COMMENT_LIMIT):
    comments = db.session.execute(_top_level_stmt(issue_id).limit(limit)).scalars().all()
    return serialize_threads(comments, user_id)


def update_comment(ctx, comment_id, content):
    comment = get_comment(comment_id)
    _ensure_can_modify(ctx, comment)
    comment.content = _clean_content(content)
    db.session.commit()
    return comment


def thread_ids(root_ids):
    """The given comment ids plus every descendant reply id."""
    collected = list(root_ids)
    frontier = list(root_ids)
    while frontier:
        children = db.session.scalars(
            select(Comment.id).where(Comment.parent_id.in_(frontier))
        ).all()
        frontier = [c for c in children if c not in collected]
        collected.extend(frontier)
    return collected


def purge_comments(comment_ids):
    """Stage deletion of comments, their replies and all their votes (no commit)."""
    ids = thread_ids(comment_ids)
    if not ids:
        return 0
    vote_service.delete_votes_for(Vote.comment_id, ids)
    db.session.execute(
        delete(Comment).where(Comment.id.in_(ids)).execution_options(synchronize_session=False)
    )
    return len(ids)


def delete_comment(ctx, comment_id):
    comment = get_comment(comment_id)
    _ensure_can_modify(ctx, comment)
    removed = purge_comments([comment.id])
    db.session.commit()
    db.session.expire_all()
    logger.info("Comment %s deleted by %s (%d rows incl. replies)", comment_id, ctx.user_id, removed)
    return removed
