"""
Public Pulse
Notification Service.

Central service for creating and querying in-app notifications. The event
helpers (status change, department assignment, comment, reply) only stage
rows on the session; the caller's transaction commits them together with
the primary mutation.
"""

from datetime import datetime, timezone

from sqlalchemy import select, update

from public_pulse.core.exceptions import NotFoundError
from public_pulse.models import db
from public_pulse.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, message, issue_id=None):
        """Stage a single notification on the session (not committed)."""
        notif = Notification(user_id=user_id, message=message, issue_id=issue_id)
        db.session.add(notif)
        return notif

    # ── Issue / comment event helpers ─────────────────────────────────────

    @staticmethod
    def notify_status_change(issue, status):
        return NotificationService.create(
            user_id=issue.author_id,
            issue_id=issue.id,
            message=f'Your issue "{issue.title}" status has been updated to {status}',
        )

    @staticmethod
    def notify_department_assigned(issue):
        return NotificationService.create(
            user_id=issue.author_id,
            issue_id=issue.id,
            message=f'Your issue "{issue.title}" has been assigned to a department',
        )

    @staticmethod
    def notify_comment(issue, commenter_id):
        """Tell the issue author about a new top-level comment (skip self-comments)."""
        if issue.author_id == commenter_id:
            return None
        return NotificationService.create(
            user_id=issue.author_id,
            issue_id=issue.id,
            message=f'Someone commented on your issue "{issue.title}"',
        )

    @staticmethod
    def notify_reply(parent, issue, replier_id):
        """Tell the parent comment's author about a reply (skip self-replies)."""
        if parent.author_id == replier_id:
            return None
        title = issue.title if issue is not None else ""
        return NotificationService.create(
            user_id=parent.author_id,
            issue_id=issue.id if issue is not None else None,
            message=f'Someone replied to your comment on issue "{title}"',
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, *, unread_only=False, page=1, limit=20):
        """Retrieve a user's notifications, newest first (paginated)."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id)
        return db.paginate(stmt, page=page, per_page=limit, error_out=False)

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return db.session.scalar(
            select(db.func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        ) or 0

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _get_own(notification_id, user_id):
        notif = db.session.get(Notification, notification_id)
        # Other users' notifications are reported as missing
        if notif is None or notif.user_id != user_id:
            raise NotFoundError("Notification", notification_id)
        return notif

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read."""
        notif = NotificationService._get_own(notification_id, user_id)
        if not notif.read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read; returns the count."""
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=now)
            .execution_options(synchronize_session="fetch")
        )
        db.session.commit()
        return result.rowcount

    @staticmethod
    def delete(notification_id, user_id):
        notif = NotificationService._get_own(notification_id, user_id)
        db.session.delete(notif)
        db.session.commit()
