"""
User Service — registration against the identity provider, profile and
admin user management.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from public_pulse.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import Issue, IssueStatusHistory
from public_pulse.models.notification import Notification
from public_pulse.models.user import (
    ROLE_ADMIN,
    ROLE_CITIZEN,
    ROLE_GOVERNMENT,
    ROLES,
    Department,
    User,
)
from public_pulse.models.vote import Vote
from public_pulse.services import comment_service, issue_service
from public_pulse.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SELF_EDITABLE = ("name", "email", "profile_url")
ADMIN_EDITABLE = ("role", "department_id")


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════

def _normalize_email(email):
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("email is required", details={"email": "missing"})
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})


def _ensure_email_free(email, exclude_id=None):
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id:
        stmt = stmt.where(User.id != exclude_id)
    if db.session.scalar(stmt) is not None:
        raise ConflictError("User", "email", email)


def _check_department(department_id):
    if department_id and db.session.get(Department, department_id) is None:
        raise NotFoundError("Department", department_id)
    return department_id or None


def _check_role(role):
    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {sorted(ROLES)}",
                              details={"role": role})
    return role


def _commit_user(email):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError("User", "email or external_id", email) from e


def _admin_count():
    return db.session.scalar(select(func.count(User.id)).where(User.role == ROLE_ADMIN)) or 0


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def _build_user(external_id, data, role):
    name = data.get("name")
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})
    email = _normalize_email(data.get("email"))
    _ensure_email_free(email)
    if db.session.scalar(select(User.id).where(User.external_id == external_id)):
        raise ValidationError("User already registered", details={"external_id": external_id})
    return User(
        external_id=external_id,
        name=name,
        email=email,
        profile_url=data.get("profile_url") or None,
        role=role,
        department_id=_check_department(data.get("department_id")),
    )


# ═══════════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════════

def register(ctx, data, role=ROLE_CITIZEN):
    """
    Bind the caller's verified subject to a new local user.

    ADMIN registration bootstraps the first admin from the caller's own
    subject; once an admin exists only an admin may register further
    admins, naming the new subject with ``external_id`` in the body.
    """
    external_id = ctx.subject
    if role == ROLE_ADMIN and _admin_count():
        if not ctx.is_admin:
            raise AuthorizationError("Only an admin may register another admin")
        external_id = (data.get("external_id") or "").strip()
        if not external_id:
            raise ValidationError("external_id is required",
                                  details={"external_id": "missing"})
    if role == ROLE_CITIZEN:
        data = {k: v for k, v in data.items() if k != "department_id"}

    user = _build_user(external_id, data, role)
    db.session.add(user)
    _commit_user(user.email)
    logger.info("Registered %s user %s", role, user.id)
    return user


def current_user(ctx):
    return get_user(ctx.user_id)


# ═══════════════════════════════════════════════════════════════
# Admin user management
# ═══════════════════════════════════════════════════════════════

def list_users(*, page=1, limit=20, role=None, department_id=None, search=None):
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == _check_role(role))
    if department_id:
        stmt = stmt.where(User.department_id == department_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(User.name).like(pattern),
                              func.lower(User.email).like(pattern)))
    stmt = stmt.order_by(User.created_at.desc(), User.id)
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


def user_detail(ctx, user_id):
    """Profile plus activity counts; visible to the user themself and admins."""
    if ctx.user_id != user_id and not ctx.is_admin:
        raise AuthorizationError("You may only view your own profile")
    user = get_user(user_id)
    d = user.to_dict()
    d["counts"] = {
        "issues": db.session.scalar(
            select(func.count(Issue.id)).where(Issue.author_id == user.id)) or 0,
        "comments": db.session.scalar(
            select(func.count(Comment.id)).where(Comment.author_id == user.id)) or 0,
        "votes": db.session.scalar(
            select(func.count(Vote.id)).where(Vote.user_id == user.id)) or 0,
        "unread_notifications": NotificationService.unread_count(user.id),
    }
    return d


def create_user(data):
    """Admin manual create; ``external_id`` names the identity-provider subject."""
    external_id = (data.get("external_id") or "").strip()
    if not external_id:
        raise ValidationError("external_id is required", details={"external_id": "missing"})
    role = _check_role(data.get("role") or ROLE_CITIZEN)
    user = _build_user(external_id, data, role)
    db.session.add(user)
    _commit_user(user.email)
    return user


def update_user(ctx, user_id, data):
    if ctx.user_id != user_id and not ctx.is_admin:
        raise AuthorizationError("You may only update your own profile")
    if not ctx.is_admin and any(f in data for f in ADMIN_EDITABLE):
        raise AuthorizationError("Only an admin may change role or department")

    user = get_user(user_id)
    if "name" in data:
        name = data.get("name")
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "missing"})
        user.name = name
    if "email" in data:
        email = _normalize_email(data.get("email"))
        _ensure_email_free(email, exclude_id=user.id)
        user.email = email
    if "profile_url" in data:
        user.profile_url = data.get("profile_url") or None
    if "role" in data:
        role = _check_role(data.get("role"))
        if user.role == ROLE_ADMIN and role != ROLE_ADMIN and _admin_count() <= 1:
            raise ValidationError("Cannot demote the last admin")
        user.role = role
    if "department_id" in data:
        user.department_id = _check_department(data.get("department_id"))
    _commit_user(user.email)
    return user


def delete_user(ctx, user_id):
    """
    Remove a user with everything they own: votes, notifications, comments
    (with replies and their votes) and issues (full issue cascade).
    """
    user = get_user(user_id)
    if user.role == ROLE_ADMIN and _admin_count() <= 1:
        raise ValidationError("Cannot delete the last admin")

    storage = issue_service.get_storage()
    try:
        db.session.execute(delete(Vote).where(Vote.user_id == user.id))
        db.session.execute(delete(Notification).where(Notification.user_id == user.id))
        comment_ids = db.session.scalars(
            select(Comment.id).where(Comment.author_id == user.id)
        ).all()
        comment_service.purge_comments(comment_ids)
        issue_ids = db.session.scalars(select(Issue.id).where(Issue.author_id == user.id)).all()
        keys = issue_service.purge_issues(issue_ids)
        db.session.execute(
            update(IssueStatusHistory)
            .where(IssueStatusHistory.changed_by_id == user.id)
            .values(changed_by_id=None)
        )
        db.session.execute(delete(User).where(User.id == user.id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    storage.delete_many(keys)
    logger.info("User %s deleted by %s (%d issues, %d comments)",
                user_id, ctx.user_id, len(issue_ids), len(comment_ids))


def user_issues(user_id, *, viewer_id=None, page=1, limit=10):
    get_user(user_id)
    return issue_service.list_issues(user_id=viewer_id, author_id=user_id,
                                     page=page, limit=limit)


def assigned_issues(ctx, *, page=1, limit=10):
    """Issues routed to the caller's department."""
    user = current_user(ctx)
    if user.role not in (ROLE_GOVERNMENT, ROLE_ADMIN):
        raise AuthorizationError("Only government staff have assigned issues")
    if not user.department_id:
        raise ValidationError("You are not assigned to a department")
    return issue_service.list_issues(user_id=user.id, department_id=user.department_id,
                                     page=page, limit=limit)
