"""
Department Service — CRUD for municipal departments and staff assignment.

A department cannot be removed while any user or issue still references
it; the guard lives here because the foreign keys are nullable.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from public_pulse.core.exceptions import ConflictError, NotFoundError, ValidationError
from public_pulse.models import db
from public_pulse.models.issue import Issue
from public_pulse.models.user import Department, User

logger = logging.getLogger(__name__)

DETAIL_ISSUE_LIMIT = 10


def _clean_name(name):
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "missing"})
    if len(name) > 150:
        raise ValidationError("name must be ≤ 150 characters", details={"name": "too_long"})
    return name


def _ensure_unique(name, exclude_id=None):
    stmt = select(Department.id).where(func.lower(Department.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Department.id != exclude_id)
    if db.session.scalar(stmt) is not None:
        raise ConflictError("Department", "name", name)


def _commit_named(name):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError("Department", "name", name) from e


def get_department(department_id):
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise NotFoundError("Department", department_id)
    return dept


def list_departments():
    return db.session.scalars(select(Department).order_by(Department.name)).all()


def department_detail(department_id):
    """Department with its members and the latest issues routed to it."""
    dept = get_department(department_id)
    members = db.session.scalars(
        select(User).where(User.department_id == dept.id).order_by(User.name)
    ).all()
    issues = db.session.scalars(
        select(Issue)
        .where(Issue.department_id == dept.id)
        .order_by(Issue.created_at.desc())
        .limit(DETAIL_ISSUE_LIMIT)
    ).all()
    d = dept.to_dict(include_counts=True)
    d["users"] = [u.to_summary() for u in members]
    d["issues"] = [
        {"id": i.id, "title": i.title, "status": i.status, "severity": i.severity,
         "created_at": i.created_at.isoformat() if i.created_at else None}
        for i in issues
    ]
    return d


def create_department(name):
    name = _clean_name(name)
    _ensure_unique(name)
    dept = Department(name=name)
    db.session.add(dept)
    _commit_named(name)
    logger.info("Department created: %s", name)
    return dept


def update_department(department_id, name):
    dept = get_department(department_id)
    name = _clean_name(name)
    _ensure_unique(name, exclude_id=dept.id)
    dept.name = name
    _commit_named(name)
    return dept


def delete_department(department_id):
    dept = get_department(department_id)
    user_count = dept.users.count()
    issue_count = dept.issues.count()
    if user_count or issue_count:
        raise ValidationError(
            "Cannot delete department while users or issues reference it",
            details={"user_count": user_count, "issue_count": issue_count},
        )
    db.session.delete(dept)
    db.session.commit()
    logger.info("Department deleted: %s", department_id)


def assign_user(user_id, department_id):
    """Set (or clear, with ``department_id=None``) a user's department."""
    if not user_id:
        raise ValidationError("user_id is required", details={"user_id": "missing"})
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if department_id:
        get_department(department_id)
    user.department_id = department_id or None
    db.session.commit()
    return user
