"""
Issue Service — intake pipeline and issue lifecycle.

Intake (``create_issue``), in order:
    1. validate title / description / coordinates
    2. upload every image to object storage in parallel; if one upload
       fails, the objects already stored by this request are deleted and
       the creation fails with StorageError
    3. classify severity + department (best-effort, never fails intake)
    4. one transaction: Issue row, then Image rows referencing its id;
       on failure the transaction rolls back and the uploaded objects are
       deleted before the error propagates
    5. re-read the issue with author, department and images
    6. replace each stored key with a freshly signed URL

Signed URLs are never persisted; every read signs again.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import selectinload

from public_pulse.ai.issue_analysis import IssueAnalyzer
from public_pulse.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import (
    ISSUE_STATUSES,
    SEVERITY_MAX,
    SEVERITY_MIN,
    Image,
    Issue,
    IssueStatusHistory,
)
from public_pulse.models.notification import Notification
from public_pulse.models.user import ROLE_GOVERNMENT, Department
from public_pulse.models.vote import Vote
from public_pulse.services import comment_service, vote_service
from public_pulse.services.notification_service import NotificationService
from public_pulse.utils.geo import bounding_box, haversine_km

logger = logging.getLogger(__name__)

DEFAULT_NEARBY_RADIUS_KM = 5.0
NEARBY_LIMIT = 50
MAX_UPLOAD_WORKERS = 4


@dataclass(frozen=True)
class ImageUpload:
    """Raw image received with a request."""

    data: bytes
    filename: str | None = None
    content_type: str | None = None


# ── Collaborators ─────────────────────────────────────────────────────────

def get_storage():
    return current_app.extensions["storage"]


def get_analyzer():
    return IssueAnalyzer.from_app(current_app)


# ── Validation ────────────────────────────────────────────────────────────

def _coordinate(value, name, bound):
    if value is None or value == "":
        raise ValidationError(f"{name} is required", details={name: "missing"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", details={name: value})
    if not -bound <= number <= bound:
        raise ValidationError(f"{name} must be between -{bound} and {bound}",
                              details={name: number})
    return number


def _text(data, name, max_len=None):
    value = data.get(name)
    value = value.strip() if isinstance(value, str) else ""
    if not value:
        raise ValidationError(f"{name} is required", details={name: "missing"})
    if max_len and len(value) > max_len:
        raise ValidationError(f"{name} must be ≤ {max_len} characters",
                              details={name: "too_long"})
    return value


def _severity(value):
    try:
        severity = int(value)
    except (TypeError, ValueError):
        raise ValidationError("severity must be an integer", details={"severity": value})
    if not SEVERITY_MIN <= severity <= SEVERITY_MAX:
        raise ValidationError(
            f"severity must be between {SEVERITY_MIN} and {SEVERITY_MAX}",
            details={"severity": severity},
        )
    return severity


def validate_issue_input(data):
    """Return (title, description, latitude, longitude) or raise ValidationError."""
    missing = [f for f in ("title", "description", "latitude", "longitude")
               if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "missing" for f in missing},
        )
    return (
        _text(data, "title", 300),
        _text(data, "description"),
        _coordinate(data.get("latitude"), "latitude", 90),
        _coordinate(data.get("longitude"), "longitude", 180),
    )


# ── Storage helpers ───────────────────────────────────────────────────────

def upload_images(storage, images):
    """
    Upload images concurrently; keys come back in input order.

    Raises:
        StorageError: any upload failed (successful ones are deleted first).
    """
    images = list(images)
    if not images:
        return []

    workers = min(MAX_UPLOAD_WORKERS, len(images))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as pool:
        futures = [
            pool.submit(storage.upload, img.data,
                        filename=img.filename, content_type=img.content_type)
            for img in images
        ]
        keys, errors = [], []
        for future in futures:
            try:
                keys.append(future.result())
            except Exception as e:
                errors.append(e)

    if errors:
        logger.error("%d of %d image uploads failed; removing %d stored objects",
                     len(errors), len(images), len(keys))
        storage.delete_many(keys)
        first = errors[0]
        if isinstance(first, StorageError):
            raise first
        raise StorageError(f"Upload failed: {first}") from first
    return keys


def signed_urls(images, storage=None):
    """{image_id: signed url} for the given Image rows."""
    storage = storage or get_storage()
    return {img.id: storage.signed_url(img.url) for img in images}


def _discard_objects(storage, keys, reason):
    if keys:
        failed = storage.delete_many(keys)
        logger.warning("Removed %d stored objects after %s (%d left behind)",
                       len(keys) - len(failed), reason, len(failed))


# ── Read side ─────────────────────────────────────────────────────────────

def _issue_options():
    return (
        selectinload(Issue.author),
        selectinload(Issue.department),
        selectinload(Issue.images),
    )


def get_issue(issue_id):
    issue = db.session.get(Issue, issue_id, options=_issue_options())
    if issue is None:
        raise NotFoundError("Issue", issue_id)
    return issue


def serialize_issue(issue, storage=None):
    return issue.to_dict(image_urls=signed_urls(issue.images, storage))


def _comment_counts(issue_ids):
    if not issue_ids:
        return {}
    return dict(db.session.execute(
        select(Comment.issue_id, func.count(Comment.id))
        .where(Comment.issue_id.in_(issue_ids))
        .group_by(Comment.issue_id)
    ).all())


def serialize_issue_list(issues, user_id=None):
    """Issues with signed images, vote summaries and comment counts."""
    storage = get_storage()
    ids = [i.id for i in issues]
    votes = vote_service.vote_summaries(Vote.issue_id, ids, user_id)
    comment_counts = _comment_counts(ids)
    result = []
    for issue in issues:
        d = serialize_issue(issue, storage)
        d["votes"] = votes[issue.id]
        d["comment_count"] = comment_counts.get(issue.id, 0)
        result.append(d)
    return result


def list_issues(*, user_id=None, page=1, limit=10, status=None, department_id=None,
                author_id=None, search=None):
    """
    Paginated issues, newest first.

    Returns:
        (issue dicts, Pagination)
    """
    stmt = select(Issue).options(*_issue_options())
    if status:
        if status not in ISSUE_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {list(ISSUE_STATUSES)}",
                details={"status": status},
            )
        stmt = stmt.where(Issue.status == status)
    if department_id:
        stmt = stmt.where(Issue.department_id == department_id)
    if author_id:
        stmt = stmt.where(Issue.author_id == author_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(
            func.lower(Issue.title).like(pattern),
            func.lower(Issue.description).like(pattern),
        ))
    stmt = stmt.order_by(Issue.created_at.desc(), Issue.id)
    pagination = db.paginate(stmt, page=page, per_page=limit, error_out=False)
    return serialize_issue_list(pagination.items, user_id), pagination


def issue_detail(issue_id, *, user_id=None):
    """Full issue view: signed images, latest comments, status history, votes."""
    issue = get_issue(issue_id)
    d = serialize_issue(issue)
    d["comments"] = comment_service.latest_comments(issue.id, user_id=user_id)
    d["status_history"] = [log.to_dict() for log in issue.status_logs]
    d["votes"] = vote_service.vote_summary(issue_id=issue.id, user_id=user_id)
    return d


def nearby_issues(latitude, longitude, radius_km=None, *, user_id=None):
    """
    Issues strictly within ``radius_km`` (great-circle), nearest first.

    A bounding box narrows the rows in SQL; Haversine decides membership.
    """
    lat = _coordinate(latitude, "latitude", 90)
    lon = _coordinate(longitude, "longitude", 180)
    if radius_km in (None, ""):
        radius = DEFAULT_NEARBY_RADIUS_KM
    else:
        try:
            radius = float(radius_km)
        except (TypeError, ValueError):
            raise ValidationError("radius must be a number", details={"radius": radius_km})
        if radius <= 0:
            raise ValidationError("radius must be positive", details={"radius": radius})

    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
    stmt = select(Issue).options(*_issue_options()).where(
        Issue.latitude.between(min_lat, max_lat),
    )
    # Boxes crossing the antimeridian keep every longitude
    if min_lon >= -180 and max_lon <= 180:
        stmt = stmt.where(Issue.longitude.between(min_lon, max_lon))

    hits = []
    for issue in db.session.scalars(stmt):
        distance = haversine_km(lat, lon, issue.latitude, issue.longitude)
        if distance < radius:
            hits.append((distance, issue))
    hits.sort(key=lambda pair: pair[0])
    hits = hits[:NEARBY_LIMIT]

    items = serialize_issue_list([issue for _, issue in hits], user_id)
    for item, (distance, _) in zip(items, hits):
        item["distance"] = round(distance, 3)
    return items


# ── Intake ────────────────────────────────────────────────────────────────

def create_issue(ctx, data, images=(), *, storage=None, analyzer=None):
    """Run the intake pipeline and return the hydrated issue dict."""
    title, description, latitude, longitude = validate_issue_input(data)
    storage = storage or get_storage()
    analyzer = analyzer or get_analyzer()

    keys = upload_images(storage, images)
    analysis = analyzer.analyze(title, description)

    try:
        issue = Issue(
            title=title,
            description=description,
            latitude=latitude,
            longitude=longitude,
            severity=analysis.severity,
            department_id=analysis.department_id,
            author_id=ctx.user_id,
        )
        db.session.add(issue)
        db.session.flush()
        for key in keys:
            db.session.add(Image(url=key, issue_id=issue.id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Issue intake transaction failed for user %s", ctx.user_id)
        _discard_objects(storage, keys, "intake rollback")
        raise

    issue_id = issue.id
    db.session.expire_all()
    issue = get_issue(issue_id)
    logger.info(
        "Issue %s created by %s: severity=%s department=%s images=%d classified=%s",
        issue_id, ctx.user_id, issue.severity, issue.department_id, len(keys),
        analysis.classified,
        extra={"user_id": ctx.user_id, "issue_id": issue_id},
    )
    return serialize_issue(issue, storage)


# ── Mutations ─────────────────────────────────────────────────────────────

def _ensure_author_or_staff(ctx, issue):
    if issue.author_id != ctx.user_id and not ctx.has_role(ROLE_GOVERNMENT):
        raise AuthorizationError("Only the author or government staff may edit this issue")


def update_issue(ctx, issue_id, data, images=(), *, replace_images=False, storage=None):
    """Partial update; new images are appended or replace the existing set."""
    issue = get_issue(issue_id)
    _ensure_author_or_staff(ctx, issue)
    storage = storage or get_storage()

    if "title" in data:
        issue.title = _text(data, "title", 300)
    if "description" in data:
        issue.description = _text(data, "description")
    if "latitude" in data:
        issue.latitude = _coordinate(data.get("latitude"), "latitude", 90)
    if "longitude" in data:
        issue.longitude = _coordinate(data.get("longitude"), "longitude", 180)
    if "severity" in data:
        issue.severity = _severity(data.get("severity"))

    try:
        new_keys = upload_images(storage, images)
    except StorageError:
        db.session.rollback()
        raise

    old_keys = []
    try:
        if replace_images:
            old_keys = [img.url for img in issue.images]
            db.session.execute(
                delete(Image).where(Image.issue_id == issue.id)
                .execution_options(synchronize_session=False)
            )
        for key in new_keys:
            db.session.add(Image(url=key, issue_id=issue.id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Issue update failed for %s", issue_id)
        _discard_objects(storage, new_keys, "update rollback")
        raise

    if old_keys:
        storage.delete_many(old_keys)
    db.session.expire_all()
    return serialize_issue(get_issue(issue_id), storage)


def update_status(ctx, issue_id, status):
    """Relabel the status, log it and notify the author in one transaction."""
    if status not in ISSUE_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {list(ISSUE_STATUSES)}",
            details={"status": status},
        )
    issue = get_issue(issue_id)
    try:
        issue.status = status
        db.session.add(IssueStatusHistory(
            status=status, issue_id=issue.id, changed_by_id=ctx.user_id,
        ))
        NotificationService.notify_status_change(issue, status)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Issue %s status → %s by %s", issue_id, status, ctx.user_id)
    return serialize_issue(issue)


def assign_department(ctx, issue_id, department_id):
    """Route the issue to a department (``None`` clears it)."""
    issue = get_issue(issue_id)
    if department_id and db.session.get(Department, department_id) is None:
        raise NotFoundError("Department", department_id)
    issue.department_id = department_id or None
    if issue.department_id:
        NotificationService.notify_department_assigned(issue)
    db.session.commit()
    db.session.expire_all()
    logger.info("Issue %s department → %s by %s", issue_id, department_id, ctx.user_id)
    return serialize_issue(get_issue(issue_id))


def reanalyze_issue(ctx, issue_id, *, analyzer=None):
    """Re-run classification and store the new severity/department."""
    issue = get_issue(issue_id)
    analyzer = analyzer or get_analyzer()
    analysis = analyzer.analyze(issue.title, issue.description, issue_id=issue.id)
    issue.severity = analysis.severity
    issue.department_id = analysis.department_id
    db.session.commit()
    db.session.expire_all()
    logger.info("Issue %s reanalysed by %s: %s", issue_id, ctx.user_id, analysis.to_dict())
    return serialize_issue(get_issue(issue_id)), analysis


def purge_issues(issue_ids):
    """
    Stage deletion of issues and every dependent row (no commit).

    Order: comment votes, comments, issue votes, images, status history,
    notifications, issues.

    Returns:
        Storage keys of the removed images.
    """
    issue_ids = list(issue_ids)
    if not issue_ids:
        return []

    comment_ids = db.session.scalars(
        select(Comment.id).where(Comment.issue_id.in_(issue_ids))
    ).all()
    comment_service.purge_comments(comment_ids)
    vote_service.delete_votes_for(Vote.issue_id, issue_ids)

    keys = db.session.scalars(select(Image.url).where(Image.issue_id.in_(issue_ids))).all()
    for model in (Image, IssueStatusHistory, Notification):
        db.session.execute(
            delete(model).where(model.issue_id.in_(issue_ids))
            .execution_options(synchronize_session=False)
        )
    db.session.execute(
        delete(Issue).where(Issue.id.in_(issue_ids))
        .execution_options(synchronize_session=False)
    )
    return list(keys)


def delete_issue(ctx, issue_id, *, storage=None):
    issue = get_issue(issue_id)
    if issue.author_id != ctx.user_id and not ctx.is_admin:
        raise AuthorizationError("Only the author or an admin may delete this issue")
    storage = storage or get_storage()
    try:
        keys = purge_issues([issue.id])
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    storage.delete_many(keys)
    logger.info("Issue %s deleted by %s (%d images)", issue_id, ctx.user_id, len(keys))
