"""Image Service — single-image removal and per-user galleries."""

import logging

from sqlalchemy import select

from public_pulse.core.exceptions import AuthorizationError, NotFoundError
from public_pulse.models import db
from public_pulse.models.issue import Image, Issue
from public_pulse.models.user import ROLE_GOVERNMENT, User
from public_pulse.services.issue_service import get_storage

logger = logging.getLogger(__name__)


def delete_image(ctx, image_id, *, storage=None):
    """Remove the row, then the stored object (best-effort)."""
    image = db.session.get(Image, image_id)
    if image is None:
        raise NotFoundError("Image", image_id)
    issue = db.session.get(Issue, image.issue_id)
    if issue.author_id != ctx.user_id and not ctx.has_role(ROLE_GOVERNMENT):
        raise AuthorizationError("Only the issue author or government staff may delete images")

    key = image.url
    db.session.delete(image)
    db.session.commit()
    (storage or get_storage()).delete_many([key])
    logger.info("Image %s on issue %s deleted by %s", image_id, issue.id, ctx.user_id)


def images_by_user(user_id, *, storage=None):
    """Every image attached to issues authored by ``user_id``, newest first."""
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User", user_id)
    storage = storage or get_storage()
    images = db.session.scalars(
        select(Image)
        .join(Issue, Image.issue_id == Issue.id)
        .where(Issue.author_id == user_id)
        .order_by(Image.created_at.desc())
    ).all()
    return [img.to_dict(url=storage.signed_url(img.url)) for img in images]
