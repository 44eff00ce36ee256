"""
Image blueprint.

Endpoints:
    DELETE /api/v1/images/<id>          — issue author or government/admin
    GET    /api/v1/images/user/<userId> — images of issues reported by a user (signed in)
    GET    /api/v1/media/<token>        — serve a locally stored object (signed token)
"""

import logging
import mimetypes

from flask import Blueprint, current_app, jsonify, send_file

from public_pulse.integrations.object_storage import InvalidMediaToken, LocalStorageBackend
from public_pulse.middleware.permission_required import require_user
from public_pulse.services import image_service
from public_pulse.utils.errors import E, api_error

logger = logging.getLogger(__name__)

image_bp = Blueprint("image", __name__, url_prefix="/api/v1")


@image_bp.route("/images/<image_id>", methods=["DELETE"])
@require_user
def delete_image(ctx, image_id):
    image_service.delete_image(ctx, image_id)
    return jsonify({"message": "Image deleted successfully"})


@image_bp.route("/images/user/<user_id>", methods=["GET"])
@require_user
def user_images(ctx, user_id):
    images = image_service.images_by_user(user_id)
    return jsonify({"images": images, "count": len(images)})


@image_bp.route("/media/<token>", methods=["GET"])
def serve_media(token):
    """Signed-URL target for the local backend; other backends sign their own URLs."""
    storage = current_app.extensions.get("storage")
    if not isinstance(storage, LocalStorageBackend):
        return api_error(E.NOT_FOUND, "Media not served by this backend")
    try:
        path = storage.resolve_token(token)
    except InvalidMediaToken as e:
        logger.info("Media request refused: %s", e)
        return api_error(E.FORBIDDEN, str(e))
    mimetype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return send_file(path, mimetype=mimetype, max_age=0)
