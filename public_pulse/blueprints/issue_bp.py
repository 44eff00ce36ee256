"""
Issue blueprint — intake pipeline and issue lifecycle.

Endpoints:
    POST   /api/v1/issues                   — citizen intake (multipart ``images`` or JSON)
    GET    /api/v1/issues                   — paginated list; status/department_id/search filters
    GET    /api/v1/issues/nearby            — latitude, longitude, radius (km, default 5)
    GET    /api/v1/issues/<id>              — detail with comments, history and votes
    PUT    /api/v1/issues/<id>              — author or staff; partial update, extra images
    PATCH  /api/v1/issues/<id>/status       — government/admin
    PATCH  /api/v1/issues/<id>/department   — government/admin
    POST   /api/v1/issues/<id>/reanalyze    — government/admin; re-run classification
    DELETE /api/v1/issues/<id>              — author or admin; full cascade

Reads are public; the caller's own vote is included when a token is sent.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from public_pulse.blueprints import arg_bool, json_body, page_params, pagination_meta
from public_pulse.core.exceptions import ValidationError
from public_pulse.middleware.permission_required import (
    optional_auth,
    require_roles,
    require_user,
)
from public_pulse.models.user import ROLE_CITIZEN, ROLE_GOVERNMENT
from public_pulse.services import issue_service
from public_pulse.services.issue_service import ImageUpload

logger = logging.getLogger(__name__)

issue_bp = Blueprint("issue", __name__, url_prefix="/api/v1")


# ── Request helpers ───────────────────────────────────────────────────────────


def _payload():
    """Form fields for multipart requests, JSON body otherwise."""
    if request.is_json:
        return json_body()
    return request.form.to_dict()


def _truthy(value):
    if isinstance(value, bool):
        return value
    return str(value or "").lower() in ("1", "true", "yes")


def _image_uploads():
    """Read and validate the ``images`` files of a multipart request."""
    files = [f for f in request.files.getlist("images") if f and f.filename]
    max_count = current_app.config["MAX_IMAGES_PER_ISSUE"]
    max_bytes = current_app.config["MAX_IMAGE_BYTES"]
    if len(files) > max_count:
        raise ValidationError(f"At most {max_count} images per issue",
                              details={"images": len(files)})

    uploads = []
    for f in files:
        if not (f.mimetype or "").startswith("image/"):
            raise ValidationError(f"{f.filename} is not an image",
                                  details={"filename": f.filename, "mimetype": f.mimetype})
        data = f.read()
        if len(data) > max_bytes:
            raise ValidationError(f"{f.filename} exceeds {max_bytes} bytes",
                                  details={"filename": f.filename, "size": len(data)})
        uploads.append(ImageUpload(data=data, filename=f.filename, content_type=f.mimetype))
    return uploads


# ═════════════════════════════════════════════════════════════════════════
# Intake & reads
# ═════════════════════════════════════════════════════════════════════════


@issue_bp.route("/issues", methods=["POST"])
@require_roles(ROLE_CITIZEN)
def create_issue(ctx):
    issue = issue_service.create_issue(ctx, _payload(), _image_uploads())
    return jsonify({"message": "Issue created successfully", "issue": issue}), 201


@issue_bp.route("/issues", methods=["GET"])
@optional_auth
def list_issues(ctx):
    page, limit = page_params()
    issues, pagination = issue_service.list_issues(
        user_id=ctx.user_id, page=page, limit=limit,
        status=request.args.get("status"),
        department_id=request.args.get("department_id"),
        search=request.args.get("search"),
    )
    return jsonify({"issues": issues, "pagination": pagination_meta(pagination)})


@issue_bp.route("/issues/nearby", methods=["GET"])
@optional_auth
def nearby_issues(ctx):
    issues = issue_service.nearby_issues(
        request.args.get("latitude"),
        request.args.get("longitude"),
        request.args.get("radius"),
        user_id=ctx.user_id,
    )
    return jsonify({"issues": issues, "count": len(issues)})


@issue_bp.route("/issues/<issue_id>", methods=["GET"])
@optional_auth
def get_issue(ctx, issue_id):
    return jsonify({"issue": issue_service.issue_detail(issue_id, user_id=ctx.user_id)})


# ═════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════


@issue_bp.route("/issues/<issue_id>", methods=["PUT"])
@require_user
def update_issue(ctx, issue_id):
    data = _payload()
    issue = issue_service.update_issue(
        ctx, issue_id, data, _image_uploads(),
        replace_images=_truthy(data.get("replace_images")) or arg_bool("replace_images"),
    )
    return jsonify({"message": "Issue updated successfully", "issue": issue})


@issue_bp.route("/issues/<issue_id>/status", methods=["PATCH"])
@require_roles(ROLE_GOVERNMENT)
def update_status(ctx, issue_id):
    issue = issue_service.update_status(ctx, issue_id, json_body().get("status"))
    return jsonify({"message": "Issue status updated successfully", "issue": issue})


@issue_bp.route("/issues/<issue_id>/department", methods=["PATCH"])
@require_roles(ROLE_GOVERNMENT)
def assign_department(ctx, issue_id):
    issue = issue_service.assign_department(ctx, issue_id, json_body().get("department_id"))
    return jsonify({"message": "Issue department updated successfully", "issue": issue})


@issue_bp.route("/issues/<issue_id>/reanalyze", methods=["POST"])
@require_roles(ROLE_GOVERNMENT)
def reanalyze_issue(ctx, issue_id):
    issue, analysis = issue_service.reanalyze_issue(ctx, issue_id)
    return jsonify({"message": "Issue reanalyzed", "issue": issue,
                    "analysis": analysis.to_dict()})


@issue_bp.route("/issues/<issue_id>", methods=["DELETE"])
@require_user
def delete_issue(ctx, issue_id):
    issue_service.delete_issue(ctx, issue_id)
    return jsonify({"message": "Issue deleted successfully"})
