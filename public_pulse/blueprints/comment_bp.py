"""
Comment blueprint.

Endpoints:
    POST   /api/v1/comments                  — content + issue_id (top-level) or parent_id (reply)
    GET    /api/v1/comments/issue/<issue_id> — paginated threads, newest first
    PUT    /api/v1/comments/<id>             — author or admin
    DELETE /api/v1/comments/<id>             — author or admin; removes replies and votes
"""

from flask import Blueprint, jsonify

from public_pulse.blueprints import json_body, page_params, pagination_meta
from public_pulse.middleware.permission_required import optional_auth, require_user
from public_pulse.services import comment_service

comment_bp = Blueprint("comment", __name__, url_prefix="/api/v1")


@comment_bp.route("/comments", methods=["POST"])
@require_user
def create_comment(ctx):
    data = json_body()
    comment = comment_service.create_comment(
        ctx, data.get("content"),
        issue_id=data.get("issue_id"),
        parent_id=data.get("parent_id"),
    )
    return jsonify({"message": "Comment created successfully",
                    "comment": comment.to_dict()}), 201


@comment_bp.route("/comments/issue/<issue_id>", methods=["GET"])
@optional_auth
def list_issue_comments(ctx, issue_id):
    page, limit = page_params()
    comments, pagination, total = comment_service.list_issue_comments(
        issue_id, user_id=ctx.user_id, page=page, limit=limit,
    )
    return jsonify({
        "comments": comments,
        "total_comments": total,
        "pagination": pagination_meta(pagination),
    })


@comment_bp.route("/comments/<comment_id>", methods=["PUT"])
@require_user
def update_comment(ctx, comment_id):
    comment = comment_service.update_comment(ctx, comment_id, json_body().get("content"))
    return jsonify({"message": "Comment updated successfully", "comment": comment.to_dict()})


@comment_bp.route("/comments/<comment_id>", methods=["DELETE"])
@require_user
def delete_comment(ctx, comment_id):
    comment_service.delete_comment(ctx, comment_id)
    return jsonify({"message": "Comment deleted successfully"})
