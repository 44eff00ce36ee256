"""
User management blueprint.

Endpoints:
    GET    /api/v1/users                            — admin; paginated, role/department/search filters
    POST   /api/v1/users                            — admin manual create
    GET    /api/v1/users/government/assigned-issues — issues of the caller's department
    GET    /api/v1/users/<id>                       — self or admin, with activity counts
    PUT    /api/v1/users/<id>                       — self (profile) or admin (role/department)
    DELETE /api/v1/users/<id>                       — admin; cascades the user's content
    GET    /api/v1/users/<id>/issues                — issues reported by the user
"""

from flask import Blueprint, jsonify, request

from public_pulse.blueprints import json_body, page_params, pagination_meta
from public_pulse.middleware.permission_required import (
    optional_auth,
    require_roles,
    require_user,
)
from public_pulse.models.user import ROLE_ADMIN, ROLE_GOVERNMENT
from public_pulse.services import user_service

user_bp = Blueprint("user", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["GET"])
@require_roles(ROLE_ADMIN)
def list_users(ctx):
    page, limit = page_params(default_limit=20)
    pagination = user_service.list_users(
        page=page, limit=limit,
        role=request.args.get("role"),
        department_id=request.args.get("department_id"),
        search=request.args.get("search"),
    )
    return jsonify({
        "users": [u.to_dict() for u in pagination.items],
        "pagination": pagination_meta(pagination),
    })


@user_bp.route("/users", methods=["POST"])
@require_roles(ROLE_ADMIN)
def create_user(ctx):
    user = user_service.create_user(json_body())
    return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201


@user_bp.route("/users/government/assigned-issues", methods=["GET"])
@require_roles(ROLE_GOVERNMENT)
def assigned_issues(ctx):
    page, limit = page_params()
    issues, pagination = user_service.assigned_issues(ctx, page=page, limit=limit)
    return jsonify({"issues": issues, "pagination": pagination_meta(pagination)})


@user_bp.route("/users/<user_id>", methods=["GET"])
@require_user
def get_user(ctx, user_id):
    return jsonify({"user": user_service.user_detail(ctx, user_id)})


@user_bp.route("/users/<user_id>", methods=["PUT"])
@require_user
def update_user(ctx, user_id):
    user = user_service.update_user(ctx, user_id, json_body())
    return jsonify({"message": "User updated successfully", "user": user.to_dict()})


@user_bp.route("/users/<user_id>", methods=["DELETE"])
@require_roles(ROLE_ADMIN)
def delete_user(ctx, user_id):
    user_service.delete_user(ctx, user_id)
    return jsonify({"message": "User deleted successfully"})


@user_bp.route("/users/<user_id>/issues", methods=["GET"])
@optional_auth
def user_issues(ctx, user_id):
    page, limit = page_params()
    issues, pagination = user_service.user_issues(
        user_id, viewer_id=ctx.user_id, page=page, limit=limit,
    )
    return jsonify({"issues": issues, "pagination": pagination_meta(pagination)})
