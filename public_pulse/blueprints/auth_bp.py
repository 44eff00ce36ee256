"""
Account registration blueprint.

Endpoints:
    POST /api/v1/citizen/auth/register     — bind the caller's subject as CITIZEN
    POST /api/v1/government/auth/register  — bind as GOVERNMENT (optional department_id)
    POST /api/v1/admin/auth/register       — first admin, or further admins by an admin
    GET  /api/v1/auth/me                   — current profile

The bearer token is verified by the identity middleware; registration only
needs a verified subject, every other route also needs the local user.
"""

import logging

from flask import Blueprint, jsonify

from public_pulse.blueprints import json_body
from public_pulse.middleware.permission_required import require_auth, require_user
from public_pulse.models.user import ROLE_ADMIN, ROLE_CITIZEN, ROLE_GOVERNMENT
from public_pulse.services import user_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1")


def _register(ctx, role):
    user = user_service.register(ctx, json_body(), role=role)
    return jsonify({"message": "User registered successfully", "user": user.to_dict()}), 201


@auth_bp.route("/citizen/auth/register", methods=["POST"])
@require_auth
def register_citizen(ctx):
    return _register(ctx, ROLE_CITIZEN)


@auth_bp.route("/government/auth/register", methods=["POST"])
@require_auth
def register_government(ctx):
    return _register(ctx, ROLE_GOVERNMENT)


@auth_bp.route("/admin/auth/register", methods=["POST"])
@require_auth
def register_admin(ctx):
    return _register(ctx, ROLE_ADMIN)


@auth_bp.route("/auth/me", methods=["GET"])
@require_user
def me(ctx):
    return jsonify({"user": user_service.current_user(ctx).to_dict()})
