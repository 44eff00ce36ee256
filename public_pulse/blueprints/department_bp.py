"""
Department blueprint.

Endpoints:
    GET    /api/v1/departments              — all departments with user/issue counts
    POST   /api/v1/departments              — admin; unique name
    POST   /api/v1/departments/assign-user  — admin; set or clear a user's department
    GET    /api/v1/departments/<id>         — members and latest issues
    PUT    /api/v1/departments/<id>         — admin; rename
    DELETE /api/v1/departments/<id>         — admin; refused while referenced
"""

from flask import Blueprint, jsonify

from public_pulse.blueprints import json_body
from public_pulse.middleware.permission_required import require_roles
from public_pulse.models.user import ROLE_ADMIN
from public_pulse.services import department_service

department_bp = Blueprint("department", __name__, url_prefix="/api/v1")


@department_bp.route("/departments", methods=["GET"])
def list_departments():
    departments = department_service.list_departments()
    return jsonify({"departments": [d.to_dict(include_counts=True) for d in departments]})


@department_bp.route("/departments", methods=["POST"])
@require_roles(ROLE_ADMIN)
def create_department(ctx):
    dept = department_service.create_department(json_body().get("name"))
    return jsonify({"message": "Department created successfully",
                    "department": dept.to_dict()}), 201


@department_bp.route("/departments/assign-user", methods=["POST"])
@require_roles(ROLE_ADMIN)
def assign_user(ctx):
    data = json_body()
    user = department_service.assign_user(data.get("user_id"), data.get("department_id"))
    return jsonify({"message": "User department updated", "user": user.to_dict()})


@department_bp.route("/departments/<department_id>", methods=["GET"])
def get_department(department_id):
    return jsonify({"department": department_service.department_detail(department_id)})


@department_bp.route("/departments/<department_id>", methods=["PUT"])
@require_roles(ROLE_ADMIN)
def update_department(ctx, department_id):
    dept = department_service.update_department(department_id, json_body().get("name"))
    return jsonify({"message": "Department updated successfully",
                    "department": dept.to_dict()})


@department_bp.route("/departments/<department_id>", methods=["DELETE"])
@require_roles(ROLE_ADMIN)
def delete_department(ctx, department_id):
    department_service.delete_department(department_id)
    return jsonify({"message": "Department deleted successfully"})
