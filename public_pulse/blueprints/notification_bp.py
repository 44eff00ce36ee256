"""
Notification blueprint — the caller's own in-app notifications.

Endpoints:
    GET    /api/v1/notifications            — paginated, ``unread=true`` filter
    PATCH  /api/v1/notifications/read-all   — mark every notification read
    PATCH  /api/v1/notifications/<id>/read  — mark one read
    DELETE /api/v1/notifications/<id>       — delete one

Another user's notification is reported as 404.
"""

from flask import Blueprint, jsonify

from public_pulse.blueprints import arg_bool, page_params, pagination_meta
from public_pulse.middleware.permission_required import require_user
from public_pulse.services.notification_service import NotificationService

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_user
def list_notifications(ctx):
    page, limit = page_params(default_limit=20)
    pagination = NotificationService.list_for_user(
        ctx.user_id, unread_only=arg_bool("unread"), page=page, limit=limit,
    )
    return jsonify({
        "notifications": [n.to_dict() for n in pagination.items],
        "unread_count": NotificationService.unread_count(ctx.user_id),
        "pagination": pagination_meta(pagination),
    })


@notification_bp.route("/notifications/read-all", methods=["PATCH"])
@require_user
def mark_all_read(ctx):
    count = NotificationService.mark_all_read(ctx.user_id)
    return jsonify({"message": "All notifications marked as read", "count": count})


@notification_bp.route("/notifications/<notification_id>/read", methods=["PATCH"])
@require_user
def mark_read(ctx, notification_id):
    notif = NotificationService.mark_read(notification_id, ctx.user_id)
    return jsonify({"message": "Notification marked as read", "notification": notif.to_dict()})


@notification_bp.route("/notifications/<notification_id>", methods=["DELETE"])
@require_user
def delete_notification(ctx, notification_id):
    NotificationService.delete(notification_id, ctx.user_id)
    return jsonify({"message": "Notification deleted successfully"})
