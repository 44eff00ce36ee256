"""
Public Pulse
Blueprint registry.
"""

from flask import request

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


def page_params(default_limit=DEFAULT_PAGE_LIMIT, max_limit=MAX_PAGE_LIMIT):
    """Read ``page``/``limit`` query params.

    Query params:
        page  — 1-based page number (default 1)
        limit — items per page (default 10, capped at max_limit)

    Returns:
        (page, limit)
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def pagination_meta(pagination):
    """Pagination block for a Flask-SQLAlchemy ``Pagination`` result."""
    return {
        "total": pagination.total,
        "page": pagination.page,
        "limit": pagination.per_page,
        "totalPages": pagination.pages,
    }


def json_body():
    return request.get_json(silent=True) or {}


def arg_bool(name):
    return (request.args.get(name) or "").lower() in ("1", "true", "yes")


def register_blueprints(app):
    """Mount every API blueprint under ``/api/v1``."""
    from public_pulse.blueprints.auth_bp import auth_bp
    from public_pulse.blueprints.comment_bp import comment_bp
    from public_pulse.blueprints.department_bp import department_bp
    from public_pulse.blueprints.health_bp import health_bp
    from public_pulse.blueprints.image_bp import image_bp
    from public_pulse.blueprints.issue_bp import issue_bp
    from public_pulse.blueprints.notification_bp import notification_bp
    from public_pulse.blueprints.user_bp import user_bp
    from public_pulse.blueprints.vote_bp import vote_bp

    for bp in (
        auth_bp, user_bp, department_bp, issue_bp, image_bp,
        comment_bp, vote_bp, notification_bp, health_bp,
    ):
        app.register_blueprint(bp)
