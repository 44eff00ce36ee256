"""
Public Pulse
Application factory.

Usage:
    from public_pulse import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from public_pulse.config import config
from public_pulse.middleware.identity_auth import init_identity_middleware
from public_pulse.middleware.logging_config import configure_logging
from public_pulse.middleware.rate_limiter import init_rate_limits
from public_pulse.middleware.timing import init_request_timing
from public_pulse.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
# No global limit; init_rate_limits() sets them per blueprint
limiter = Limiter(key_func=get_remote_address, default_limits=[])

_BODY_TYPES = ("json", "multipart/form-data")


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """Build the Flask app for ``config_name`` (development, testing or production)."""
    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")]())

    configure_logging(app)
    _init_extensions(app)

    init_request_timing(app)
    init_identity_middleware(app)
    app.before_request(_require_body_type)

    _init_collaborators(app)
    _create_tables(app)

    from public_pulse.blueprints import register_blueprints
    from public_pulse.utils.errors import register_error_handlers

    register_blueprints(app)
    register_error_handlers(app)
    init_rate_limits(app, limiter)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    if origins and origins != ["*"]:
        CORS(app, origins=origins)
    else:
        CORS(app)


def _require_body_type():
    """Reject API writes whose body is neither JSON nor multipart."""
    if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
        return
    if request.content_length and not any(t in (request.content_type or "") for t in _BODY_TYPES):
        abort(415, description="Content-Type must be application/json or multipart/form-data")


def _init_collaborators(app):
    from public_pulse.ai.gateway import LLMGateway
    from public_pulse.ai.prompt_registry import PromptRegistry
    from public_pulse.integrations.object_storage import create_storage

    app.extensions["llm_gateway"] = LLMGateway(app)
    app.extensions["prompt_registry"] = PromptRegistry(app.config.get("PROMPTS_DIR"))
    app.extensions["storage"] = create_storage(app)


def _create_tables(app):
    # Every model module must be imported before create_all() and Alembic autogenerate
    from public_pulse.models import ai, comment, issue, notification, user, vote  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            logger.warning("db.create_all() failed: %s", e)
