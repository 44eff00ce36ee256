"""
Health probes.

    GET /api/v1/health/ready  — process is up
    GET /api/v1/health/live   — database round trip plus storage/LLM wiring; 503 when degraded
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from public_pulse.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _database_check():
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as e:
        db.session.rollback()
        logger.error("Database health check failed: %s", e)
        return {"status": "error", "detail": str(e)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _storage_check():
    storage = current_app.extensions.get("storage")
    if storage is None:
        return {"status": "not_configured", "backend": None}
    return {"status": "ok", "backend": storage.name}


def _llm_check():
    gateway = current_app.extensions.get("llm_gateway")
    return {
        "status": "ok" if gateway else "not_configured",
        "providers": gateway.available_providers if gateway else [],
        "classifier_model": current_app.config.get("LLM_CLASSIFIER_MODEL"),
        "analysis_enabled": current_app.config.get("ISSUE_ANALYSIS_ENABLED", True),
    }


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"})


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {
        "database": _database_check(),
        "storage": _storage_check(),
        "llm": _llm_check(),
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
