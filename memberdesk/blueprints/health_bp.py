"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — status, mail configuration, contact address
    GET /api/v1/health/live   — dependency checks (database, LLM provider, storage)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from memberdesk.ai.gateway import get_gateway
from memberdesk.models import db
from memberdesk.services.email_service import EmailService

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "mailConfigured": EmailService.is_configured(),
        "contactEmail": current_app.config.get("CONTACT_EMAIL"),
    }), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── LLM provider ─────────────────────────────────────────────────
    providers = sorted(get_gateway().available_providers)
    checks["llm"] = {"status": "ok" if providers else "not_configured", "providers": providers}

    # ── Storage ──────────────────────────────────────────────────────
    checks["storage"] = {
        "status": "ok" if current_app.config.get("STORAGE_ROOT") or "storage" in current_app.extensions
        else "not_configured",
    }

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503
