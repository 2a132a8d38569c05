"""
MemberDesk
Flask Application Factory.

Usage:
    from memberdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from memberdesk.config import config
from memberdesk.models import db
from memberdesk.middleware.logging_config import configure_logging
from memberdesk.middleware.timing import init_request_timing
from memberdesk.middleware.jwt_auth import init_jwt_middleware, get_inactivity_policy
from memberdesk.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-endpoint limits only
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, resources={r"/api/*": {
            "origins": [o.strip() for o in cors_origins.split(",") if o.strip()],
        }})
    else:
        CORS(app, resources={r"/api/*": {"origins": "*"}})

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth + inactivity policy ─────────────────────────────────────
    init_jwt_middleware(app)

    # ── Request guards (Content-Type) ────────────────────────────────────
    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.content_length and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from memberdesk.models import member as _member_models        # noqa: F401
    from memberdesk.models import mailing as _mailing_models      # noqa: F401
    from memberdesk.models import formation as _formation_models  # noqa: F401
    from memberdesk.models import ai as _ai_models                # noqa: F401
    from memberdesk.models import contact as _contact_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from memberdesk.blueprints.auth_bp import auth_bp
    from memberdesk.blueprints.contact_bp import contact_bp
    from memberdesk.blueprints.formation_bp import formation_bp
    from memberdesk.blueprints.generation_bp import generation_bp
    from memberdesk.blueprints.health_bp import health_bp
    from memberdesk.blueprints.mailing_bp import mailing_bp
    from memberdesk.blueprints.member_bp import member_bp
    from memberdesk.blueprints.storage_bp import storage_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(generation_bp)
    app.register_blueprint(mailing_bp)
    app.register_blueprint(formation_bp)
    app.register_blueprint(member_bp)
    app.register_blueprint(storage_bp)
    app.register_blueprint(contact_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-member")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", "full_name", default="", help="Full name")
    @click.option("--role", default="normal", help="normal | responsable | presidence")
    @click.option("--pole", default="secretariat", help="Pole code")
    def create_member_cmd(email, password, full_name, role, pole):
        """Create a dashboard member."""
        from memberdesk.services.member_service import create_member
        member = create_member(email=email, password=password, full_name=full_name,
                               role=role, pole=pole)
        click.echo(f"Created member #{member.id} {member.email} ({member.role}/{member.pole})")

    @app.cli.command("sweep-sessions")
    def sweep_sessions_cmd():
        """Expire every session idle longer than SESSION_INACTIVITY_TIMEOUT."""
        expired = get_inactivity_policy(app).sweep()
        click.echo(f"Expired {len(expired)} idle session(s).")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Fichier trop volumineux."}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
