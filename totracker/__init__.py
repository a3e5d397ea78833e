"""
ToTracker
Flask Application Factory.

Usage:
    from totracker import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from totracker.auth import init_auth
from totracker.config import config
from totracker.middleware.logging_config import configure_logging
from totracker.middleware.rate_limiter import init_rate_limits, rate_limit_key
from totracker.middleware.security_headers import init_security_headers
from totracker.middleware.timing import init_request_timing
from totracker.models import db

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(key_func=rate_limit_key, default_limits=[])


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing, then auth (limiter keys need g.current_user_id) ──
    init_request_timing(app)
    init_auth(app)
    limiter.init_app(app)
    init_security_headers(app)

    # ── Models (registered on the metadata for create_all / Alembic) ─────
    from totracker.models import auth as _auth_models    # noqa: F401
    from totracker.models import story as _story_models  # noqa: F401

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        os.makedirs(app.instance_path, exist_ok=True)

    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from totracker.blueprints.auth_bp import auth_bp
    from totracker.blueprints.story_bp import story_bp
    from totracker.blueprints.user_bp import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(story_bp)
    app.register_blueprint(user_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed the demo user (demo@totracker.dev / demo1234) and its stories."""
        from totracker.services.seed_service import seed_demo_data
        count = seed_demo_data()
        db.session.commit()
        logger.info("Seeded %s demo stories.", count)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok", "app": "ToTracker"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large", "code": "PAYLOAD_TOO_LARGE"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "RATE_LIMITED", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "INTERNAL_ERROR"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
