"""
RegenMark Certification Engine
Flask Application Factory.

Usage:
    from regenmark import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from regenmark.auth import init_auth
from regenmark.config import config
from regenmark.middleware.logging_config import configure_logging
from regenmark.middleware.rate_limiter import init_rate_limits
from regenmark.models import db

logger = logging.getLogger(__name__)


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
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)  # evidence uploads

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Caller identity (X-User-Id / X-User-Role) ────────────────────────
    init_auth(app)

    # ── Engine + document storage ────────────────────────────────────────
    from regenmark.scoring.engine import init_engine
    from regenmark.services.document_storage import init_document_storage

    init_engine(app)
    init_document_storage(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    import regenmark.models.audit  # noqa: F401
    import regenmark.models.certification  # noqa: F401
    import regenmark.models.evaluation  # noqa: F401
    import regenmark.models.notification  # noqa: F401
    import regenmark.models.owner  # noqa: F401

    # ── Auto-create tables (safe for production — CREATE IF NOT EXISTS) ──
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from regenmark.blueprints.admin_regenmark_bp import admin_regenmark_bp
    from regenmark.blueprints.regenmark_bp import regenmark_bp

    app.register_blueprint(regenmark_bp)
    app.register_blueprint(admin_regenmark_bp)

    init_rate_limits(app, limiter)

    # ── Scheduler ────────────────────────────────────────────────────────
    from regenmark.services.scheduler_service import SchedulerService

    SchedulerService.init_app(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("sweep-expirations")
    def sweep_expirations_cmd():
        """Run the expiry sweep once (for cron)."""
        outcome = SchedulerService.run_job("expiry_sweep")
        logger.info("expiry_sweep: %s", outcome)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok", "app": "RegenMark Certification Engine"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
