"""
Partner Hub — Escalation Engine
Flask Application Factory.

Usage:
    from partnerhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import atexit
import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from partnerhub.config import config
from partnerhub.models import db
from partnerhub.middleware.logging_config import configure_logging
from partnerhub.middleware.timing import init_request_timing
from partnerhub.middleware.rate_limiter import init_rate_limits

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
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
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
    app.config.from_object(config[config_name])
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import request as _req, abort
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from partnerhub.models import organization as _organization_models  # noqa: F401
    from partnerhub.models import project as _project_models            # noqa: F401
    from partnerhub.models import escalation as _escalation_models      # noqa: F401
    from partnerhub.models import notification as _notification_models  # noqa: F401
    from partnerhub.models import scheduling as _scheduling_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from partnerhub.blueprints.escalation_bp import escalation_bp
    from partnerhub.blueprints.scheduler_bp import scheduler_bp
    from partnerhub.blueprints.sms_settings_bp import sms_settings_bp
    from partnerhub.blueprints.notification_bp import notification_bp
    from partnerhub.blueprints.health_bp import health_bp

    app.register_blueprint(escalation_bp)
    app.register_blueprint(scheduler_bp)
    app.register_blueprint(sms_settings_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-escalation-rules")
    @click.argument("organization_id", type=int)
    def seed_escalation_rules_cmd(organization_id):
        """Seed the default escalation rules for an organization."""
        from partnerhub.services.escalation_rule_service import seed_default_rules
        created = seed_default_rules(organization_id)
        logger.info("Seeded %s new escalation rules.", len(created))

    @app.cli.command("run-escalation-check")
    @click.option("--project-id", type=int, default=None)
    @click.option("--organization-id", type=int, default=None)
    def run_escalation_check_cmd(project_id, organization_id):
        """Run one escalation sweep now."""
        from partnerhub.services.escalation_service import run_escalation_check
        summary = run_escalation_check(project_id=project_id, organization_id=organization_id)
        click.echo(f"{summary['tasks_checked']} task(s) checked, "
                   f"{summary['escalations_triggered']} escalation(s) triggered")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("partnerhub.services.scheduled_jobs")  # registers @register_job handlers
    from partnerhub.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)
    _SchedulerSvc.ensure_jobs_registered()

    if app.config.get("SCHEDULER_ENABLED"):
        _SchedulerSvc.start()
        atexit.register(_SchedulerSvc.shutdown)

    return app
