"""
Defect Tracker
Flask Application Factory.

Usage:
    from defect_tracker import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from defect_tracker.config import config
from defect_tracker.middleware.jwt_auth import init_jwt_middleware
from defect_tracker.middleware.logging_config import configure_logging
from defect_tracker.middleware.rate_limiter import init_rate_limits
from defect_tracker.middleware.timing import init_request_timing
from defect_tracker.models import db
from defect_tracker.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def _ensure_sqlite_dir(uri: str | None):
    if uri and uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]) or ".", exist_ok=True)


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

    app = Flask(__name__)
    app.config.from_object(config[config_name]())
    app.config["RATELIMIT_ENABLED"] = app.config.get("RATELIMIT_ENABLED", True) and not app.testing

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    _ensure_sqlite_dir(app.config.get("SQLALCHEMY_DATABASE_URI"))
    db.init_app(app)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware ──────────────────────────────────────────────
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so create_all sees them ────────────────────────
    from defect_tracker.models import auth as _auth_models                  # noqa: F401
    from defect_tracker.models import defect as _defect_models              # noqa: F401
    from defect_tracker.models import notification as _notification_models  # noqa: F401
    from defect_tracker.models import project as _project_models            # noqa: F401
    from defect_tracker.models import release as _release_models            # noqa: F401

    # ── Create tables (CREATE IF NOT EXISTS) ─────────────────────────────
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from defect_tracker.blueprints.auth_bp import auth_bp
    from defect_tracker.blueprints.dashboard_bp import dashboard_bp
    from defect_tracker.blueprints.defect_bp import defect_bp
    from defect_tracker.blueprints.health_bp import health_bp
    from defect_tracker.blueprints.lookup_bp import lookup_bp
    from defect_tracker.blueprints.privilege_bp import privilege_bp
    from defect_tracker.blueprints.project_bp import project_bp
    from defect_tracker.blueprints.release_bp import release_bp
    from defect_tracker.blueprints.user_bp import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(defect_bp)
    app.register_blueprint(release_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(privilege_bp)
    app.register_blueprint(lookup_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-defaults")
    def seed_defaults_cmd():
        """Seed severities, priorities, statuses, types, roles and privileges."""
        from defect_tracker.services.seed_service import seed_defaults
        created = seed_defaults()
        click.echo(f"Seeded: {created}")

    @app.cli.command("create-admin")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--first-name", default="System")
    @click.option("--last-name", default="Admin")
    def create_admin_cmd(email, password, first_name, last_name):
        """Create a user holding every privilege project-independently."""
        from defect_tracker.services.seed_service import grant_all_privileges, seed_defaults
        from defect_tracker.services.user_service import create_user
        seed_defaults()
        user = create_user(
            {"first_name": first_name, "last_name": last_name,
             "email": email, "password": password},
            notify=False,
        )
        granted = grant_all_privileges(user)
        click.echo(f"Admin {user.username} <{user.email}> created with {granted} privileges")

    logger.debug("Application created with config '%s'", config_name)
    return app
