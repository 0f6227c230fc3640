"""
Financing Application Portal
Flask Application Factory.

Usage:
    from loan_portal import create_app
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
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from loan_portal.config import config
from loan_portal.models import db
from loan_portal.middleware.actor_context import init_actor_context
from loan_portal.middleware.logging_config import configure_logging
from loan_portal.middleware.rate_limiter import init_rate_limits
from loan_portal.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit - apply per-blueprint
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
    app.config.from_object(config[config_name]())

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

    # ── Request timing + actor resolution ────────────────────────────────
    init_request_timing(app)
    init_actor_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from loan_portal.models import directory as _directory_models        # noqa: F401
    from loan_portal.models import auth as _auth_models                  # noqa: F401
    from loan_portal.models import assignment as _assignment_models      # noqa: F401
    from loan_portal.models import application as _application_models    # noqa: F401
    from loan_portal.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("SQLALCHEMY_DATABASE_URI", "").startswith("sqlite:///") and not app.testing:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from loan_portal.blueprints.admin_bp import admin_bp
    from loan_portal.blueprints.applications_bp import applications_bp
    from loan_portal.blueprints.directory_bp import directory_bp
    from loan_portal.blueprints.health_bp import health_bp
    from loan_portal.blueprints.notification_bp import notification_bp

    app.register_blueprint(applications_bp)
    app.register_blueprint(directory_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── Lifecycle event subscribers ──────────────────────────────────────
    from loan_portal.services.notification import init_notification_dispatch
    init_notification_dispatch(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed demo districts, branches, products, users and assignments."""
        from loan_portal.services.demo_seed import seed_demo
        result = seed_demo()
        click.echo(f"Demo seed: {result}")

    @app.cli.command("issue-token")
    @click.argument("user_id", type=int)
    def issue_token_cmd(user_id):
        """Print a short-lived access token for USER_ID (development sign-in)."""
        from loan_portal.services.jwt_service import generate_access_token
        from loan_portal.services.user_service import get_user
        user = get_user(user_id)
        click.echo(generate_access_token(user.id, user.role))

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
