import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime

import click
from flask import Flask, jsonify, request, has_request_context
from flask_login import current_user

from .extensions import db, migrate, login_manager, csrf, mail, babel, feed
from .config import Config
from .models.user import User

# Blueprints
from .blueprints.errors import errors_bp
from .blueprints.auth import auth_bp
from .blueprints.tasks import tasks_bp
from .blueprints.presence import presence_bp
from .blueprints.notifications import notifications_bp
from .blueprints.points import points_bp
from .blueprints.extensions import extensions_bp
from .blueprints.admin import admin_bp


# Optional: Sentry
def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            environment=os.getenv("ENV", "development"),
            release=app.config.get("APP_VERSION"),
            send_default_pii=False,
        )
        app.logger.info("Sentry initialized.")
    except Exception as e:
        app.logger.warning(f"Sentry init failed: {e}")


def _init_logging(app):
    level_name = app.config.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    log_dir = Path(app.config.get("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / app.config.get("LOG_FILENAME", "teamhub.log")

    # Formatter: text or JSON
    if app.config.get("LOG_JSON", False):
        try:
            import json_log_formatter
            formatter = json_log_formatter.JSONFormatter()
        except ImportError:
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    # Service modules log under "teamhub.*"; the package logger gets the handlers
    pkg_logger = logging.getLogger(__name__)
    pkg_logger.setLevel(level)
    app.logger.setLevel(level)

    # Rotating file handler (5MB x 5); one set per process even with several apps (tests)
    if not any(isinstance(h, RotatingFileHandler) for h in pkg_logger.handlers):
        file_handler = RotatingFileHandler(
            log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8", delay=True
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        pkg_logger.addHandler(file_handler)

        # Stream to stdout as well (useful on dev/docker)
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        pkg_logger.addHandler(stream_handler)

    app.logger.info("Logging initialized.")


def _register_cli(app):
    from .services import notification_service, points_service, presence_service

    @app.cli.command("init-db")
    def init_db():
        """Create all tables (development convenience; production uses migrations)."""
        db.create_all()
        click.echo("Tables created.")

    @app.cli.command("presence-sweep")
    def presence_sweep():
        """Mark clocked-in users idle once their last activity is past the threshold."""
        changed = presence_service.sweep_idle(datetime.utcnow())
        click.echo(f"{changed} user(s) marked idle.")

    @app.cli.command("reconcile-points")
    def reconcile_points():
        """Recompute cached balances from the ledger and repair drift."""
        fixed = points_service.reconcile()
        for row in fixed:
            click.echo(f"user {row['user_id']}: cached={row['cached']} actual={row['actual']}")
        click.echo(f"{len(fixed)} balance(s) repaired.")

    @app.cli.command("send-due-reminders")
    @click.option("--hours", type=int, default=None, help="Reminder window (defaults to DUE_REMINDER_HOURS).")
    def send_due_reminders(hours):
        """Notify assignees of open tasks that are due soon."""
        created = notification_service.send_due_reminders(datetime.utcnow(), hours)
        click.echo(f"{len(created)} reminder(s) sent.")


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    app.config.from_pyfile("config.py", silent=True)

    app.config.setdefault("LANGUAGES", ["en", "fr", "de", "sw"])
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)

    # Logging must come before blueprints so errors during register are captured
    _init_logging(app)
    _init_sentry(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    mail.init_app(app)
    feed.init_app(app, db)

    # Locale from user preference, then Accept-Language. CLI commands render
    # notification text outside a request and get the default locale.
    def _select_locale():
        if not has_request_context():
            return None
        if getattr(current_user, "is_authenticated", False) and current_user.language:
            return current_user.language
        return request.accept_languages.best_match(app.config.get("LANGUAGES", ["en"]))
    babel.init_app(app, locale_selector=_select_locale)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"error": "Please sign in to continue.", "detail": None}), 401

    app.register_blueprint(errors_bp)  # error handlers
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(tasks_bp, url_prefix="/tasks")
    app.register_blueprint(presence_bp, url_prefix="/presence")
    app.register_blueprint(notifications_bp, url_prefix="/notifications")
    app.register_blueprint(points_bp, url_prefix="/points")
    app.register_blueprint(extensions_bp, url_prefix="/extension-requests")
    app.register_blueprint(admin_bp, url_prefix="/admin")

    _register_cli(app)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "version": app.config.get("APP_VERSION")})

    return app
