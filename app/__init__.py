"""
Application factory for DeviceHub, the device lending service.

Usage::

    from app import create_app
    app = create_app()           # Uses FLASK_ENV to pick config.
    app = create_app("testing")  # Explicit config for tests.
"""

import logging
import os

from flask import Flask
from werkzeug.exceptions import HTTPException

from .config import config_by_name
from .exceptions import DeviceHubError
from .extensions import csrf, db, login_manager, migrate

logger = logging.getLogger(__name__)


def create_app(config_name: str | None = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: One of 'development', 'testing', or 'production'.
                     Defaults to the FLASK_ENV environment variable,
                     falling back to 'development'.

    Returns:
        A fully configured Flask application instance.
    """
    # Resolve the configuration class.
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")
    config_class = config_by_name.get(config_name)
    if config_class is None:
        raise ValueError(
            f"Unknown config '{config_name}'. "
            f"Valid options: {list(config_by_name.keys())}"
        )

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Refuse to run production with insecure defaults.
    if config_name == "production":
        config_class.validate_production_secrets(app.config)

    # -- Configure logging -------------------------------------------------
    _configure_logging(app)

    # -- Initialize extensions ---------------------------------------------
    _register_extensions(app)

    # -- Register blueprints -----------------------------------------------
    _register_blueprints(app)

    # -- Register error handlers -------------------------------------------
    _register_error_handlers(app)

    # -- Register custom CLI commands --------------------------------------
    _register_cli_commands(app)

    # -- Notification receivers --------------------------------------------
    from .services.notification_service import (  # pylint: disable=import-outside-toplevel
        register_receivers,
    )

    register_receivers(app)

    logger.info("DeviceHub started with '%s' configuration", config_name)
    return app


def _register_extensions(app: Flask) -> None:
    """Bind all Flask extensions to the application instance."""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    # Register the Flask-Login user loader callback.
    # Imported here to avoid circular imports with models.
    from .models.user import User  # pylint: disable=import-outside-toplevel

    @login_manager.user_loader
    def load_user(user_id: str):
        """Load an active user by primary key for session management."""
        user = db.session.get(User, int(user_id))
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        """API clients get a JSON 401 instead of a login redirect."""
        return _error_payload(401, "Unauthorized", "Authentication required."), 401


def _register_blueprints(app: Flask) -> None:
    """
    Import and register each blueprint with its URL prefix.

    Blueprints are imported inside this function to avoid circular
    imports — models and services can safely import ``db`` from
    extensions at module level.
    """
    # pylint: disable=import-outside-toplevel

    # Main blueprint — health check.
    from .blueprints.main import bp as main_bp

    app.register_blueprint(main_bp)

    # Authentication — dev login, logout, identity, CSRF token.
    from .blueprints.auth import bp as auth_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")

    # Devices — registry CRUD, stats, history, request submission.
    from .blueprints.devices import bp as devices_bp

    app.register_blueprint(devices_bp, url_prefix="/devices")

    # Requests — listing, resolution, cancellation.
    from .blueprints.requests import bp as requests_bp

    app.register_blueprint(requests_bp, url_prefix="/requests")

    # Admin — audit logs.
    from .blueprints.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/admin")


def _error_payload(status: int, title: str, detail: str) -> dict:
    return {"error": {"status": status, "title": title, "detail": detail}}


def _register_error_handlers(app: Flask) -> None:
    """Render every error as JSON with the same envelope."""

    @app.errorhandler(DeviceHubError)
    def handle_domain_error(error: DeviceHubError):
        """Service-layer errors carry their own status and title."""
        return error.to_dict(), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        """404/405/400 raised by Flask or by ``abort()``."""
        return _error_payload(error.code, error.name, error.description), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # pylint: disable=unused-argument
        """Anything else is a bug: roll back and hide the details."""
        db.session.rollback()
        logger.exception("Unhandled exception")
        return _error_payload(500, "Internal Server Error", "Unexpected error"), 500


def _register_cli_commands(app: Flask) -> None:
    """Register custom Flask CLI commands (e.g., flask db-check)."""
    # pylint: disable=import-outside-toplevel
    from .cli import register_commands
    from .seed_dev_users import register_seed_commands

    register_commands(app)
    register_seed_commands(app)


def _configure_logging(app: Flask) -> None:
    """Set the root log level from ``LOG_LEVEL``."""
    log_level = app.config.get("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # SQL echo is controlled by SQLALCHEMY_ECHO, not the root level.
    if app.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
