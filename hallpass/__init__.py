"""
Application factory for Hall Pass Hub.

This module provides create_app() which initializes Flask, extensions,
logging, and registers blueprints and the nightly pass reset.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, request
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, registers blueprints and starts the daily pass reset.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PASS_RESET_TIMEZONE=os.getenv("PASS_RESET_TIMEZONE", "America/Los_Angeles"),
    )

    # -------------------- EXTENSIONS --------------------
    from hallpass.extensions import db, migrate, csrf, limiter

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    # The scheduler logs outside any request, on its own logger
    scheduler_logger = logging.getLogger("scheduled_tasks")
    scheduler_logger.setLevel(log_level)
    if not scheduler_logger.handlers:
        scheduler_logger.addHandler(stream_handler)

    if os.getenv("FLASK_ENV", app.config.get("ENV")) == "production":
        log_file = os.getenv("LOG_FILE", "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)
        scheduler_logger.addHandler(file_handler)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from hallpass.routes.main import main_bp
    from hallpass.routes.api import api_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)

    # JSON clients authenticate by session cookie and post no form token
    csrf.exempt(api_bp)

    # -------------------- ERROR HANDLERS --------------------
    from hallpass.errors import register_app_error_handlers
    register_app_error_handlers(app)

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """Add basic security headers to all HTTP responses."""
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # -------------------- CLI COMMANDS --------------------
    from hallpass import cli_commands
    cli_commands.init_app(app)

    # -------------------- SCHEDULED TASKS --------------------
    if not app.config.get("TESTING") and app.config.get("ENV") != "testing":
        from hallpass.scheduled_tasks import init_scheduled_tasks
        init_scheduled_tasks(app)

    return app


# Create a default application instance for compatibility with legacy imports
app = create_app()

# Re-export commonly used objects for convenience
from hallpass.extensions import db  # noqa: E402
from hallpass.models import School, Grade, Teacher, Student, Pass, PassStatus, PassType  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
    "School",
    "Grade",
    "Teacher",
    "Student",
    "Pass",
    "PassStatus",
    "PassType",
]
