"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to load the metadata without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise SQLAlchemy via init_app()
  3. Configure logging: the app logger is "trackvote.app", so every
     service module logger (trackvote.app.services.*) propagates to it
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, store outage → 503,
     Exception → 500)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, jsonify, request
from marshmallow import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError
from werkzeug.exceptions import HTTPException

from trackvote.config import config_by_name, validate_production_config


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from trackvote.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from trackvote.app.models import (  # noqa: F401
            group,
            group_week,
            membership,
            track,
            user,
            vote,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    groups_bp, weeks_bp and voting_bp share /api/v1/groups; each owns a
    distinct set of sub-paths under /groups/<id>.
    """
    from trackvote.app.routes.catalog import catalog_bp
    from trackvote.app.routes.groups import groups_bp
    from trackvote.app.routes.users import users_bp
    from trackvote.app.routes.voting import voting_bp
    from trackvote.app.routes.weeks import weeks_bp

    app.register_blueprint(groups_bp,  url_prefix="/api/v1/groups")
    app.register_blueprint(weeks_bp,   url_prefix="/api/v1/groups")
    app.register_blueprint(voting_bp,  url_prefix="/api/v1/groups")
    app.register_blueprint(catalog_bp, url_prefix="/api/v1/catalog")
    app.register_blueprint(users_bp,   url_prefix="/api/v1/users")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      OperationalError / InterfaceError
                      → STORE_UNAVAILABLE (503) for routes that reach the
                        database outside voting_session
      Exception       → generic INTERNAL_ERROR (500); traceback logged

    Stack traces never leave the server.
    """
    from trackvote.app.errors import AppError, ErrorCode, StoreUnavailableError
    from trackvote.app.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.http_status >= 500:
            app.logger.warning("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST error is returned. If the message is a registered
        ErrorCode constant it becomes the code; otherwise MISSING_FIELD or
        INVALID_FIELD is used.
        """
        messages = error.messages  # e.g. {"week_end": ["INVALID_WEEK_RANGE"]}

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None
                raw_message = _first_message(field_errors)
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."

        known_codes = vars(ErrorCode).values()
        if raw_message in known_codes:
            code = raw_message
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": _code_to_message(code) if raw_message in known_codes else raw_message,
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(OperationalError)
    @app.errorhandler(InterfaceError)
    def handle_store_error(error: Exception):
        db.session.rollback()
        app.logger.error("Store unavailable: %s", error)
        unavailable = StoreUnavailableError()
        return jsonify(unavailable.to_dict()), unavailable.http_status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body. Werkzeug HTTP errors
        (404 unknown route, 405 wrong method) keep their own status.
        """
        if isinstance(error, HTTPException):
            return jsonify({
                "error": {
                    "code": ErrorCode.INVALID_FIELD if error.code == 400 else error.name.upper().replace(" ", "_"),
                    "message": error.description,
                }
            }), error.code

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            # Reflect origin when present so bearer-auth requests from local
            # dev servers are accepted by browsers.
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _first_message(field_errors) -> str:
    """Digs the first message out of marshmallow's nested error structure."""
    while isinstance(field_errors, dict):
        if not field_errors:
            return "Invalid value."
        field_errors = next(iter(field_errors.values()))
    if isinstance(field_errors, list):
        return str(field_errors[0]) if field_errors else "Invalid value."
    return str(field_errors)


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself
    (e.g. INVALID_WEEK_RANGE raised in StartWeekSchema).
    """
    _messages = {
        "INVALID_WEEK_RANGE": "week_end must be after week_start.",
    }
    return _messages.get(code, "Invalid input.")
