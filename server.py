"""
Book & Move job distribution API.

``create_app`` builds the Flask application: configuration, database,
CORS, rate limiting, error handlers, blueprints and the background
scheduler.
"""

import os
import logging

from flask import Flask, jsonify
from flask_cors import CORS

from app_config import config
from errors import register_error_handlers
from extensions import limiter, notifier
from models import db
from routes import jobs_bp, notifications_bp, payments_bp, admin_bp
from scheduler import init_scheduler

_startup_logger = logging.getLogger("bookandmove.startup")

_CRITICAL_ENV_VARS = [
    "JWT_SECRET",
    "SECRET_KEY",
    "API_KEY",
    "DATABASE_URL",
]

_RECOMMENDED_ENV_VARS = [
    "RESEND_API_KEY",
    "CORS_ORIGINS",
    "COORDINATION_TEAM_EMAIL",
]


def _init_sentry():
    """Sentry error monitoring, only active when SENTRY_DSN is set."""
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return False
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )
    return True


def _check_environment(sentry_enabled):
    if os.environ.get("FLASK_ENV", "development") == "development":
        return
    missing_critical = [v for v in _CRITICAL_ENV_VARS if not os.environ.get(v)]
    missing_recommended = [v for v in _RECOMMENDED_ENV_VARS if not os.environ.get(v)]
    if missing_critical:
        _startup_logger.critical(
            "MISSING CRITICAL ENV VARS (app may not work correctly): %s",
            ", ".join(missing_critical),
        )
    if missing_recommended:
        _startup_logger.warning("Missing recommended env vars: %s", ", ".join(missing_recommended))
    if not sentry_enabled:
        _startup_logger.warning("SENTRY_DSN is not set -- error monitoring is disabled.")


def _allowed_origins(app):
    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "").split(",") if o.strip()]
    if not origins or origins == ["*"]:
        if not app.debug and not app.testing:
            _startup_logger.critical(
                "CORS_ORIGINS is '*' in a non-development environment; set an explicit list."
            )
        return "*"
    return origins


def create_app(config_name=None):
    """Flask application factory"""
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    if config_name != "testing":
        _check_environment(_init_sentry())

    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config["default"]))

    # Initialize extensions
    db.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": _allowed_origins(app)}})
    limiter.init_app(app)
    notifier.init_app(app)
    register_error_handlers(app)

    app.register_blueprint(jobs_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)

    @app.route("/api/health", methods=["GET"])
    @limiter.exempt
    def health_check():
        """Health check endpoint (exempt from rate limiting)"""
        return jsonify({"status": "healthy", "service": "Book & Move Job Distribution"}), 200

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'"
        return response

    with app.app_context():
        db.create_all()

    init_scheduler(app)
    return app
