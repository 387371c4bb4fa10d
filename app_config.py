import os
import secrets
import logging

from dotenv import load_dotenv

load_dotenv()


def _require_in_production(var_name, default):
    """Return env var value. In production, warn loudly if still using default."""
    value = os.environ.get(var_name, "")
    if value:
        return value
    env = os.environ.get("FLASK_ENV", "development")
    if env != "development" and default:
        logging.getLogger(__name__).warning(
            "%s is using an insecure default. Set it via environment variable!", var_name
        )
    return default


def _database_url():
    url = os.environ.get("DATABASE_URL", "")
    if not url:
        return "sqlite:///bookandmove.db"
    # Fix postgres:// to postgresql:// for SQLAlchemy 2.x
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Application configuration"""

    # Flask
    SECRET_KEY = _require_in_production(
        'SECRET_KEY', 'dev-only-' + secrets.token_hex(16)
    )
    DEBUG = os.environ.get('FLASK_ENV', 'development') == 'development'
    TESTING = False

    # Internal API key used by the payment collaborator
    API_KEY = _require_in_production(
        'API_KEY', 'dev-only-' + secrets.token_hex(16)
    )

    # JWT Authentication
    JWT_SECRET = _require_in_production(
        'JWT_SECRET', 'dev-only-' + secrets.token_hex(32)
    )

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Rate limiting
    RATELIMIT_ENABLED = True

    # Email: Resend (preferred) or SendGrid (legacy)
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY', '')
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
    EMAIL_FROM = os.environ.get('EMAIL_FROM', 'bookings@bookandmove.com')
    EMAIL_FROM_NAME = os.environ.get('EMAIL_FROM_NAME', 'Book & Move')
    EMAIL_ASYNC = True
    COORDINATION_TEAM_EMAIL = os.environ.get('COORDINATION_TEAM_EMAIL', 'support@bookandmove.com')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'https://bookandmove.com')

    # Scheduler
    ENABLE_SCHEDULER = os.environ.get('ENABLE_SCHEDULER', '').lower() == 'true'
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'America/New_York')
    DISPATCH_SWEEP_MINUTES = int(os.environ.get('DISPATCH_SWEEP_MINUTES', '2'))
    EXPIRED_ALERT_SWEEP_MINUTES = int(os.environ.get('EXPIRED_ALERT_SWEEP_MINUTES', '15'))
    EXPIRED_ASSIGNMENT_SWEEP_MINUTES = int(os.environ.get('EXPIRED_ASSIGNMENT_SWEEP_MINUTES', '30'))
    UNPAID_PURGE_MINUTES = int(os.environ.get('UNPAID_PURGE_MINUTES', '30'))
    LONG_DISTANCE_SWEEP_MINUTES = int(os.environ.get('LONG_DISTANCE_SWEEP_MINUTES', '5'))

    # Job distribution tunables
    MATCH_CANDIDATE_LIMIT = 20
    ALERT_TTL_HOURS = 24
    NO_CANDIDATE_EXTENSION_HOURS = 24
    DISPATCH_IDEMPOTENCY_MINUTES = 30
    REALERT_AFTER_HOURS = 2
    UNPAID_GRACE_MINUTES = 30

    # Server
    PORT = int(os.environ.get('PORT', '8080'))


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""

    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')

    SECRET_KEY = 'test-secret-key'
    JWT_SECRET = 'test-jwt-secret'
    API_KEY = 'test-api-key'

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    ENABLE_SCHEDULER = False
    EMAIL_ASYNC = False
    RESEND_API_KEY = ''
    SENDGRID_API_KEY = ''

    CORS_ORIGINS = 'http://localhost:3000'


config = {
    'development': Config,
    'production': Config,
    'testing': TestingConfig,
    'default': Config,
}
