"""
Book & Move API Route Blueprints
"""
from .jobs import jobs_bp
from .notifications import notifications_bp
from .payments import payments_bp
from .admin import admin_bp

__all__ = [
    "jobs_bp",
    "notifications_bp",
    "payments_bp",
    "admin_bp",
]
