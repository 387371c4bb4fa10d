"""
Authentication helpers for Book & Move.

Accounts are managed elsewhere; this module only issues and verifies the
bearer tokens the job distribution API accepts. A token carries ``user_id``
and ``role`` (customer, provider or admin). Provider tokens resolve against
the providers table, everything else against users.
"""

import datetime
import logging
from functools import wraps

import jwt
from flask import request, jsonify, current_app, g

from models import db, User, Provider

logger = logging.getLogger(__name__)

ROLES = ("customer", "provider", "admin")


def generate_token(user_id, role="customer", expires_in=datetime.timedelta(days=30)):
    """Generate a JWT for a user or provider"""
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": datetime.datetime.now(datetime.timezone.utc) + expires_in,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")


def verify_token(token):
    """Verify a JWT and return its payload, or None"""
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def _account_exists(user_id, role):
    if role == "provider":
        provider = db.session.get(Provider, user_id)
        return provider is not None and bool(provider.is_active)
    user = db.session.get(User, user_id)
    if user is None:
        return False
    return role != "admin" or user.role == "admin"


def require_auth(f):
    """Decorator to require authentication. Passes ``user_id``; role is on ``g``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        payload = verify_token(token) if token else None
        if not payload or not payload.get("user_id"):
            return jsonify({"error": "Unauthorized"}), 401

        user_id = payload["user_id"]
        role = payload.get("role", "customer")
        if role not in ROLES or not _account_exists(user_id, role):
            return jsonify({"error": "Unauthorized"}), 401

        g.user_role = role
        return f(user_id=user_id, *args, **kwargs)
    return decorated_function


def require_provider(f):
    """Wrap require_auth and additionally check for a provider token."""
    @wraps(f)
    @require_auth
    def wrapper(user_id, *args, **kwargs):
        if g.user_role != "provider":
            return jsonify({"error": "Provider access required"}), 403
        return f(user_id=user_id, *args, **kwargs)
    return wrapper


def require_admin(f):
    """Wrap require_auth and additionally check that the user has admin role."""
    @wraps(f)
    @require_auth
    def wrapper(user_id, *args, **kwargs):
        if g.user_role != "admin":
            return jsonify({"error": "Admin access required"}), 403
        return f(user_id=user_id, *args, **kwargs)
    return wrapper


def require_api_key(f):
    """Internal collaborator hook, authenticated with the X-API-Key header."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = request.headers.get("X-API-Key")
        if not api_key or api_key != current_app.config["API_KEY"]:
            logger.warning("Rejected request to %s with invalid API key", request.path)
            return jsonify({"error": "Invalid or missing API key"}), 401
        return f(*args, **kwargs)
    return decorated_function


def recipient_type_for_role(role):
    return "provider" if role == "provider" else "user"
