"""
Shared Flask extension instances.

Created as a separate module to avoid circular imports when route
blueprints and engine modules need extensions initialised in server.py.
"""

import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from notifications import EmailNotifier

# Redis-backed rate-limit storage when REDIS_URL is set, in-memory otherwise
_storage_uri = os.environ.get("REDIS_URL") or "memory://"

# Limiter is created without an app; init_app() is called in server.py.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri,
    default_limits=["120 per minute"],
)

# Engine code reaches this through notifications.get_notifier()
notifier = EmailNotifier()
