"""
Typed failures raised by the job distribution engine.

State-machine conflicts are expected under concurrency. The HTTP layer maps
each one to a 4xx response through ``register_error_handlers``.
"""

import logging

from flask import jsonify

logger = logging.getLogger(__name__)


class EngineError(Exception):
    status_code = 400
    code = "engine_error"
    default_message = "Request could not be processed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {"success": False, "error": self.message, "code": self.code}


class NotFound(EngineError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class NotEligible(EngineError):
    status_code = 400
    code = "not_eligible"
    default_message = "Job is not eligible for this operation"


class AlreadyResolved(EngineError):
    status_code = 409
    code = "already_resolved"
    default_message = "This alert has already been responded to"


class AlreadyAssigned(EngineError):
    status_code = 409
    code = "already_assigned"
    default_message = "This job was already claimed"


class AlreadyClaimed(EngineError):
    status_code = 409
    code = "already_claimed"
    default_message = "Job is already assigned to another provider"


class NotClaimed(EngineError):
    status_code = 400
    code = "not_claimed"
    default_message = "Job must be claimed first"


def register_error_handlers(app):
    @app.errorhandler(EngineError)
    def handle_engine_error(e):
        logger.info("%s: %s", e.__class__.__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        # Retry-After header is set by Flask-Limiter; read it back.
        retry_after = dict(e.get_headers()).get("Retry-After") if hasattr(e, "get_headers") else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            "error": "Too many requests. Please try again later.",
            "retry_after": retry_after_seconds,
        }), 429
