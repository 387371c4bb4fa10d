"""
Payment collaborator hook for Book & Move.

The payment service calls this endpoint after a deposit charge succeeds.
Charge capture itself happens elsewhere.
"""

import logging

from flask import Blueprint, request, jsonify

from auth import require_api_key
from dispatch import confirm_deposit
from extensions import limiter

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("/deposit-confirmed", methods=["POST"])
@limiter.limit("60 per minute")
@require_api_key
def deposit_confirmed():
    """
    Record a successful deposit and dispatch the job.
    Body JSON: job_id (str), payment_intent_id (str, optional)
    """
    data = request.get_json(silent=True) or {}
    job_id = data.get("job_id")
    if not job_id:
        return jsonify({"error": "job_id is required"}), 400

    job, result = confirm_deposit(job_id, payment_intent_id=data.get("payment_intent_id"))
    return jsonify({
        "success": True,
        "job": job.to_dict(),
        "dispatch": result.to_dict() if result else None,
    }), 200
