"""
Provider-facing job distribution routes for Book & Move.
"""

from flask import Blueprint, request, jsonify

from auth import require_provider
from completion import start_job, complete_job
from extensions import limiter
from matching import get_available_jobs_for_provider
from models import db, JobAlert, Provider, ALERT_STATUSES
from responses import respond_to_alert, mark_alert_viewed

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


def _optional_number(data, key):
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(key)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(key)


# ---------------------------------------------------------------------------
# GET /api/jobs/available
# ---------------------------------------------------------------------------
@jobs_bp.route("/available", methods=["GET"])
@require_provider
def available_jobs(user_id):
    """Open, paid jobs inside the provider's service areas."""
    provider = db.session.get(Provider, user_id)
    jobs = get_available_jobs_for_provider(provider)
    return jsonify({
        "success": True,
        "count": len(jobs),
        "jobs": [job.to_dict() for job in jobs],
    }), 200


# ---------------------------------------------------------------------------
# GET /api/jobs/alerts
# ---------------------------------------------------------------------------
@jobs_bp.route("/alerts", methods=["GET"])
@require_provider
def list_alerts(user_id):
    """
    Paginated alerts for the authenticated provider, newest first.
    Query params: page, limit, status.
    """
    page = request.args.get("page", 1, type=int)
    limit = min(request.args.get("limit", 10, type=int), 100)
    status = request.args.get("status")

    query = JobAlert.query.filter_by(provider_id=user_id)
    if status:
        if status not in ALERT_STATUSES:
            return jsonify({"error": "Invalid status filter"}), 400
        query = query.filter_by(status=status)

    pagination = query.order_by(JobAlert.sent_at.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    return jsonify({
        "success": True,
        "alerts": [alert.to_dict(include_job=True) for alert in pagination.items],
        "total": pagination.total,
        "page": pagination.page,
        "pages": pagination.pages,
    }), 200


# ---------------------------------------------------------------------------
# POST /api/jobs/alerts/<alert_id>/view
# ---------------------------------------------------------------------------
@jobs_bp.route("/alerts/<alert_id>/view", methods=["POST"])
@require_provider
def view_alert(user_id, alert_id):
    alert = mark_alert_viewed(alert_id, provider_id=user_id)
    return jsonify({"success": True, "alert": alert.to_dict()}), 200


# ---------------------------------------------------------------------------
# POST /api/jobs/alerts/<alert_id>/respond
# ---------------------------------------------------------------------------
@jobs_bp.route("/alerts/<alert_id>/respond", methods=["POST"])
@limiter.limit("30 per minute")
@require_provider
def respond(user_id, alert_id):
    """
    Accept or decline a job alert.
    Body: { interested: bool, message?, estimated_price?, estimated_time? }
    The first provider to accept wins the job.
    """
    data = request.get_json(silent=True) or {}
    if "interested" not in data or not isinstance(data["interested"], bool):
        return jsonify({"error": "interested (boolean) is required"}), 400

    try:
        estimated_price = _optional_number(data, "estimated_price")
        estimated_time = _optional_number(data, "estimated_time")
    except ValueError as e:
        return jsonify({"error": "{} must be a number".format(e)}), 400

    alert = respond_to_alert(
        alert_id,
        {
            "interested": data["interested"],
            "message": data.get("message"),
            "estimated_price": estimated_price,
            "estimated_time": estimated_time,
        },
        provider_id=user_id,
    )
    message = "Job claimed successfully" if data["interested"] else "Response recorded"
    return jsonify({"success": True, "message": message, "alert": alert.to_dict(include_job=True)}), 200


# ---------------------------------------------------------------------------
# PUT /api/jobs/alerts/<alert_id>/start
# ---------------------------------------------------------------------------
@jobs_bp.route("/alerts/<alert_id>/start", methods=["PUT"])
@require_provider
def start(user_id, alert_id):
    job = start_job(alert_id, provider_id=user_id)
    return jsonify({"success": True, "job": job.to_dict()}), 200


# ---------------------------------------------------------------------------
# PUT /api/jobs/alerts/<alert_id>/complete
# ---------------------------------------------------------------------------
@jobs_bp.route("/alerts/<alert_id>/complete", methods=["PUT"])
@require_provider
def complete(user_id, alert_id):
    """Mark a claimed job completed. Body: { final_cost?, completion_notes? }"""
    data = request.get_json(silent=True) or {}
    try:
        final_cost = _optional_number(data, "final_cost")
    except ValueError:
        return jsonify({"error": "final_cost must be a number"}), 400

    alert, summary = complete_job(
        alert_id,
        provider_id=user_id,
        final_cost=final_cost,
        completion_notes=data.get("completion_notes"),
    )
    return jsonify({
        "success": True,
        "message": "Job marked as completed",
        "alert": alert.to_dict(include_job=True),
        "summary": summary,
    }), 200
