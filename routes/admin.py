"""
Admin routes for job assignment and scheduler control.
Protected by role-based access (admin only).
"""

import logging

from flask import Blueprint, request, jsonify

from auth import require_admin
from dispatch import dispatch_job
from responses import assign_provider
from scheduler import TASKS, get_scheduler_status

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

_TASKS_BY_NAME = {task.__name__: task for task, _, _ in TASKS}


@admin_bp.route("/jobs/<job_id>/assign", methods=["PUT"])
@require_admin
def assign_job(user_id, job_id):
    """
    Bind a provider to a job, bypassing automatic dispatch.
    Body JSON: provider_id (str), status (str, optional), reassign (bool, optional)
    """
    data = request.get_json(silent=True) or {}
    provider_id = data.get("provider_id")
    if not provider_id:
        return jsonify({"error": "provider_id is required"}), 400

    job = assign_provider(
        job_id,
        provider_id,
        assigned_by_type="admin",
        assigned_by_id=user_id,
        status=data.get("status"),
        reassign=bool(data.get("reassign", False)),
    )
    logger.info("Admin %s assigned job %s to provider %s", user_id, job_id, provider_id)
    return jsonify({"success": True, "job": job.to_dict()}), 200


@admin_bp.route("/jobs/<job_id>/dispatch", methods=["POST"])
@require_admin
def dispatch(user_id, job_id):
    """Trigger an immediate dispatch for one job."""
    result = dispatch_job(job_id)
    return jsonify({"success": True, "dispatch": result.to_dict()}), 200


@admin_bp.route("/scheduler", methods=["GET"])
@require_admin
def scheduler_status(user_id):
    return jsonify({"success": True, "scheduler": get_scheduler_status()}), 200


@admin_bp.route("/scheduler/<task_name>/run", methods=["POST"])
@require_admin
def run_scheduler_task(user_id, task_name):
    """Run one reconciliation sweep now, in the request."""
    task = _TASKS_BY_NAME.get(task_name)
    if task is None:
        return jsonify({"error": "Unknown task"}), 404

    stats = task()
    logger.info("Admin %s ran scheduler task %s", user_id, task_name)
    return jsonify({"success": True, "task": task_name, "stats": stats}), 200
