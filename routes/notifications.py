"""
In-app notification inbox routes for customers and providers.
"""

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_

from auth import require_auth, recipient_type_for_role
from models import db, Notification, utcnow

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _inbox_query(user_id):
    """Notifications for the caller that have not expired."""
    return Notification.query.filter(
        Notification.recipient_id == user_id,
        Notification.recipient_type == recipient_type_for_role(g.user_role),
        or_(Notification.expires_at.is_(None), Notification.expires_at > utcnow()),
    )


def _get_owned(user_id, notification_id):
    notification = db.session.get(Notification, notification_id)
    if (
        notification is None
        or notification.recipient_id != user_id
        or notification.recipient_type != recipient_type_for_role(g.user_role)
    ):
        return None
    return notification


@notifications_bp.route("", methods=["GET"])
@require_auth
def list_notifications(user_id):
    """
    List the caller's notifications, most recent first.
    Query params: page, limit, unread_only.
    """
    page = request.args.get("page", 1, type=int)
    limit = min(request.args.get("limit", 20, type=int), 100)
    unread_only = request.args.get("unread_only", "false").lower() == "true"

    query = _inbox_query(user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    pagination = query.order_by(Notification.created_at.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    unread_count = _inbox_query(user_id).filter(Notification.is_read.is_(False)).count()

    return jsonify({
        "success": True,
        "notifications": [n.to_dict() for n in pagination.items],
        "unread_count": unread_count,
        "total": pagination.total,
        "page": pagination.page,
        "pages": pagination.pages,
    }), 200


@notifications_bp.route("/<notification_id>/read", methods=["PUT"])
@require_auth
def mark_read(user_id, notification_id):
    """Mark a single notification as read."""
    notification = _get_owned(user_id, notification_id)
    if notification is None:
        return jsonify({"error": "Notification not found"}), 404

    notification.mark_read()
    db.session.commit()
    return jsonify({"success": True, "notification": notification.to_dict()}), 200


@notifications_bp.route("/read-all", methods=["PUT"])
@require_auth
def mark_all_read(user_id):
    """Mark all of the caller's notifications as read."""
    updated = Notification.query.filter(
        Notification.recipient_id == user_id,
        Notification.recipient_type == recipient_type_for_role(g.user_role),
        Notification.is_read.is_(False),
    ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    db.session.commit()
    return jsonify({"success": True, "updated": updated}), 200


@notifications_bp.route("/unread-count", methods=["GET"])
@require_auth
def unread_count(user_id):
    count = _inbox_query(user_id).filter(Notification.is_read.is_(False)).count()
    return jsonify({"success": True, "unread_count": count}), 200


@notifications_bp.route("/<notification_id>", methods=["DELETE"])
@require_auth
def delete_notification(user_id, notification_id):
    notification = _get_owned(user_id, notification_id)
    if notification is None:
        return jsonify({"error": "Notification not found"}), 404

    db.session.delete(notification)
    db.session.commit()
    return jsonify({"success": True}), 200
