"""
Notification inbox blueprint.

Endpoints:
    GET  /api/v1/users/<user_id>/notifications            — newest first
    GET  /api/v1/users/<user_id>/notifications/unread-count
    POST /api/v1/users/<user_id>/notifications/read-all
"""

import logging

from flask import Blueprint, jsonify, request

from partnerhub.services.notification import NotificationService

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")


@notification_bp.route("/users/<int:user_id>/notifications", methods=["GET"])
def list_notifications(user_id):
    """Query params: unread_only (bool), limit (max 200), offset."""
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_user(user_id, unread_only, limit, offset)
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/users/<int:user_id>/notifications/unread-count", methods=["GET"])
def unread_count(user_id):
    return jsonify({"unread_count": NotificationService.unread_count(user_id)})


@notification_bp.route("/users/<int:user_id>/notifications/read-all", methods=["POST"])
def mark_all_read(user_id):
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"marked_read": count})
