"""
Financing Application Portal
Notification Blueprint - the signed-in user's in-app notifications.

Endpoints:
    GET  /api/v1/notifications                (?unread_only=&limit=&offset=)
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

import logging

from flask import Blueprint, g, jsonify

from loan_portal.blueprints import pagination_args, query_flag
from loan_portal.middleware.actor_context import require_actor
from loan_portal.services.notification import NotificationService
from loan_portal.utils.errors import register_domain_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")
register_domain_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
@require_actor
def list_notifications():
    limit, offset = pagination_args(default_limit=10, max_limit=100)
    items, total = NotificationService.list_for_user(
        g.actor.id,
        unread_only=bool(query_flag("unread_only", False)),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(g.actor.id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_actor
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.actor.id)})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@require_actor
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, user_id=g.actor.id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_actor
def mark_all_read():
    count = NotificationService.mark_all_read(g.actor.id)
    return jsonify({"marked_read": count})
