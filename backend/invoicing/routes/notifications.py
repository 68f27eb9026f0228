# Overview: Flask API routes for the caller's notifications.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    notifications = notification_service.list_notifications(g.identity)
    return jsonify([n.to_dict() for n in notifications])


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"unreadCount": notification_service.unread_count(g.identity)})


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(g.identity, notification_id)
    return jsonify({
        "message": "Notification marked as read",
        "notificationId": notification.id,
        "isRead": True,
    })


@notifications_bp.put("/mark-all-read")
@require_auth
def mark_all_read_route():
    marked = notification_service.mark_all_read(g.identity)
    return jsonify({"message": "All notifications marked as read", "markedCount": marked})


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    notification_service.delete(g.identity, notification_id)
    return jsonify({"message": "Notification deleted successfully", "notificationId": notification_id})
