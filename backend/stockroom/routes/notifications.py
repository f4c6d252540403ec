# Overview: Flask API routes for the signed-in user's notifications.

from flask import Blueprint, request, g

from ..services import notification_service
from ..decorators import require_auth

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    items = notification_service.list_notifications(g.current_user, unread_only=unread_only)
    return {"items": [n.to_dict() for n in items]}, 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(notification_id, g.current_user)
    return {"notification": notification.to_dict()}, 200
