# Overview: Service-layer operations for role change notifications.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification, NOTIFICATION_ROLE_CHANGE
from ..permissions import ROLE_ADMIN
from ..time_utils import utcnow
from . import change_feed
from .concurrency import run_with_retry


def _add(*, recipient_user_id: int | None, title: str, message: str, request_id: int | None) -> Notification:
    notification = Notification(
        type=NOTIFICATION_ROLE_CHANGE,
        recipient_user_id=recipient_user_id,
        title=title,
        message=message,
        request_id=request_id,
        is_read=False,
        created_at=utcnow(),
    )
    db.session.add(notification)
    db.session.flush()
    change_feed.record_change("notifications", "created", notification.id, notification.to_dict())
    return notification


def notify_admins_of_request(role_request) -> Notification:
    """Broadcast to every admin (recipient NULL). Caller commits."""
    return _add(
        recipient_user_id=None,
        title="New role change request",
        message=(
            f"{role_request.email} requested a role change from "
            f"{role_request.current_role} to {role_request.requested_role}"
        ),
        request_id=role_request.id,
    )


def notify_user_of_decision(role_request) -> Notification:
    """Tell the requesting user how their request was decided. Caller commits."""
    verdict = role_request.status.lower()
    return _add(
        recipient_user_id=role_request.user_id,
        title=f"Role change request {verdict}",
        message=(
            f"Your request to become {role_request.requested_role} was {verdict} "
            f"by {role_request.processed_by}"
        ),
        request_id=role_request.id,
    )


def _visible_query(user):
    query = db.session.query(Notification)
    if user.role == ROLE_ADMIN:
        return query.filter(
            or_(Notification.recipient_user_id.is_(None), Notification.recipient_user_id == user.id)
        )
    return query.filter(Notification.recipient_user_id == user.id)


def list_notifications(user, *, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    query = _visible_query(user)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def mark_read(notification_id: int, user) -> Notification:
    def _op():
        notification = _visible_query(user).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFoundError("Notification not found", {"notification_id": notification_id})
        if not notification.is_read:
            notification.is_read = True
            db.session.commit()
        return notification

    return run_with_retry(_op)
