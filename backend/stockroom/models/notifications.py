from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

NOTIFICATION_ROLE_CHANGE = "role_change"


class Notification(db.Model):
    """
    In-app notification.

    recipient_user_id NULL addresses every admin (new role requests);
    otherwise the row belongs to one user (decision on their request).
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, default=NOTIFICATION_ROLE_CHANGE)

    recipient_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)

    # No FK: requests are swept independently of their notifications
    request_id = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "recipient_user_id": self.recipient_user_id,
            "title": self.title,
            "message": self.message,
            "request_id": self.request_id,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
