from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

REQUEST_PENDING = "PENDING"
REQUEST_APPROVED = "APPROVED"
REQUEST_REJECTED = "REJECTED"
REQUEST_SUPERSEDED = "SUPERSEDED"


class RoleChangeRequest(db.Model):
    """
    A user's request to move to a different role.

    LIFECYCLE:
    1. PENDING: submitted, waiting for an admin
    2. APPROVED: admin approved, user.role was set to requested_role
    3. REJECTED: admin rejected, user.role unchanged
    4. SUPERSEDED: replaced by a newer request or by a direct role change

    INVARIANTS:
    - at most one PENDING row per user (partial unique index)
    - current_role is a snapshot taken at submission
    - processed rows are immutable (see immutability.py)
    """
    __tablename__ = "role_change_requests"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'SUPERSEDED')",
            name="ck_role_requests_status",
        ),
        db.Index(
            "uq_role_requests_one_pending",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'PENDING'"),
            postgresql_where=db.text("status = 'PENDING'"),
        ),
        db.Index("ix_role_requests_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)

    current_role = db.Column(db.String(16), nullable=False)
    requested_role = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=REQUEST_PENDING)

    requested_by_user_id = db.Column(db.Integer, nullable=True)
    requested_by_email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by = db.Column(db.String(255), nullable=True)
    processed_by_user_id = db.Column(db.Integer, nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.status == REQUEST_PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "current_role": self.current_role,
            "requested_role": self.requested_role,
            "status": self.status,
            "requested_by_user_id": self.requested_by_user_id,
            "requested_by_email": self.requested_by_email,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "processed_by": self.processed_by,
            "processed_by_user_id": self.processed_by_user_id,
        }
