from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    User profile: identity, attribution and role.

    WHY: Every ledger mutation, invoice and role decision is attributed to a
    user. The password lives in Credential, not here, so that deleting a
    profile and deleting its credential are separate steps (see
    CredentialDeletionEvent).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('none', 'viewer', 'manager', 'admin')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored lower-cased; unique across the system
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(120), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="viewer", index=True)
    role_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    role_updated_by = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    role_requests = db.relationship(
        "RoleChangeRequest",
        foreign_keys="RoleChangeRequest.user_id",
        backref=db.backref("user", lazy=True),
        cascade="all, delete-orphan",
        order_by="RoleChangeRequest.id.desc()",
        lazy=True,
    )
    sessions = db.relationship(
        "SessionToken",
        backref=db.backref("user", lazy=True),
        cascade="all, delete-orphan",
        lazy=True,
    )
    notifications = db.relationship(
        "Notification",
        backref=db.backref("recipient", lazy=True),
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

    @property
    def latest_role_request(self):
        return self.role_requests[0] if self.role_requests else None

    def to_dict(self) -> dict:
        latest = self.latest_role_request
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
            "role_updated_at": to_utc_z(self.role_updated_at) if self.role_updated_at else None,
            "role_updated_by": self.role_updated_by,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
            "role_request": latest.to_dict() if latest else None,
        }


class Credential(db.Model):
    """
    Password credential for a user.

    No foreign key to users: the credential outlives the profile until the
    credential-deletion processor removes it.
    """
    __tablename__ = "credentials"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class SessionToken(db.Model):
    """
    Bearer session tokens.

    The plaintext token is returned to the client once; only its SHA-256
    hash is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class CredentialDeletionEvent(db.Model):
    """
    Outbox row written in the same transaction that deletes a user profile.

    Consumed by maintenance_service.process_credential_deletions(); delivery
    is at-least-once, so processing must be idempotent.
    """
    __tablename__ = "credential_deletion_events"
    __table_args__ = (
        db.Index("ix_cred_deletion_pending", "processed_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }
