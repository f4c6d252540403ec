# Overview: Service-layer operations for user profiles; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import CredentialDeletionEvent, User
from . import change_feed
from .concurrency import begin_write, lock_for_update, run_with_retry
from .permission_service import require_permission


def list_users(actor) -> list[User]:
    require_permission(actor, "VIEW_USERS")
    return db.session.query(User).order_by(User.email.asc()).all()


def get_user(actor, user_id: int) -> User:
    """Any user may read their own profile; other profiles need VIEW_USERS."""
    if actor.id != user_id:
        require_permission(actor, "VIEW_USERS")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", {"user_id": user_id})
    return user


def delete_user(admin, user_id: int) -> dict:
    """
    Hard-delete a user profile.

    Sessions, role requests and personal notifications go with it. A
    CredentialDeletionEvent is written in the same transaction; the
    credential itself is removed by the maintenance job.
    Admins cannot delete their own account.
    """
    require_permission(admin, "DELETE_USER")
    if admin.id == user_id:
        raise InvalidArgumentError("You cannot delete your own account", {"user_id": user_id})

    def _op():
        begin_write()
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})

        snapshot = {"id": user.id, "email": user.email, "role": user.role}
        db.session.add(CredentialDeletionEvent(user_id=user.id, email=user.email, attempts=0))
        db.session.delete(user)
        db.session.flush()

        change_feed.record_change("users", "deleted", user_id, snapshot)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    current_app.logger.info("User %s deleted by %s", snapshot["email"], admin.email)
    return snapshot
