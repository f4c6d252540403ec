# Overview: Service-layer operations for the role change request workflow.

"""
Role Request Workflow

STATES (per request row):
    PENDING --approve--> APPROVED   (user.role <- requested_role)
    PENDING --reject---> REJECTED   (user.role unchanged)
    PENDING --resubmit-> SUPERSEDED (a newer PENDING row replaces it)
    PENDING --direct---> SUPERSEDED (admin set the role out of band)

INVARIANTS:
- At most one PENDING request per user (partial unique index backs this up).
- A decision re-reads the pending request under lock in the same transaction
  that flips its status, so a superseded request can never be decided.
- Processed requests are immutable (see immutability.py).
- decide() and direct_change() are reserved to role=admin.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import (
    RoleChangeRequest,
    User,
    REQUEST_APPROVED,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    REQUEST_SUPERSEDED,
)
from ..permissions import ROLES
from ..time_utils import utcnow
from . import change_feed, notification_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .permission_service import require_admin, require_permission

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTIONS = (ACTION_APPROVE, ACTION_REJECT)


def _validate_role(role) -> str:
    if not isinstance(role, str) or role.strip().lower() not in ROLES:
        raise InvalidArgumentError(
            "Unknown role",
            {"role": role, "allowed": list(ROLES)},
        )
    return role.strip().lower()


def _load_user(user_id: int, *, lock: bool = False) -> User:
    query = db.session.query(User).filter_by(id=user_id)
    if lock:
        query = lock_for_update(query)
    user = query.first()
    if user is None:
        raise NotFoundError("User not found", {"user_id": user_id})
    return user


def _pending_for(user_id: int, *, lock: bool = False) -> RoleChangeRequest | None:
    query = db.session.query(RoleChangeRequest).filter_by(user_id=user_id, status=REQUEST_PENDING)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _supersede(request: RoleChangeRequest, *, by_user) -> None:
    request.status = REQUEST_SUPERSEDED
    request.processed_at = utcnow()
    request.processed_by = by_user.email
    request.processed_by_user_id = by_user.id
    # Flush before any new PENDING row is inserted for the same user
    db.session.flush()
    change_feed.record_change("role_change_requests", "superseded", request.id, request.to_dict())


def submit_request(user, requested_role: str) -> RoleChangeRequest:
    """
    Submit (or resubmit) a role change request for `user`.

    Resubmitting while a request is PENDING supersedes it; the latest
    submission is the only active one.
    """
    require_permission(user, "REQUEST_ROLE")
    requested_role = _validate_role(requested_role)

    def _op():
        begin_write()
        subject = _load_user(user.id, lock=True)
        if subject.role == requested_role:
            raise InvalidArgumentError(
                "You already have this role",
                {"role": requested_role},
            )

        existing = _pending_for(subject.id, lock=True)
        if existing is not None:
            _supersede(existing, by_user=subject)

        request = RoleChangeRequest(
            user_id=subject.id,
            email=subject.email,
            current_role=subject.role,
            requested_role=requested_role,
            status=REQUEST_PENDING,
            requested_by_user_id=subject.id,
            requested_by_email=subject.email,
            created_at=utcnow(),
        )
        db.session.add(request)
        db.session.flush()

        notification_service.notify_admins_of_request(request)
        change_feed.record_change("role_change_requests", "created", request.id, request.to_dict())

        db.session.commit()
        return request

    request = run_with_retry(_op)
    current_app.logger.info(
        "Role request %s: user %s asked for %s", request.id, request.email, request.requested_role
    )
    return request


def list_pending(actor) -> list[RoleChangeRequest]:
    """PENDING requests, newest first."""
    require_permission(actor, "PROCESS_ROLE_REQUESTS")
    return (
        db.session.query(RoleChangeRequest)
        .filter_by(status=REQUEST_PENDING)
        .order_by(RoleChangeRequest.created_at.desc(), RoleChangeRequest.id.desc())
        .all()
    )


def request_history(actor, user_id: int) -> list[RoleChangeRequest]:
    """All requests of one user, newest first. Users may read their own history."""
    if actor.id != user_id:
        require_permission(actor, "PROCESS_ROLE_REQUESTS")
    _load_user(user_id)
    return (
        db.session.query(RoleChangeRequest)
        .filter_by(user_id=user_id)
        .order_by(RoleChangeRequest.created_at.desc(), RoleChangeRequest.id.desc())
        .all()
    )


def decide(admin, user_id: int, action: str, request_id: int | None = None) -> RoleChangeRequest:
    """
    Approve or reject the user's pending request.

    Raises NotFoundError if the user has no pending request, and
    ConflictError if `request_id` names a request that is no longer the
    pending one (it was superseded by a newer submission).
    """
    require_admin(admin)
    action = (action or "").strip().lower()
    if action not in ACTIONS:
        raise InvalidArgumentError("action must be 'approve' or 'reject'", {"action": action})

    def _op():
        begin_write()
        subject = _load_user(user_id, lock=True)
        request = _pending_for(subject.id, lock=True)
        if request is None:
            raise NotFoundError("No pending role request for this user", {"user_id": user_id})
        if request_id is not None and request.id != request_id:
            raise ConflictError(
                "Role request is no longer pending",
                {"request_id": request_id, "pending_request_id": request.id},
            )

        now = utcnow()
        if action == ACTION_APPROVE:
            subject.role = request.requested_role
            subject.role_updated_at = now
            subject.role_updated_by = admin.email
            request.status = REQUEST_APPROVED
        else:
            request.status = REQUEST_REJECTED
        request.processed_at = now
        request.processed_by = admin.email
        request.processed_by_user_id = admin.id
        db.session.flush()

        notification_service.notify_user_of_decision(request)
        change_feed.record_change("role_change_requests", "decided", request.id, request.to_dict())
        change_feed.record_change("users", "updated", subject.id, {"role": subject.role})

        db.session.commit()
        return request

    request = run_with_retry(_op)
    current_app.logger.info(
        "Role request %s for %s %s by %s", request.id, request.email, request.status.lower(), admin.email
    )
    return request


def direct_change(admin, user_id: int, new_role: str) -> User:
    """
    Set a user's role immediately, bypassing the request workflow.

    A pending request of that user is resolved as SUPERSEDED in the same
    transaction so it cannot be approved later over the admin's choice.
    """
    require_admin(admin)
    new_role = _validate_role(new_role)

    def _op():
        begin_write()
        subject = _load_user(user_id, lock=True)

        pending = _pending_for(subject.id, lock=True)
        if pending is not None:
            _supersede(pending, by_user=admin)

        subject.role = new_role
        subject.role_updated_at = utcnow()
        subject.role_updated_by = admin.email
        db.session.flush()
        change_feed.record_change("users", "updated", subject.id, {"role": subject.role})

        db.session.commit()
        return subject

    subject = run_with_retry(_op)
    current_app.logger.info("User %s role set to %s by %s", subject.email, new_role, admin.email)
    return subject
