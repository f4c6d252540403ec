# Overview: Scheduled maintenance jobs: role request retention and credential deletion.

"""
Both jobs are run from the CLI (see cli.py) on a schedule, outside any
request. They log progress through the Flask application logger.

- cleanup_role_requests: intended daily at 02:00 UTC. Deletes resolved
  role change requests older than the retention window, then (best-effort)
  role change notifications older than the same cutoff. PENDING requests
  are never deleted. Inventory, audit and invoice data are never touched.
- process_credential_deletions: drains the CredentialDeletionEvent outbox.
  Delivery is at-least-once; a credential that is already gone counts as
  success. Failures are logged, counted on the event and retried next run.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import (
    CredentialDeletionEvent,
    Notification,
    RoleChangeRequest,
    NOTIFICATION_ROLE_CHANGE,
    REQUEST_PENDING,
)
from ..time_utils import utcnow
from . import auth_service
from .concurrency import begin_write, run_with_retry


def _cleanup_notifications(cutoff: datetime) -> int:
    """Delete role change notifications created before `cutoff`; returns the count."""
    def _op():
        begin_write()
        deleted = (
            db.session.query(Notification)
            .filter(
                Notification.type == NOTIFICATION_ROLE_CHANGE,
                Notification.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return deleted

    return run_with_retry(_op)


def cleanup_role_requests(retention_days: int | None = None, now: datetime | None = None) -> dict:
    """
    Delete resolved role change requests with created_at older than the
    retention window (ROLE_REQUEST_RETENTION_DAYS, 30 by default).

    The notification cleanup runs after the request deletion has committed;
    its failure is logged and does not undo or fail the request cleanup.
    """
    if retention_days is None:
        retention_days = current_app.config["ROLE_REQUEST_RETENTION_DAYS"]
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    logger = current_app.logger
    logger.info("Starting cleanup of role change requests older than %s", cutoff.isoformat())

    def _op():
        begin_write()
        deleted = (
            db.session.query(RoleChangeRequest)
            .filter(
                RoleChangeRequest.status != REQUEST_PENDING,
                RoleChangeRequest.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return deleted

    deleted_requests = run_with_retry(_op)
    if deleted_requests:
        logger.info("Deleted %s old role change requests", deleted_requests)
    else:
        logger.info("No old role change requests found to delete.")

    deleted_notifications = 0
    notifications_ok = True
    try:
        deleted_notifications = _cleanup_notifications(cutoff)
        logger.info("Deleted %s old role change notifications", deleted_notifications)
    except Exception:
        # Best-effort: notifications are a convenience, the sweep itself succeeded
        db.session.rollback()
        notifications_ok = False
        logger.exception("Error cleaning up role change notifications")

    return {
        "cutoff": cutoff,
        "deleted_requests": deleted_requests,
        "deleted_notifications": deleted_notifications,
        "notifications_cleaned": notifications_ok,
    }


def process_credential_deletions(limit: int = 100) -> dict:
    """
    Delete the credential of every user named by an unprocessed
    CredentialDeletionEvent, oldest first.
    """
    logger = current_app.logger
    event_ids = [
        event_id
        for (event_id,) in (
            db.session.query(CredentialDeletionEvent.id)
            .filter(CredentialDeletionEvent.processed_at.is_(None))
            .order_by(CredentialDeletionEvent.id.asc())
            .limit(limit)
            .all()
        )
    ]

    processed = 0
    failed = 0
    for event_id in event_ids:
        event = db.session.get(CredentialDeletionEvent, event_id)
        if event is None or event.processed_at is not None:
            continue
        user_id = event.user_id
        try:
            removed = auth_service.delete_credential(user_id)
            event.attempts = (event.attempts or 0) + 1
            event.processed_at = utcnow()
            event.last_error = None
            db.session.commit()
            processed += 1
            if removed:
                logger.info("Deleted credential for user %s", user_id)
            else:
                logger.info("Credential for user %s already deleted", user_id)
        except Exception as exc:
            db.session.rollback()
            failed += 1
            logger.error("Failed to delete credential for user %s: %s", user_id, exc)
            event = db.session.get(CredentialDeletionEvent, event_id)
            event.attempts = (event.attempts or 0) + 1
            event.last_error = str(exc)[:255]
            db.session.commit()

    return {"processed": processed, "failed": failed, "pending": len(event_ids) - processed}
