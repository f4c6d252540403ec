"""
Scheduled maintenance job tests.

Verifies:
- Resolved role requests past the retention window are deleted; PENDING never
- Role change notifications past the window are deleted best-effort
- Credential deletion is idempotent and failures are counted, not fatal
"""

from datetime import timedelta

import pytest

from stockroom.extensions import db
from stockroom.models import (
    Credential,
    CredentialDeletionEvent,
    Notification,
    RoleChangeRequest,
    StockHistoryEntry,
    User,
    NOTIFICATION_ROLE_CHANGE,
    REQUEST_PENDING,
    REQUEST_REJECTED,
)
from stockroom.services import auth_service, maintenance_service, user_service
from stockroom.time_utils import utcnow


def _request(user, status, age_days, now):
    request = RoleChangeRequest(
        user_id=user.id,
        email=user.email,
        current_role=user.role,
        requested_role="manager",
        status=status,
        created_at=now - timedelta(days=age_days),
    )
    db.session.add(request)
    db.session.commit()
    return request.id


def _notification(age_days, now):
    notification = Notification(
        type=NOTIFICATION_ROLE_CHANGE,
        recipient_user_id=None,
        title="New role change request",
        message="old",
        is_read=False,
        created_at=now - timedelta(days=age_days),
    )
    db.session.add(notification)
    db.session.commit()
    return notification.id


# =============================================================================
# ROLE REQUEST RETENTION
# =============================================================================


class TestRoleRequestCleanup:

    def test_old_resolved_deleted_pending_kept(self, viewer, nobody):
        now = utcnow()
        rejected_id = _request(viewer, REQUEST_REJECTED, 31, now)
        pending_id = _request(nobody, REQUEST_PENDING, 31, now)

        result = maintenance_service.cleanup_role_requests(retention_days=30, now=now)

        assert result["deleted_requests"] == 1
        assert db.session.get(RoleChangeRequest, rejected_id) is None
        assert db.session.get(RoleChangeRequest, pending_id) is not None

    def test_recent_resolved_kept(self, viewer):
        now = utcnow()
        recent_id = _request(viewer, REQUEST_REJECTED, 29, now)

        result = maintenance_service.cleanup_role_requests(retention_days=30, now=now)

        assert result["deleted_requests"] == 0
        assert db.session.get(RoleChangeRequest, recent_id) is not None

    def test_default_window_from_config(self, app, viewer):
        app.config["ROLE_REQUEST_RETENTION_DAYS"] = 7
        now = utcnow()
        _request(viewer, REQUEST_REJECTED, 8, now)

        result = maintenance_service.cleanup_role_requests(now=now)
        assert result["deleted_requests"] == 1
        assert result["cutoff"] == now - timedelta(days=7)

    def test_old_notifications_deleted(self, viewer):
        now = utcnow()
        old_id = _notification(31, now)
        fresh_id = _notification(1, now)

        result = maintenance_service.cleanup_role_requests(retention_days=30, now=now)

        assert result["deleted_notifications"] == 1
        assert result["notifications_cleaned"] is True
        assert db.session.get(Notification, old_id) is None
        assert db.session.get(Notification, fresh_id) is not None

    def test_notification_failure_does_not_undo_sweep(self, viewer, monkeypatch):
        now = utcnow()
        rejected_id = _request(viewer, REQUEST_REJECTED, 31, now)

        def _boom(cutoff):
            raise RuntimeError("notifications store unavailable")

        monkeypatch.setattr(maintenance_service, "_cleanup_notifications", _boom)

        result = maintenance_service.cleanup_role_requests(retention_days=30, now=now)

        assert result["deleted_requests"] == 1
        assert result["notifications_cleaned"] is False
        assert db.session.get(RoleChangeRequest, rejected_id) is None

    def test_inventory_untouched(self, widget, viewer):
        now = utcnow()
        _request(viewer, REQUEST_REJECTED, 31, now)
        before = db.session.query(StockHistoryEntry).count()

        maintenance_service.cleanup_role_requests(retention_days=30, now=now)

        assert db.session.query(StockHistoryEntry).count() == before


# =============================================================================
# CREDENTIAL DELETION
# =============================================================================


class TestCredentialDeletion:

    def test_delete_user_queues_credential_deletion(self, admin, viewer):
        user_id = viewer.id
        user_service.delete_user(admin, user_id)

        assert db.session.get(User, user_id) is None
        # Credential survives until the job runs
        assert db.session.query(Credential).filter_by(user_id=user_id).count() == 1

        result = maintenance_service.process_credential_deletions()

        assert result == {"processed": 1, "failed": 0, "pending": 0}
        assert db.session.query(Credential).filter_by(user_id=user_id).count() == 0
        event = db.session.query(CredentialDeletionEvent).filter_by(user_id=user_id).one()
        assert event.processed_at is not None
        assert event.attempts == 1

    def test_redelivery_is_success(self, admin, viewer):
        user_id = viewer.id
        user_service.delete_user(admin, user_id)
        # Credential already gone (e.g. a previous run crashed before marking the event)
        assert auth_service.delete_credential(user_id) is True
        db.session.commit()

        result = maintenance_service.process_credential_deletions()

        assert result["processed"] == 1
        assert result["failed"] == 0

    def test_failure_counted_and_retried(self, admin, viewer, monkeypatch):
        user_id = viewer.id
        user_service.delete_user(admin, user_id)

        def _fail(uid):
            raise RuntimeError("credential store unavailable")

        monkeypatch.setattr(auth_service, "delete_credential", _fail)
        result = maintenance_service.process_credential_deletions()

        assert result == {"processed": 0, "failed": 1, "pending": 1}
        event = db.session.query(CredentialDeletionEvent).filter_by(user_id=user_id).one()
        assert event.processed_at is None
        assert event.attempts == 1
        assert "unavailable" in event.last_error

        monkeypatch.undo()
        result = maintenance_service.process_credential_deletions()
        assert result["processed"] == 1
        assert db.session.query(Credential).filter_by(user_id=user_id).count() == 0

    def test_processed_events_not_rerun(self, admin, viewer):
        user_service.delete_user(admin, viewer.id)
        maintenance_service.process_credential_deletions()

        assert maintenance_service.process_credential_deletions() == {"processed": 0, "failed": 0, "pending": 0}

    def test_cannot_delete_self(self, admin):
        from stockroom.errors import InvalidArgumentError

        with pytest.raises(InvalidArgumentError):
            user_service.delete_user(admin, admin.id)
