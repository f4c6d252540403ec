# backend/stockroom/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports the backlog the maintenance jobs
are expected to drain.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CredentialDeletionEvent, ProductCell, RoleChangeRequest, User, REQUEST_PENDING
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        cell_count = db.session.query(ProductCell).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "product_cells": cell_count,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_maintenance_health() -> dict:
    """
    Backlog of the scheduled jobs. Undelivered credential deletions that
    have already failed mark the service as degraded.
    """
    start_time = time.time()
    try:
        pending_deletions = db.session.query(CredentialDeletionEvent).filter(
            CredentialDeletionEvent.processed_at.is_(None)
        ).count()
        failing_deletions = db.session.query(CredentialDeletionEvent).filter(
            CredentialDeletionEvent.processed_at.is_(None),
            CredentialDeletionEvent.attempts > 0,
        ).count()
        pending_requests = db.session.query(RoleChangeRequest).filter_by(status=REQUEST_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if failing_deletions else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending_credential_deletions": pending_deletions,
                "failing_credential_deletions": failing_deletions,
                "pending_role_requests": pending_requests,
            }
        }
        if failing_deletions:
            result["warning"] = f"{failing_deletions} credential deletions failed at least once"
        return result
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Maintenance health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Maintenance backlog unavailable"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    maintenance_health = check_maintenance_health()

    all_checks = [database_health, maintenance_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "maintenance": maintenance_health,
        }
    }

    return response, http_status
