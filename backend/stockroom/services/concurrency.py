# Overview: Service-layer helpers for transactions, row locks and retries.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, StorageFailureError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() serializes
    writers there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the write transaction up front on SQLite.

    BEGIN IMMEDIATE takes the database write lock before any read, so two
    writers cannot both read the same quantity and then race to update it.
    Other backends rely on lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked, deadlocks) and
    StaleDataError (optimistic locking conflicts). Any failure rolls the
    session back so no partial work survives. Exhausted retries surface as
    ConflictError (stale data) or StorageFailureError (database errors).
    """
    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Record was modified concurrently; please retry",
                    {"attempts": attempts},
                ) from exc
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageFailureError(
                    "Database unavailable",
                    {"attempts": attempts, "reason": str(exc.orig)},
                ) from exc
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError(
                "Write conflicts with existing data",
                {"reason": str(exc.orig)},
            ) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageFailureError("Database write failed", {"reason": str(exc)}) from exc
        except Exception:
            db.session.rollback()
            raise
        time.sleep(backoff_base * (2 ** attempt))

