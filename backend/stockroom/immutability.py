# Overview: ORM listeners that reject changes to append-only records.

"""
Stock history entries, invoices and invoice lines are written once and never
changed. Role change requests may change only while PENDING; the transition
out of PENDING is the last write the row ever receives.

The listeners fire before the SQL is emitted, so a violating flush raises
ImmutabilityViolationError and the transaction is rolled back by the caller.
Bulk query.update()/query.delete() bypass the ORM and are not used on these
tables (the retention sweep deletes resolved role requests, which is allowed).
"""

from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from .errors import ImmutabilityViolationError
from .models import (
    Invoice,
    InvoiceLine,
    RoleChangeRequest,
    StockHistoryEntry,
    REQUEST_PENDING,
)


def _changed_fields(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _reject_update(mapper, connection, target):
    changed = _changed_fields(target)
    if not changed:
        return
    raise ImmutabilityViolationError(
        f"{type(target).__name__} records cannot be modified",
        {"entity": type(target).__name__, "id": target.id, "fields": changed},
    )


def _reject_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        f"{type(target).__name__} records cannot be deleted",
        {"entity": type(target).__name__, "id": target.id},
    )


def _check_role_request_update(mapper, connection, target):
    """
    Allow PENDING -> anything; block every change after that.

    If status is changing, the old value decides. If it is not changing,
    the current value does.
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        was_processed = status_history.deleted[0] != REQUEST_PENDING
    else:
        was_processed = target.status != REQUEST_PENDING

    if not was_processed:
        return

    changed = _changed_fields(target)
    if changed:
        raise ImmutabilityViolationError(
            "Processed role requests cannot be modified",
            {"entity": "RoleChangeRequest", "id": target.id, "fields": changed},
        )


_LISTENERS = (
    (StockHistoryEntry, "before_update", _reject_update),
    (StockHistoryEntry, "before_delete", _reject_delete),
    (Invoice, "before_update", _reject_update),
    (Invoice, "before_delete", _reject_delete),
    (InvoiceLine, "before_update", _reject_update),
    (InvoiceLine, "before_delete", _reject_delete),
    (RoleChangeRequest, "before_update", _check_role_request_update),
)


def register_immutability_listeners() -> None:
    """Install the listeners once per process; safe to call from every create_app()."""
    for model, identifier, fn in _LISTENERS:
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)

