# Overview: Error taxonomy shared by services and routes.

"""
Every ledger, sale and workflow operation either succeeds or raises one of
these. Routes never translate them by hand: the app-level error handler in
create_app() renders {"error", "code", "details"} with the mapped status.
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base class for domain failures surfaced to callers."""
    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class NotFoundError(StockroomError):
    """Referenced cell, user, sale, invoice or request does not exist."""
    code = "not_found"
    http_status = 404


class InvalidArgumentError(StockroomError):
    """Bad quantity, bad role, missing field."""
    code = "invalid_argument"
    http_status = 400


class DuplicateCellError(StockroomError):
    """A cell with the same (name, part number, model, warehouse) exists."""
    code = "duplicate_cell"
    http_status = 409


class InsufficientStockError(StockroomError):
    """Reduce or sale would drive a cell below zero."""
    code = "insufficient_stock"
    http_status = 409


class PermissionDeniedError(StockroomError):
    """Actor lacks the role required for the operation."""
    code = "permission_denied"
    http_status = 403


class ConflictError(StockroomError):
    """A concurrent mutation invalidated a precondition."""
    code = "conflict"
    http_status = 409


class ImmutabilityViolationError(ConflictError):
    """Attempt to modify or delete an append-only record."""
    code = "immutable_record"


class StorageFailureError(StockroomError):
    """The database is unavailable or a write failed."""
    code = "storage_failure"
    http_status = 503
