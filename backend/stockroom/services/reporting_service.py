# Overview: Read-only reporting over stock history and invoices.

from __future__ import annotations

from datetime import date

from sqlalchemy import and_, func, or_

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Invoice, InvoiceLine, StockHistoryEntry
from ..time_utils import day_bounds
from .permission_service import require_permission

MAX_PAGE_SIZE = 500


def _like(term: str) -> str:
    return f"%{term.strip()}%"


# =============================================================================
# Stock history
# =============================================================================

def list_stock_history(
    actor,
    *,
    search: str | None = None,
    warehouse: str | None = None,
    day: date | None = None,
    limit: int = 200,
    cursor: int | None = None,
    newest_first: bool = True,
) -> tuple[list[StockHistoryEntry], int | None]:
    """
    Audit entries in (occurred_at, id) order, newest first by default.

    `search` matches product name, part number, model and actor email,
    ignoring case. `cursor` is the id of the last entry of the previous
    page. Returns (entries, next_cursor); next_cursor is None on the last page.
    """
    require_permission(actor, "VIEW_AUDIT_LOG")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidArgumentError(f"limit must be between 1 and {MAX_PAGE_SIZE}", {"limit": limit})

    query = db.session.query(StockHistoryEntry)
    if search and search.strip():
        term = _like(search)
        query = query.filter(
            or_(
                StockHistoryEntry.product_name.ilike(term),
                StockHistoryEntry.part_number.ilike(term),
                StockHistoryEntry.model_no.ilike(term),
                StockHistoryEntry.actor.ilike(term),
            )
        )
    if warehouse and warehouse.strip():
        query = query.filter(func.lower(StockHistoryEntry.warehouse) == warehouse.strip().lower())
    if day is not None:
        start, end = day_bounds(day)
        query = query.filter(StockHistoryEntry.occurred_at >= start, StockHistoryEntry.occurred_at < end)

    if cursor is not None:
        anchor = db.session.get(StockHistoryEntry, cursor)
        if anchor is None:
            raise InvalidArgumentError("Unknown cursor", {"cursor": cursor})
        if newest_first:
            query = query.filter(
                or_(
                    StockHistoryEntry.occurred_at < anchor.occurred_at,
                    and_(StockHistoryEntry.occurred_at == anchor.occurred_at, StockHistoryEntry.id < anchor.id),
                )
            )
        else:
            query = query.filter(
                or_(
                    StockHistoryEntry.occurred_at > anchor.occurred_at,
                    and_(StockHistoryEntry.occurred_at == anchor.occurred_at, StockHistoryEntry.id > anchor.id),
                )
            )

    if newest_first:
        query = query.order_by(StockHistoryEntry.occurred_at.desc(), StockHistoryEntry.id.desc())
    else:
        query = query.order_by(StockHistoryEntry.occurred_at.asc(), StockHistoryEntry.id.asc())

    rows = query.limit(limit + 1).all()
    next_cursor = rows[limit - 1].id if len(rows) > limit else None
    return rows[:limit], next_cursor


def list_warehouses(actor) -> list[str]:
    """Distinct warehouses seen in the stock history (filter options)."""
    require_permission(actor, "VIEW_AUDIT_LOG")
    rows = db.session.query(StockHistoryEntry.warehouse).distinct().all()
    return sorted({w for (w,) in rows if w}, key=str.casefold)


# =============================================================================
# Invoices
# =============================================================================

def _filtered_invoices(search: str | None, warehouse: str | None, day: date | None):
    query = db.session.query(Invoice)
    if search and search.strip():
        term = _like(search)
        line_match = (
            db.session.query(InvoiceLine.id)
            .filter(
                InvoiceLine.invoice_id == Invoice.id,
                or_(
                    InvoiceLine.name.ilike(term),
                    InvoiceLine.part_number.ilike(term),
                    InvoiceLine.model_no.ilike(term),
                ),
            )
            .exists()
        )
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(term),
                Invoice.generated_by.ilike(term),
                Invoice.customer_name.ilike(term),
                line_match,
            )
        )
    if warehouse and warehouse.strip():
        in_warehouse = (
            db.session.query(InvoiceLine.id)
            .filter(
                InvoiceLine.invoice_id == Invoice.id,
                func.lower(InvoiceLine.warehouse) == warehouse.strip().lower(),
            )
            .exists()
        )
        query = query.filter(in_warehouse)
    if day is not None:
        start, end = day_bounds(day)
        query = query.filter(Invoice.issued_at >= start, Invoice.issued_at < end)
    return query


def list_invoices(
    actor,
    *,
    search: str | None = None,
    warehouse: str | None = None,
    day: date | None = None,
) -> list[Invoice]:
    """Invoices matching the filters, newest first."""
    require_permission(actor, "VIEW_SALES")
    return (
        _filtered_invoices(search, warehouse, day)
        .order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        .all()
    )


def sales_summary(
    actor,
    *,
    search: str | None = None,
    warehouse: str | None = None,
    day: date | None = None,
) -> dict:
    """Count, total and average per invoice over the same filters as list_invoices()."""
    require_permission(actor, "VIEW_SALES")
    invoices = _filtered_invoices(search, warehouse, day).all()
    count = len(invoices)
    total = sum(inv.total_amount_cents for inv in invoices)
    return {
        "invoice_count": count,
        "total_items": sum(inv.total_items for inv in invoices),
        "total_amount_cents": total,
        "average_amount_cents": round(total / count) if count else 0,
    }


def get_invoice(actor, *, invoice_id: int | None = None, invoice_number: str | None = None) -> Invoice:
    require_permission(actor, "VIEW_SALES")
    if invoice_id is None and not invoice_number:
        raise InvalidArgumentError("invoice_id or invoice_number is required")

    query = db.session.query(Invoice)
    if invoice_id is not None:
        query = query.filter(Invoice.id == invoice_id)
    else:
        query = query.filter(Invoice.invoice_number == invoice_number.strip().upper())
    invoice = query.first()
    if invoice is None:
        raise NotFoundError("Invoice not found", {"invoice_id": invoice_id, "invoice_number": invoice_number})
    return invoice
