# Overview: Service-layer operations for the stock history audit log.

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import ProductCell, StockHistoryEntry
from ..time_utils import utcnow
from . import change_feed
"""
Stock History Invariants (authoritative)

- Append-only; rows are never updated or deleted (see immutability.py).
- Entries are written inside the same DB transaction as the quantity change
  they record. If the change rolls back, so does the entry.
- occurred_at strictly increases in append order, so (occurred_at, id) is a
  total chronological order even when the clock has not ticked.
"""

_TICK = timedelta(microseconds=1)

CHANGE_PRODUCT_DELETED = "Product Deleted"


def format_add(amount: int) -> str:
    return f"+{amount}"


def format_reduce(amount: int) -> str:
    return f"-{amount}"


def format_sale(amount: int) -> str:
    return f"-{amount} (Sale)"


def format_new_product(amount: int) -> str:
    return f"+{amount} (New Product)"


def format_replace(old: int, new: int) -> str:
    return f"{old} → {new} (Replaced)"


def _next_occurred_at(requested: Optional[datetime]) -> datetime:
    now = requested or utcnow()
    last = db.session.query(func.max(StockHistoryEntry.occurred_at)).scalar()
    if last is not None and now <= last:
        return last + _TICK
    return now


def append_stock_history(
    *,
    cell: ProductCell,
    change: str,
    actor,
    quantity_delta: int | None,
    quantity_after: int | None,
    invoice_number: str | None = None,
    occurred_at: Optional[datetime] = None,
) -> StockHistoryEntry:
    """
    Append one audit entry for a mutation of `cell`.

    - No domain logic here; callers have already validated and applied the change.
    - Product fields are copied so the entry outlives the cell.
    """
    entry = StockHistoryEntry(
        cell_id=cell.id,
        product_name=cell.name,
        part_number=cell.part_number,
        model_no=cell.model_no,
        warehouse=cell.warehouse,
        change=change,
        quantity_delta=quantity_delta,
        quantity_after=quantity_after,
        actor=actor.email,
        actor_user_id=actor.id,
        invoice_number=invoice_number,
        occurred_at=_next_occurred_at(occurred_at),
    )
    db.session.add(entry)
    db.session.flush()  # assigns entry.id and makes occurred_at visible to the next append

    change_feed.record_change("stock_history", "created", entry.id, entry.to_dict())
    return entry
