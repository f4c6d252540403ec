# Overview: Service-layer operations for inventory cells; encapsulates business logic and database work.

from __future__ import annotations

from collections import OrderedDict

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateCellError, InsufficientStockError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import ProductCell, cell_identity_key
from ..validation import MAX_QUANTITY
from . import change_feed
from .concurrency import begin_write, lock_for_update, run_with_retry
from .ledger_service import (
    CHANGE_PRODUCT_DELETED,
    append_stock_history,
    format_add,
    format_new_product,
    format_reduce,
    format_replace,
)
from .permission_service import require_permission
"""
Inventory Invariants (authoritative)

- quantity is stored per cell (product variant x warehouse) and is never negative.
- Every mutation appends exactly one stock history entry in the same DB
  transaction. A rejected mutation leaves both untouched.
- Cell identity is (name, part number, model, warehouse) compared
  case-insensitively; the visible fields keep the caller's casing.
- Mutations require MANAGE_INVENTORY; reads require VIEW_INVENTORY.
"""


def _require_int(value, field: str, *, minimum: int, maximum: int = MAX_QUANTITY) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{field} must be an integer", {"field": field})
    if value < minimum:
        qualifier = "positive" if minimum > 0 else "non-negative"
        raise InvalidArgumentError(f"{field} must be {qualifier}", {"field": field, "value": value})
    if value > maximum:
        raise InvalidArgumentError(f"{field} cannot exceed {maximum}", {"field": field, "value": value})
    return value


def _require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"{field} is required", {"field": field})
    return str(value).strip()


def _load_cell(cell_id: int, *, lock: bool = False) -> ProductCell:
    query = db.session.query(ProductCell).filter_by(id=cell_id)
    if lock:
        query = lock_for_update(query)
    cell = query.first()
    if cell is None:
        raise NotFoundError("Product not found", {"cell_id": cell_id})
    return cell


def _cell_changed(cell: ProductCell, action: str = "updated") -> None:
    change_feed.record_change("product_cells", action, cell.id, cell.to_dict())


# =============================================================================
# Locked inner operations (no permission check, no commit)
# =============================================================================

def _reduce_locked(
    cell: ProductCell,
    amount: int,
    actor,
    *,
    change: str,
    invoice_number: str | None = None,
):
    """
    Core reduce logic for a cell the caller has already locked.

    Shared by reduce_quantity() and sale commit; the caller owns the
    transaction and commits or rolls back.
    """
    if amount > cell.quantity:
        raise InsufficientStockError(
            "Insufficient stock",
            {"cell_id": cell.id, "requested_quantity": amount, "on_hand": cell.quantity},
        )
    cell.quantity = cell.quantity - amount
    db.session.flush()

    entry = append_stock_history(
        cell=cell,
        change=change,
        actor=actor,
        quantity_delta=-amount,
        quantity_after=cell.quantity,
        invoice_number=invoice_number,
    )
    _cell_changed(cell)
    return entry


# =============================================================================
# Mutations
# =============================================================================

def add_quantity(cell_id: int, amount: int, actor) -> ProductCell:
    """Increase a cell's quantity by `amount` (> 0)."""
    require_permission(actor, "MANAGE_INVENTORY")
    _require_int(amount, "amount", minimum=1)

    def _op():
        begin_write()
        cell = _load_cell(cell_id, lock=True)
        if cell.quantity + amount > MAX_QUANTITY:
            raise InvalidArgumentError(
                f"quantity cannot exceed {MAX_QUANTITY}",
                {"field": "amount", "cell_id": cell.id, "on_hand": cell.quantity, "amount": amount},
            )
        cell.quantity = cell.quantity + amount
        db.session.flush()

        append_stock_history(
            cell=cell,
            change=format_add(amount),
            actor=actor,
            quantity_delta=amount,
            quantity_after=cell.quantity,
        )
        _cell_changed(cell)

        db.session.commit()
        return cell

    return run_with_retry(_op)


def reduce_quantity(cell_id: int, amount: int, actor) -> ProductCell:
    """
    Decrease a cell's quantity by `amount` (> 0).

    Raises InsufficientStockError when amount exceeds the quantity on hand;
    nothing is applied in that case.
    """
    require_permission(actor, "MANAGE_INVENTORY")
    _require_int(amount, "amount", minimum=1)

    def _op():
        begin_write()
        cell = _load_cell(cell_id, lock=True)
        _reduce_locked(cell, amount, actor, change=format_reduce(amount))
        db.session.commit()
        return cell

    return run_with_retry(_op)


def replace_quantity(cell_id: int, new_amount: int, actor) -> ProductCell:
    """Set a cell's quantity outright (stock count correction)."""
    require_permission(actor, "MANAGE_INVENTORY")
    _require_int(new_amount, "new_amount", minimum=0)

    def _op():
        begin_write()
        cell = _load_cell(cell_id, lock=True)
        old = cell.quantity
        cell.quantity = new_amount
        db.session.flush()

        append_stock_history(
            cell=cell,
            change=format_replace(old, new_amount),
            actor=actor,
            quantity_delta=new_amount - old,
            quantity_after=new_amount,
        )
        _cell_changed(cell)

        db.session.commit()
        return cell

    return run_with_retry(_op)


def create_cell(
    *,
    name: str,
    part_number: str,
    model_no: str,
    warehouse: str,
    initial_quantity: int,
    actor,
    category: str | None = None,
    image_url: str | None = None,
) -> ProductCell:
    """
    Create a new cell with an initial quantity.

    Raises DuplicateCellError if a cell with the same identity exists,
    ignoring case and surrounding whitespace.
    """
    require_permission(actor, "MANAGE_INVENTORY")
    name = _require_text(name, "name")
    part_number = _require_text(part_number, "part_number")
    model_no = _require_text(model_no, "model_no")
    warehouse = _require_text(warehouse, "warehouse")
    _require_int(initial_quantity, "initial_quantity", minimum=0)
    category = category.strip() if isinstance(category, str) and category.strip() else None
    image_url = image_url.strip() if isinstance(image_url, str) and image_url.strip() else None

    identity = cell_identity_key(name, part_number, model_no, warehouse)
    duplicate_details = {
        "name": name,
        "part_number": part_number,
        "model_no": model_no,
        "warehouse": warehouse,
    }

    def _op():
        begin_write()
        existing = db.session.query(ProductCell.id).filter_by(identity_key=identity).first()
        if existing is not None:
            raise DuplicateCellError(
                "Product already exists in this warehouse",
                {**duplicate_details, "cell_id": existing.id},
            )

        cell = ProductCell(
            name=name,
            part_number=part_number,
            model_no=model_no,
            warehouse=warehouse,
            identity_key=identity,
            quantity=initial_quantity,
            category=category,
            image_url=image_url,
            created_by=actor.email,
        )
        db.session.add(cell)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost a race against a concurrent create of the same identity
            db.session.rollback()
            raise DuplicateCellError("Product already exists in this warehouse", duplicate_details) from exc

        append_stock_history(
            cell=cell,
            change=format_new_product(initial_quantity),
            actor=actor,
            quantity_delta=initial_quantity,
            quantity_after=initial_quantity,
        )
        _cell_changed(cell, "created")

        db.session.commit()
        return cell

    cell = run_with_retry(_op)
    current_app.logger.info("Cell %s created by %s (%s)", cell.id, actor.email, cell.warehouse)
    return cell


def delete_cell(cell_id: int, actor) -> dict:
    """
    Hard-delete a cell. The stock history keeps a "Product Deleted" entry
    carrying the product fields.
    """
    require_permission(actor, "MANAGE_INVENTORY")

    def _op():
        begin_write()
        cell = _load_cell(cell_id, lock=True)
        snapshot = cell.to_dict()

        append_stock_history(
            cell=cell,
            change=CHANGE_PRODUCT_DELETED,
            actor=actor,
            quantity_delta=None,
            quantity_after=None,
        )
        db.session.delete(cell)
        change_feed.record_change("product_cells", "deleted", cell_id, snapshot)

        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    current_app.logger.info("Cell %s deleted by %s", cell_id, actor.email)
    return snapshot


# =============================================================================
# Reads
# =============================================================================

def get_cell(cell_id: int, actor) -> ProductCell:
    require_permission(actor, "VIEW_INVENTORY")
    return _load_cell(cell_id)


def _filtered_cells_query(search: str | None = None, warehouse: str | None = None, category: str | None = None):
    query = db.session.query(ProductCell)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                ProductCell.name.ilike(term),
                ProductCell.part_number.ilike(term),
                ProductCell.model_no.ilike(term),
            )
        )
    if warehouse and warehouse.strip():
        query = query.filter(func.lower(ProductCell.warehouse) == warehouse.strip().lower())
    if category and category.strip():
        query = query.filter(func.lower(ProductCell.category) == category.strip().lower())
    return query


def list_cells(
    actor,
    *,
    search: str | None = None,
    warehouse: str | None = None,
    category: str | None = None,
) -> list[ProductCell]:
    """Cells matching the filters, ordered by name, part number, model, warehouse."""
    require_permission(actor, "VIEW_INVENTORY")
    return (
        _filtered_cells_query(search, warehouse, category)
        .order_by(
            ProductCell.name.asc(),
            ProductCell.part_number.asc(),
            ProductCell.model_no.asc(),
            ProductCell.warehouse.asc(),
            ProductCell.id.asc(),
        )
        .all()
    )


def group_products(actor, *, search: str | None = None) -> "OrderedDict[str, list[ProductCell]]":
    """
    Cells grouped by logical product, keyed "Name (PN)" and sorted by key.

    Grouping ignores case; the key uses the casing of the first cell seen.
    """
    cells = list_cells(actor, search=search)
    groups: dict[tuple[str, str], list[ProductCell]] = {}
    labels: dict[tuple[str, str], str] = {}
    for cell in cells:
        key = (cell.name.strip().casefold(), cell.part_number.strip().casefold())
        if key not in groups:
            groups[key] = []
            labels[key] = cell.group_key
        groups[key].append(cell)

    ordered = OrderedDict()
    for key in sorted(groups, key=lambda k: labels[k].casefold()):
        ordered[labels[key]] = groups[key]
    return ordered


def low_stock(actor, threshold: int | None = None) -> list[ProductCell]:
    """Cells whose quantity is at or below `threshold` (LOW_STOCK_THRESHOLD by default)."""
    require_permission(actor, "VIEW_INVENTORY")
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    _require_int(threshold, "threshold", minimum=0)
    return (
        db.session.query(ProductCell)
        .filter(ProductCell.quantity <= threshold)
        .order_by(ProductCell.quantity.asc(), ProductCell.name.asc(), ProductCell.id.asc())
        .all()
    )
