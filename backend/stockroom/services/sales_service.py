"""
Sales Service - Document-first sale processing

WHY: Separates sale intent from inventory posting. Lines are collected on a
DRAFT sale without touching stock; commit is the single bridge between the
cart and the inventory ledger, and it either applies everything (stock
reductions, audit entries, invoice) or nothing.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, InsufficientStockError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import Invoice, InvoiceLine, ProductCell, Sale, SaleLine, WALK_IN_CUSTOMER
from ..time_utils import utcnow
from ..validation import MAX_PRICE_CENTS
from . import change_feed
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .inventory_service import _reduce_locked, _require_int
from .ledger_service import format_sale
from .permission_service import require_permission


def _clean_customer(name: str | None) -> str | None:
    if name is None:
        return None
    name = str(name).strip()
    return name or None


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def _require_draft(sale: Sale) -> None:
    if sale.status != "DRAFT":
        raise ConflictError(
            f"Sale is {sale.status}; only DRAFT sales can be changed",
            {"sale_id": sale.id, "status": sale.status},
        )


def _validate_on_hand(lines: list[SaleLine]) -> dict[int, ProductCell]:
    """
    Lock every cell on the sale and check the summed line quantities against
    the current quantity. Returns the locked cells keyed by id.
    """
    cell_totals: dict[int, int] = {}
    for line in lines:
        cell_totals[line.cell_id] = cell_totals.get(line.cell_id, 0) + line.quantity

    # Lock in id order so concurrent commits acquire rows in the same order
    cells: dict[int, ProductCell] = {}
    for cell_id in sorted(cell_totals):
        cell = lock_for_update(db.session.query(ProductCell).filter_by(id=cell_id)).first()
        if cell is None:
            raise NotFoundError("Product on sale no longer exists", {"cell_id": cell_id})
        cells[cell_id] = cell

    insufficient = []
    for cell_id, qty in cell_totals.items():
        on_hand = cells[cell_id].quantity
        if on_hand < qty:
            insufficient.append({
                "cell_id": cell_id,
                "name": cells[cell_id].name,
                "warehouse": cells[cell_id].warehouse,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        raise InsufficientStockError(
            "Insufficient stock to commit sale",
            {"items": insufficient},
        )
    return cells


def open_sale(actor, customer_name: str | None = None) -> Sale:
    """Create new draft sale."""
    require_permission(actor, "CREATE_SALE")

    def _op():
        begin_write()
        sale = Sale(
            status="DRAFT",
            customer_name=_clean_customer(customer_name),
            created_by_user_id=actor.id,
        )
        db.session.add(sale)
        db.session.flush()
        change_feed.record_change("sales", "created", sale.id, {"status": sale.status})
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int, actor) -> Sale:
    require_permission(actor, "VIEW_SALES")
    return _load_sale(sale_id)


def add_line(sale_id: int, cell_id: int, quantity: int, unit_price_cents: int, actor) -> SaleLine:
    """
    Add line item to draft sale.

    The quantity is checked against the cell as it stands now; lines on the
    same cell are not summed here. The authoritative check happens at commit.
    """
    require_permission(actor, "CREATE_SALE")
    _require_int(quantity, "quantity", minimum=1)
    _require_int(unit_price_cents, "unit_price_cents", minimum=0, maximum=MAX_PRICE_CENTS)

    def _op():
        begin_write()
        sale = _load_sale(sale_id, lock=True)
        _require_draft(sale)

        cell = db.session.query(ProductCell).filter_by(id=cell_id).first()
        if cell is None:
            raise NotFoundError("Product not found", {"cell_id": cell_id})
        if quantity > cell.quantity:
            raise InsufficientStockError(
                "Insufficient stock",
                {"cell_id": cell_id, "requested_quantity": quantity, "on_hand": cell.quantity},
            )

        line = SaleLine(
            sale_id=sale.id,
            cell_id=cell.id,
            name=cell.name,
            part_number=cell.part_number,
            model_no=cell.model_no,
            warehouse=cell.warehouse,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            line_total_cents=quantity * unit_price_cents,
            available_at_add=cell.quantity,
        )
        db.session.add(line)
        db.session.flush()
        change_feed.record_change("sales", "line_added", sale.id, line.to_dict())
        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_line(sale_id: int, line_id: int, actor) -> Sale:
    require_permission(actor, "CREATE_SALE")

    def _op():
        begin_write()
        sale = _load_sale(sale_id, lock=True)
        _require_draft(sale)

        line = db.session.query(SaleLine).filter_by(id=line_id, sale_id=sale.id).first()
        if line is None:
            raise NotFoundError("Sale line not found", {"sale_id": sale_id, "line_id": line_id})

        sale.lines.remove(line)
        db.session.flush()
        change_feed.record_change("sales", "line_removed", sale.id, {"line_id": line_id})
        db.session.commit()
        return sale

    return run_with_retry(_op)


def _commit_sale_locked(sale: Sale, actor, customer_name: str | None) -> Invoice:
    if sale.status == "COMMITTED":
        raise ConflictError("Sale already committed", {"sale_id": sale.id, "invoice_id": sale.invoice_id})
    _require_draft(sale)

    lines = list(sale.lines)
    if not lines:
        raise InvalidArgumentError("Cannot commit a sale with no lines", {"sale_id": sale.id})

    cells = _validate_on_hand(lines)

    invoice_number = next_invoice_number()
    issued_at = utcnow()

    for line in lines:
        _reduce_locked(
            cells[line.cell_id],
            line.quantity,
            actor,
            change=format_sale(line.quantity),
            invoice_number=invoice_number,
        )

    invoice = Invoice(
        invoice_number=invoice_number,
        customer_name=_clean_customer(customer_name) or sale.customer_name or WALK_IN_CUSTOMER,
        total_items=sum(line.quantity for line in lines),
        total_amount_cents=sum(line.line_total_cents for line in lines),
        generated_by=actor.email,
        generated_by_user_id=actor.id,
        issued_at=issued_at,
    )
    invoice.lines = [
        InvoiceLine(
            cell_id=line.cell_id,
            name=line.name,
            part_number=line.part_number,
            model_no=line.model_no,
            warehouse=line.warehouse,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_cents=line.line_total_cents,
        )
        for line in lines
    ]
    db.session.add(invoice)
    db.session.flush()

    sale.status = "COMMITTED"
    sale.committed_at = issued_at
    sale.customer_name = invoice.customer_name
    sale.invoice_id = invoice.id
    db.session.flush()

    change_feed.record_change("invoices", "created", invoice.id, invoice.to_dict(include_lines=False))
    change_feed.record_change("sales", "committed", sale.id, {"invoice_number": invoice_number})
    return invoice


def commit_sale(sale_id: int, actor, customer_name: str | None = None) -> Invoice:
    """
    Commit a draft sale.

    In one transaction: re-validate every line (summed per cell), reduce each
    line's cell with a "-q (Sale)" audit entry, allocate the invoice number
    and persist the invoice. Any failure leaves stock, audit log, sequence
    and sale exactly as they were.
    """
    require_permission(actor, "CREATE_SALE")

    def _op():
        begin_write()
        sale = _load_sale(sale_id, lock=True)
        invoice = _commit_sale_locked(sale, actor, customer_name)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Sale %s committed as %s by %s (%s items, %s cents)",
        sale_id,
        invoice.invoice_number,
        actor.email,
        invoice.total_items,
        invoice.total_amount_cents,
    )
    return invoice


def abandon_sale(sale_id: int, actor) -> Sale:
    """Abandon a draft sale; stock is untouched."""
    require_permission(actor, "CREATE_SALE")

    def _op():
        begin_write()
        sale = _load_sale(sale_id, lock=True)
        _require_draft(sale)
        sale.status = "ABANDONED"
        db.session.flush()
        change_feed.record_change("sales", "abandoned", sale.id, {"status": sale.status})
        db.session.commit()
        return sale

    return run_with_retry(_op)
