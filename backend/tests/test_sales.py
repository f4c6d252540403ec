"""
Sales commit tests.

Verifies:
- Commit reduces every line's cell, writes "-q (Sale)" entries and issues
  an invoice in one transaction
- A shortfall on any cell (lines summed per cell) applies nothing
- Invoice numbers start at INV-1000 and never repeat
"""

import pytest

from stockroom.errors import (
    ConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    InvalidArgumentError,
    PermissionDeniedError,
)
from stockroom.extensions import db
from stockroom.models import (
    DocumentSequence,
    Invoice,
    ProductCell,
    Sale,
    StockHistoryEntry,
    WALK_IN_CUSTOMER,
)
from stockroom.services import document_service, inventory_service, sales_service
from stockroom.time_utils import utcnow
from stockroom.validation import MAX_PRICE_CENTS, MAX_QUANTITY


@pytest.fixture
def gadget(manager):
    return inventory_service.create_cell(
        name="Gadget", part_number="G7", model_no="X", warehouse="WH2",
        initial_quantity=5, actor=manager,
    )


def _quantity(cell_id):
    return db.session.get(ProductCell, cell_id).quantity


def _history_count():
    return db.session.query(StockHistoryEntry).count()


# =============================================================================
# COMMIT
# =============================================================================


class TestCommitSale:

    def test_commit_reduces_stock_and_issues_invoice(self, widget, gadget, manager):
        sale = sales_service.open_sale(manager, customer_name="ACME Ltd")
        sales_service.add_line(sale.id, widget.id, 3, 250, manager)
        sales_service.add_line(sale.id, gadget.id, 2, 1000, manager)

        invoice = sales_service.commit_sale(sale.id, manager)

        assert invoice.invoice_number == "INV-1000"
        assert invoice.customer_name == "ACME Ltd"
        assert invoice.total_items == 5
        assert invoice.total_amount_cents == 3 * 250 + 2 * 1000
        assert invoice.generated_by == manager.email
        assert len(invoice.lines) == 2

        assert _quantity(widget.id) == 7
        assert _quantity(gadget.id) == 3

        sale_entries = (
            db.session.query(StockHistoryEntry)
            .filter_by(invoice_number="INV-1000")
            .order_by(StockHistoryEntry.id.asc())
            .all()
        )
        assert [e.change for e in sale_entries] == ["-3 (Sale)", "-2 (Sale)"]

        committed = db.session.get(Sale, sale.id)
        assert committed.status == "COMMITTED"
        assert committed.invoice_id == invoice.id

    def test_combined_lines_exceeding_stock_apply_nothing(self, gadget, manager):
        sale = sales_service.open_sale(manager)
        # Each line fits on its own; together they need 6 of 5
        sales_service.add_line(sale.id, gadget.id, 3, 100, manager)
        sales_service.add_line(sale.id, gadget.id, 3, 100, manager)
        before = _history_count()

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.commit_sale(sale.id, manager)

        item = exc.value.details["items"][0]
        assert item["requested_quantity"] == 6
        assert item["on_hand"] == 5

        assert _quantity(gadget.id) == 5
        assert _history_count() == before
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(DocumentSequence).count() == 0
        assert db.session.get(Sale, sale.id).status == "DRAFT"

    def test_shortfall_on_second_cell_leaves_first_untouched(self, widget, gadget, manager):
        sale = sales_service.open_sale(manager)
        sales_service.add_line(sale.id, widget.id, 4, 100, manager)
        sales_service.add_line(sale.id, gadget.id, 5, 100, manager)
        inventory_service.reduce_quantity(gadget.id, 1, manager)

        with pytest.raises(InsufficientStockError):
            sales_service.commit_sale(sale.id, manager)

        assert _quantity(widget.id) == 10
        assert _quantity(gadget.id) == 4

    def test_walk_in_customer_default(self, widget, manager):
        sale = sales_service.open_sale(manager)
        sales_service.add_line(sale.id, widget.id, 1, 100, manager)

        invoice = sales_service.commit_sale(sale.id, manager)
        assert invoice.customer_name == WALK_IN_CUSTOMER

    def test_customer_name_at_commit_wins(self, widget, manager):
        sale = sales_service.open_sale(manager, customer_name="Draft Name")
        sales_service.add_line(sale.id, widget.id, 1, 100, manager)

        invoice = sales_service.commit_sale(sale.id, manager, customer_name="  Final Name ")
        assert invoice.customer_name == "Final Name"

    def test_empty_sale_rejected(self, manager):
        sale = sales_service.open_sale(manager)
        with pytest.raises(InvalidArgumentError):
            sales_service.commit_sale(sale.id, manager)

    def test_commit_twice_conflicts(self, widget, manager):
        sale = sales_service.open_sale(manager)
        sales_service.add_line(sale.id, widget.id, 1, 100, manager)
        sales_service.commit_sale(sale.id, manager)

        with pytest.raises(ConflictError):
            sales_service.commit_sale(sale.id, manager)
        assert _quantity(widget.id) == 9

    def test_viewer_cannot_sell(self, viewer):
        with pytest.raises(PermissionDeniedError):
            sales_service.open_sale(viewer)


# =============================================================================
# DRAFT LINES
# =============================================================================


class TestDraftLines:

    def test_add_line_checks_current_stock(self, widget, manager):
        sale = sales_service.open_sale(manager)
        with pytest.raises(InsufficientStockError):
            sales_service.add_line(sale.id, widget.id, 11, 100, manager)
        assert db.session.get(Sale, sale.id).lines == []

    @pytest.mark.parametrize("quantity, unit_price_cents", [
        (MAX_QUANTITY + 1, 100),
        (1, MAX_PRICE_CENTS + 1),
    ])
    def test_add_line_rejects_oversized_values(self, widget, manager, quantity, unit_price_cents):
        sale = sales_service.open_sale(manager)
        with pytest.raises(InvalidArgumentError):
            sales_service.add_line(sale.id, widget.id, quantity, unit_price_cents, manager)
        assert db.session.get(Sale, sale.id).lines == []

    def test_add_line_snapshots_cell(self, widget, manager):
        sale = sales_service.open_sale(manager)
        line = sales_service.add_line(sale.id, widget.id, 2, 150, manager)

        assert line.name == "Widget"
        assert line.warehouse == "WH1"
        assert line.line_total_cents == 300
        assert line.available_at_add == 10
        # Stock is only touched at commit
        assert _quantity(widget.id) == 10

    def test_remove_line(self, widget, manager):
        sale = sales_service.open_sale(manager)
        line = sales_service.add_line(sale.id, widget.id, 2, 150, manager)

        updated = sales_service.remove_line(sale.id, line.id, manager)
        assert updated.lines == []

    def test_abandon_leaves_stock(self, widget, manager):
        sale = sales_service.open_sale(manager)
        sales_service.add_line(sale.id, widget.id, 2, 150, manager)

        abandoned = sales_service.abandon_sale(sale.id, manager)
        assert abandoned.status == "ABANDONED"
        assert _quantity(widget.id) == 10

        with pytest.raises(ConflictError):
            sales_service.add_line(sale.id, widget.id, 1, 150, manager)


# =============================================================================
# INVOICE NUMBERING
# =============================================================================


class TestInvoiceNumbering:

    def _sell_one(self, cell_id, actor):
        sale = sales_service.open_sale(actor)
        sales_service.add_line(sale.id, cell_id, 1, 100, actor)
        return sales_service.commit_sale(sale.id, actor)

    def test_sequence_increments(self, widget, manager):
        numbers = [self._sell_one(widget.id, manager).invoice_number for _ in range(3)]
        assert numbers == ["INV-1000", "INV-1001", "INV-1002"]

    def test_failed_commit_consumes_no_number(self, widget, gadget, manager):
        self._sell_one(widget.id, manager)

        sale = sales_service.open_sale(manager)
        sales_service.add_line(sale.id, gadget.id, 5, 100, manager)
        inventory_service.reduce_quantity(gadget.id, 5, manager)
        with pytest.raises(InsufficientStockError):
            sales_service.commit_sale(sale.id, manager)

        assert self._sell_one(widget.id, manager).invoice_number == "INV-1001"

    def test_seed_continues_after_existing_invoices(self, app, widget, manager):
        db.session.add(Invoice(
            invoice_number="INV-1041",
            customer_name="Legacy",
            total_items=1,
            total_amount_cents=100,
            generated_by="import",
            issued_at=utcnow(),
        ))
        db.session.commit()

        assert self._sell_one(widget.id, manager).invoice_number == "INV-1042"

    def test_parse_invoice_number(self):
        assert document_service.parse_invoice_number("INV-1042") == 1042
        assert document_service.parse_invoice_number("INV-abc") is None
        assert document_service.parse_invoice_number("1042") is None

    def test_invoice_is_immutable(self, widget, manager):
        invoice = self._sell_one(widget.id, manager)
        invoice.total_amount_cents = 1
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()

        assert db.session.get(Invoice, invoice.id).total_amount_cents == 100
