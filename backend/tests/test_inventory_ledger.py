"""
Inventory ledger tests.

Verifies:
- Every quantity change writes exactly one stock history entry
- Quantities never go negative; rejected changes leave no trace
- Cell identity ignores case (DuplicateCell)
- Stock history rows are immutable
"""

import pytest

from stockroom.errors import (
    DuplicateCellError,
    ImmutabilityViolationError,
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from stockroom.extensions import db
from stockroom.models import ProductCell, StockHistoryEntry
from stockroom.services import inventory_service
from stockroom.validation import MAX_QUANTITY


def _history(cell_id=None):
    query = db.session.query(StockHistoryEntry)
    if cell_id is not None:
        query = query.filter_by(cell_id=cell_id)
    return query.order_by(StockHistoryEntry.occurred_at.asc(), StockHistoryEntry.id.asc()).all()


# =============================================================================
# MUTATIONS
# =============================================================================


class TestQuantityMutations:

    def test_create_writes_new_product_entry(self, widget, manager):
        entries = _history(widget.id)
        assert len(entries) == 1
        assert entries[0].change == "+10 (New Product)"
        assert entries[0].actor == manager.email
        assert entries[0].quantity_after == 10

    def test_reduce_to_zero_then_insufficient(self, manager):
        cell = inventory_service.create_cell(
            name="Bolt", part_number="B1", model_no="M8", warehouse="WH1",
            initial_quantity=5, actor=manager,
        )

        inventory_service.reduce_quantity(cell.id, 5, manager)
        assert db.session.get(ProductCell, cell.id).quantity == 0

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.reduce_quantity(cell.id, 1, manager)
        assert exc.value.details["on_hand"] == 0

        assert db.session.get(ProductCell, cell.id).quantity == 0
        assert [e.change for e in _history(cell.id)] == ["+5 (New Product)", "-5"]

    def test_add_then_reduce_restores_quantity(self, widget, manager):
        inventory_service.add_quantity(widget.id, 7, manager)
        inventory_service.reduce_quantity(widget.id, 7, manager)

        assert db.session.get(ProductCell, widget.id).quantity == 10
        assert [e.change for e in _history(widget.id)] == ["+10 (New Product)", "+7", "-7"]

    def test_replace_records_old_and_new(self, widget, manager):
        inventory_service.replace_quantity(widget.id, 3, manager)

        last = _history(widget.id)[-1]
        assert last.change == "10 → 3 (Replaced)"
        assert last.quantity_delta == -7
        assert last.quantity_after == 3

    def test_replace_with_zero_allowed(self, widget, manager):
        cell = inventory_service.replace_quantity(widget.id, 0, manager)
        assert cell.quantity == 0

    @pytest.mark.parametrize("amount", [0, -1, "3", 1.5, True])
    def test_add_rejects_non_positive_or_non_integer(self, widget, manager, amount):
        with pytest.raises(InvalidArgumentError):
            inventory_service.add_quantity(widget.id, amount, manager)
        assert len(_history(widget.id)) == 1

    def test_replace_rejects_negative(self, widget, manager):
        with pytest.raises(InvalidArgumentError):
            inventory_service.replace_quantity(widget.id, -1, manager)

    @pytest.mark.parametrize("mutate", [
        inventory_service.add_quantity,
        inventory_service.reduce_quantity,
        inventory_service.replace_quantity,
    ])
    def test_oversized_amount_rejected(self, widget, manager, mutate):
        with pytest.raises(InvalidArgumentError):
            mutate(widget.id, 10**20, manager)
        assert db.session.get(ProductCell, widget.id).quantity == 10
        assert len(_history(widget.id)) == 1

    def test_add_past_maximum_rejected(self, widget, manager):
        inventory_service.replace_quantity(widget.id, MAX_QUANTITY - 1, manager)

        inventory_service.add_quantity(widget.id, 1, manager)
        with pytest.raises(InvalidArgumentError) as exc:
            inventory_service.add_quantity(widget.id, 1, manager)

        assert exc.value.details["on_hand"] == MAX_QUANTITY
        assert db.session.get(ProductCell, widget.id).quantity == MAX_QUANTITY
        assert len(_history(widget.id)) == 3

    def test_oversized_initial_quantity_rejected(self, manager):
        with pytest.raises(InvalidArgumentError):
            inventory_service.create_cell(
                name="Bolt", part_number="B1", model_no="M8", warehouse="WH1",
                initial_quantity=MAX_QUANTITY + 1, actor=manager,
            )
        assert db.session.query(ProductCell).count() == 0

    def test_unknown_cell(self, manager):
        with pytest.raises(NotFoundError):
            inventory_service.add_quantity(999999, 1, manager)

    def test_every_mutation_has_one_entry(self, widget, manager):
        inventory_service.add_quantity(widget.id, 2, manager)
        inventory_service.reduce_quantity(widget.id, 4, manager)
        inventory_service.replace_quantity(widget.id, 20, manager)
        with pytest.raises(InsufficientStockError):
            inventory_service.reduce_quantity(widget.id, 21, manager)

        assert len(_history(widget.id)) == 4

    def test_occurred_at_strictly_increases(self, widget, manager):
        for _ in range(5):
            inventory_service.add_quantity(widget.id, 1, manager)

        stamps = [e.occurred_at for e in _history(widget.id)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)


# =============================================================================
# CELL IDENTITY
# =============================================================================


class TestCellIdentity:

    def test_case_differing_duplicate_rejected(self, widget, manager):
        with pytest.raises(DuplicateCellError):
            inventory_service.create_cell(
                name="widget", part_number="pn1", model_no="m1", warehouse="wh1",
                initial_quantity=5, actor=manager,
            )

        assert db.session.get(ProductCell, widget.id).quantity == 10
        assert db.session.query(ProductCell).count() == 1
        assert len(_history()) == 1

    def test_whitespace_ignored(self, widget, manager):
        with pytest.raises(DuplicateCellError):
            inventory_service.create_cell(
                name="  Widget ", part_number="PN1", model_no="M1", warehouse="WH1 ",
                initial_quantity=1, actor=manager,
            )

    def test_same_product_other_warehouse_is_new_cell(self, widget, manager):
        other = inventory_service.create_cell(
            name="Widget", part_number="PN1", model_no="M1", warehouse="WH2",
            initial_quantity=4, actor=manager,
        )
        assert other.id != widget.id

    def test_missing_field(self, manager):
        with pytest.raises(InvalidArgumentError):
            inventory_service.create_cell(
                name="", part_number="PN1", model_no="M1", warehouse="WH1",
                initial_quantity=1, actor=manager,
            )

    def test_delete_keeps_history(self, widget, manager):
        cell_id = widget.id
        snapshot = inventory_service.delete_cell(cell_id, manager)

        assert snapshot["name"] == "Widget"
        assert db.session.get(ProductCell, cell_id) is None
        entries = _history(cell_id)
        assert [e.change for e in entries] == ["+10 (New Product)", "Product Deleted"]
        assert entries[-1].product_name == "Widget"
        assert entries[-1].warehouse == "WH1"

    def test_delete_frees_identity(self, widget, manager):
        inventory_service.delete_cell(widget.id, manager)
        again = inventory_service.create_cell(
            name="Widget", part_number="PN1", model_no="M1", warehouse="WH1",
            initial_quantity=1, actor=manager,
        )
        assert again.quantity == 1


# =============================================================================
# READS
# =============================================================================


class TestInventoryReads:

    def test_group_products_by_name_and_part(self, widget, manager):
        inventory_service.create_cell(
            name="Widget", part_number="PN1", model_no="M1", warehouse="WH2",
            initial_quantity=3, actor=manager,
        )
        inventory_service.create_cell(
            name="Gadget", part_number="G7", model_no="X", warehouse="WH1",
            initial_quantity=1, actor=manager,
        )

        groups = inventory_service.group_products(manager)
        assert list(groups.keys()) == ["Gadget (G7)", "Widget (PN1)"]
        assert sorted(c.warehouse for c in groups["Widget (PN1)"]) == ["WH1", "WH2"]

    def test_list_filters(self, widget, manager):
        inventory_service.create_cell(
            name="Gadget", part_number="G7", model_no="X", warehouse="WH2",
            initial_quantity=1, actor=manager,
        )

        assert [c.name for c in inventory_service.list_cells(manager, search="gad")] == ["Gadget"]
        assert [c.name for c in inventory_service.list_cells(manager, warehouse="wh1")] == ["Widget"]

    def test_low_stock_uses_default_threshold(self, widget, manager):
        low = inventory_service.create_cell(
            name="Nut", part_number="N1", model_no="M8", warehouse="WH1",
            initial_quantity=5, actor=manager,
        )
        assert [c.id for c in inventory_service.low_stock(manager)] == [low.id]

    def test_viewer_can_read(self, widget, viewer):
        assert inventory_service.get_cell(widget.id, viewer).name == "Widget"

    def test_viewer_cannot_mutate(self, widget, viewer):
        with pytest.raises(PermissionDeniedError):
            inventory_service.add_quantity(widget.id, 1, viewer)
        assert db.session.get(ProductCell, widget.id).quantity == 10

    def test_role_none_cannot_read(self, widget, nobody):
        with pytest.raises(PermissionDeniedError):
            inventory_service.list_cells(nobody)


# =============================================================================
# IMMUTABILITY
# =============================================================================


class TestStockHistoryImmutability:

    def test_update_rejected(self, widget):
        entry = _history(widget.id)[0]
        entry.change = "+1000"
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()

        assert _history(widget.id)[0].change == "+10 (New Product)"

    def test_delete_rejected(self, widget):
        entry = _history(widget.id)[0]
        db.session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()

        assert len(_history(widget.id)) == 1
