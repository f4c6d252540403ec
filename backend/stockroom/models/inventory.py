from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


def cell_identity_key(name: str, part_number: str, model_no: str, warehouse: str) -> str:
    """
    Case-insensitive identity of a stockable cell.

    Two cells are the same cell when name, part number, model and warehouse
    all match ignoring case and surrounding whitespace.
    """
    parts = (name, part_number, model_no, warehouse)
    return "\x1f".join((p or "").strip().casefold() for p in parts)


def product_group_key(name: str, part_number: str) -> str:
    """Display key used to group cells of the same logical product."""
    return f"{name} ({part_number})"


class ProductCell(db.Model):
    """
    One stockable cell: a product variant (name, part number, model) held in
    one warehouse, with its own quantity.

    INVARIANTS:
    - quantity >= 0 (DB check constraint; services reject first)
    - identity_key unique (DuplicateCell on collision)
    - every quantity change is paired with a StockHistoryEntry in the same
      transaction (see services/inventory_service.py)
    """
    __tablename__ = "product_cells"
    __table_args__ = (
        db.UniqueConstraint("identity_key", name="uq_product_cells_identity"),
        db.CheckConstraint("quantity >= 0", name="ck_product_cells_quantity_non_negative"),
        db.Index("ix_product_cells_name_part", "name", "part_number"),
        db.Index("ix_product_cells_warehouse", "warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    part_number = db.Column(db.String(128), nullable=False)
    model_no = db.Column(db.String(128), nullable=False)
    warehouse = db.Column(db.String(128), nullable=False)
    identity_key = db.Column(db.String(700), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(128), nullable=True, index=True)
    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<ProductCell id={self.id} name={self.name!r} part={self.part_number!r} "
            f"model={self.model_no!r} warehouse={self.warehouse!r} qty={self.quantity}>"
        )

    @property
    def group_key(self) -> str:
        return product_group_key(self.name, self.part_number)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "part_number": self.part_number,
            "model_no": self.model_no,
            "warehouse": self.warehouse,
            "quantity": self.quantity,
            "category": self.category,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StockHistoryEntry(db.Model):
    """
    Append-only stock history: one row per ledger mutation.

    Product fields are denormalized so entries stay readable after the cell
    is deleted; cell_id deliberately has no foreign key.
    Rows are immutable (see immutability.py).
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.Index("ix_stock_history_occurred", "occurred_at", "id"),
        db.Index("ix_stock_history_warehouse_occurred", "warehouse", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    cell_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    part_number = db.Column(db.String(128), nullable=False)
    model_no = db.Column(db.String(128), nullable=False)
    warehouse = db.Column(db.String(128), nullable=False)

    # Human-readable change as shown in stock history: "+5", "-2 (Sale)", "3 → 9 (Replaced)"
    change = db.Column(db.String(128), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=True)
    quantity_after = db.Column(db.Integer, nullable=True)

    actor = db.Column(db.String(255), nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    invoice_number = db.Column(db.String(32), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cell_id": self.cell_id,
            "product_name": self.product_name,
            "part_number": self.part_number,
            "model_no": self.model_no,
            "warehouse": self.warehouse,
            "change": self.change,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "actor": self.actor,
            "actor_user_id": self.actor_user_id,
            "invoice_number": self.invoice_number,
            "occurred_at": to_utc_z(self.occurred_at),
        }
