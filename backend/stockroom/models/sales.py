from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

WALK_IN_CUSTOMER = "Walk-in Customer"


class Sale(db.Model):
    """
    Sale cart (document-first, not inventory-first).

    WHY: Lines are collected against the ledger without touching it; only
    commit reduces stock, and it does so together with invoice creation in
    one transaction.

    Lifecycle: DRAFT -> COMMITTED | ABANDONED
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    committed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, unique=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        backref=db.backref("sale", lazy=True),
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        lazy=True,
    )
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id])

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "status": self.status,
            "customer_name": self.customer_name,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "committed_at": to_utc_z(self.committed_at) if self.committed_at else None,
            "invoice_id": self.invoice_id,
            "total_items": sum(line.quantity for line in self.lines),
            "total_amount_cents": sum(line.line_total_cents for line in self.lines),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Line item on a draft sale; product fields snapshot the cell at add time."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_lines_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    cell_id = db.Column(db.Integer, nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    part_number = db.Column(db.String(128), nullable=False)
    model_no = db.Column(db.String(128), nullable=False)
    warehouse = db.Column(db.String(128), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Quantity on hand when the line was added (optimistic; re-checked at commit)
    available_at_add = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "cell_id": self.cell_id,
            "name": self.name,
            "part_number": self.part_number,
            "model_no": self.model_no,
            "warehouse": self.warehouse,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "available_at_add": self.available_at_add,
            "created_at": to_utc_z(self.created_at),
        }


class Invoice(db.Model):
    """
    Immutable record of a committed sale.

    invoice_number is allocated from DocumentSequence("INVOICE") and is
    unique and strictly increasing ("INV-1000", "INV-1001", ...).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
        db.Index("ix_invoices_issued", "issued_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False, default=WALK_IN_CUSTOMER)

    total_items = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    generated_by = db.Column(db.String(255), nullable=False)
    generated_by_user_id = db.Column(db.Integer, nullable=True, index=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    lines = db.relationship(
        "InvoiceLine",
        backref=db.backref("invoice", lazy=True),
        order_by="InvoiceLine.id",
        lazy=True,
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "total_items": self.total_items,
            "total_amount_cents": self.total_amount_cents,
            "generated_by": self.generated_by,
            "generated_by_user_id": self.generated_by_user_id,
            "issued_at": to_utc_z(self.issued_at),
            "date": self.issued_at.date().isoformat() if self.issued_at else None,
            "time": self.issued_at.time().replace(microsecond=0).isoformat() if self.issued_at else None,
            "warehouses": sorted({line.warehouse for line in self.lines}),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    """Immutable invoice line item."""
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    cell_id = db.Column(db.Integer, nullable=True)

    name = db.Column(db.String(255), nullable=False)
    part_number = db.Column(db.String(128), nullable=False)
    model_no = db.Column(db.String(128), nullable=False)
    warehouse = db.Column(db.String(128), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cell_id": self.cell_id,
            "name": self.name,
            "part_number": self.part_number,
            "model_no": self.model_no,
            "warehouse": self.warehouse,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }
