# backend/stockroom/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Create/add/reduce/replace/delete require MANAGE_INVENTORY permission
- Stock history requires VIEW_AUDIT_LOG permission
"""
from flask import Blueprint, request, g

from ..models import ProductCell
from ..services import inventory_service, reporting_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    read_int_field,
    optional_int_arg,
    optional_date_arg,
    enforce_rules_cell_create,
)
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

CELL_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "part_number", "model_no", "warehouse", "quantity", "category", "image_url"},
    required_on_create={"name", "part_number", "model_no", "warehouse", "quantity"},
)


@inventory_bp.get("/cells")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_cells_route():
    cells = inventory_service.list_cells(
        g.current_user,
        search=request.args.get("search"),
        warehouse=request.args.get("warehouse"),
        category=request.args.get("category"),
    )
    return {"items": [c.to_dict() for c in cells], "count": len(cells)}, 200


@inventory_bp.post("/cells")
@require_auth
@require_permission("MANAGE_INVENTORY")
def create_cell_route():
    """
    Create a product cell (product variant in one warehouse).

    409 duplicate_cell if the same name/part/model/warehouse exists, ignoring case.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(
        model=ProductCell,
        payload=payload,
        policy=CELL_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_cell_create(patch)

    cell = inventory_service.create_cell(
        name=patch["name"],
        part_number=patch["part_number"],
        model_no=patch["model_no"],
        warehouse=patch["warehouse"],
        initial_quantity=patch["quantity"],
        category=patch.get("category"),
        image_url=patch.get("image_url"),
        actor=g.current_user,
    )
    return {"cell": cell.to_dict()}, 201


@inventory_bp.get("/cells/<int:cell_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_cell_route(cell_id: int):
    cell = inventory_service.get_cell(cell_id, g.current_user)
    return {"cell": cell.to_dict()}, 200


@inventory_bp.delete("/cells/<int:cell_id>")
@require_auth
@require_permission("MANAGE_INVENTORY")
def delete_cell_route(cell_id: int):
    deleted = inventory_service.delete_cell(cell_id, g.current_user)
    return {"deleted": deleted}, 200


@inventory_bp.post("/cells/<int:cell_id>/add")
@require_auth
@require_permission("MANAGE_INVENTORY")
def add_quantity_route(cell_id: int):
    amount = read_int_field(request.get_json(silent=True), "amount")
    cell = inventory_service.add_quantity(cell_id, amount, g.current_user)
    return {"cell": cell.to_dict()}, 200


@inventory_bp.post("/cells/<int:cell_id>/reduce")
@require_auth
@require_permission("MANAGE_INVENTORY")
def reduce_quantity_route(cell_id: int):
    amount = read_int_field(request.get_json(silent=True), "amount")
    cell = inventory_service.reduce_quantity(cell_id, amount, g.current_user)
    return {"cell": cell.to_dict()}, 200


@inventory_bp.post("/cells/<int:cell_id>/replace")
@require_auth
@require_permission("MANAGE_INVENTORY")
def replace_quantity_route(cell_id: int):
    quantity = read_int_field(request.get_json(silent=True), "quantity")
    cell = inventory_service.replace_quantity(cell_id, quantity, g.current_user)
    return {"cell": cell.to_dict()}, 200


@inventory_bp.get("/products")
@require_auth
@require_permission("VIEW_INVENTORY")
def grouped_products_route():
    """Cells grouped by "Name (PN)", as the sales screen lists them."""
    groups = inventory_service.group_products(g.current_user, search=request.args.get("search"))
    return {
        "products": [
            {
                "key": key,
                "total_quantity": sum(c.quantity for c in cells),
                "cells": [c.to_dict() for c in cells],
            }
            for key, cells in groups.items()
        ]
    }, 200


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    threshold = optional_int_arg(request.args, "threshold")
    cells = inventory_service.low_stock(g.current_user, threshold)
    return {"items": [c.to_dict() for c in cells], "count": len(cells)}, 200


@inventory_bp.get("/history")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def stock_history_route():
    """
    Stock history, newest first.

    Query params: search, warehouse, date (YYYY-MM-DD), limit, cursor,
    order ("desc" default, or "asc").
    """
    limit = optional_int_arg(request.args, "limit")
    entries, next_cursor = reporting_service.list_stock_history(
        g.current_user,
        search=request.args.get("search"),
        warehouse=request.args.get("warehouse"),
        day=optional_date_arg(request.args, "date"),
        limit=limit if limit is not None else 200,
        cursor=optional_int_arg(request.args, "cursor"),
        newest_first=request.args.get("order", "desc").lower() != "asc",
    )
    return {
        "items": [e.to_dict() for e in entries],
        "next_cursor": next_cursor,
        "warehouses": reporting_service.list_warehouses(g.current_user),
    }, 200
