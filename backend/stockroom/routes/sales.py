# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales document routes.

SECURITY:
- Creating, editing, committing and abandoning sales requires CREATE_SALE
- Reading a sale requires VIEW_SALES
"""

from flask import Blueprint, request, g

from ..models import SaleLine
from ..services import sales_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_sale_line
from ..decorators import require_auth, require_permission

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_LINE_POLICY = ModelValidationPolicy(
    writable_fields={"cell_id", "quantity", "unit_price_cents"},
    required_on_create={"cell_id", "quantity", "unit_price_cents"},
)


def _customer_name(payload: dict):
    name = payload.get("customer_name")
    return name if isinstance(name, str) else None


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def open_sale_route():
    payload = request.get_json(silent=True) or {}
    sale = sales_service.open_sale(g.current_user, customer_name=_customer_name(payload))
    return {"sale": sale.to_dict()}, 201


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id, g.current_user)
    return {"sale": sale.to_dict()}, 200


@sales_bp.post("/<int:sale_id>/lines")
@require_auth
@require_permission("CREATE_SALE")
def add_line_route(sale_id: int):
    """
    Add line item to a draft sale.

    Only checks this line against the current quantity; stock is reduced at commit.
    """
    patch = validate_payload(
        model=SaleLine,
        payload=request.get_json(silent=True) or {},
        policy=SALE_LINE_POLICY,
        partial=False,
    )
    enforce_rules_sale_line(patch)

    line = sales_service.add_line(
        sale_id,
        patch["cell_id"],
        patch["quantity"],
        patch["unit_price_cents"],
        g.current_user,
    )
    return {"line": line.to_dict()}, 201


@sales_bp.delete("/<int:sale_id>/lines/<int:line_id>")
@require_auth
@require_permission("CREATE_SALE")
def remove_line_route(sale_id: int, line_id: int):
    sale = sales_service.remove_line(sale_id, line_id, g.current_user)
    return {"sale": sale.to_dict()}, 200


@sales_bp.post("/<int:sale_id>/commit")
@require_auth
@require_permission("CREATE_SALE")
def commit_sale_route(sale_id: int):
    """
    Commit the sale: stock reduced, audit entries written and invoice issued
    in one transaction.
    """
    payload = request.get_json(silent=True) or {}
    invoice = sales_service.commit_sale(sale_id, g.current_user, customer_name=_customer_name(payload))
    return {"invoice": invoice.to_dict()}, 201


@sales_bp.post("/<int:sale_id>/abandon")
@require_auth
@require_permission("CREATE_SALE")
def abandon_sale_route(sale_id: int):
    sale = sales_service.abandon_sale(sale_id, g.current_user)
    return {"sale": sale.to_dict()}, 200
