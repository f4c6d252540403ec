# Overview: Flask API routes for invoices and the sales history summary.

from flask import Blueprint, request, g

from ..services import reporting_service
from ..validation import optional_date_arg
from ..decorators import require_auth, require_permission

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _filters() -> dict:
    return {
        "search": request.args.get("search"),
        "warehouse": request.args.get("warehouse"),
        "day": optional_date_arg(request.args, "date"),
    }


@invoices_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_invoices_route():
    """Invoices, newest first. Query params: search, warehouse, date (YYYY-MM-DD)."""
    filters = _filters()
    invoices = reporting_service.list_invoices(g.current_user, **filters)
    return {
        "items": [inv.to_dict(include_lines=False) for inv in invoices],
        "summary": reporting_service.sales_summary(g.current_user, **filters),
    }, 200


@invoices_bp.get("/summary")
@require_auth
@require_permission("VIEW_SALES")
def sales_summary_route():
    return {"summary": reporting_service.sales_summary(g.current_user, **_filters())}, 200


@invoices_bp.get("/<invoice_ref>")
@require_auth
@require_permission("VIEW_SALES")
def get_invoice_route(invoice_ref: str):
    """Look up by numeric id or by invoice number ("INV-1000")."""
    if invoice_ref.isdigit():
        invoice = reporting_service.get_invoice(g.current_user, invoice_id=int(invoice_ref))
    else:
        invoice = reporting_service.get_invoice(g.current_user, invoice_number=invoice_ref)
    return {"invoice": invoice.to_dict()}, 200
