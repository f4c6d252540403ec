# Overview: Flask API routes for role change requests.

"""
Role change request routes.

- Any authenticated user holding REQUEST_ROLE may submit and read their own requests
- Listing pending requests and deciding them is reserved to admins
"""

from flask import Blueprint, request, g

from ..services import role_request_service
from ..validation import optional_int_arg, ValidationError
from ..decorators import require_auth, require_permission

role_requests_bp = Blueprint("role_requests", __name__, url_prefix="/api/role-requests")


@role_requests_bp.post("")
@require_auth
@require_permission("REQUEST_ROLE")
def submit_request_route():
    payload = request.get_json(silent=True) or {}
    requested_role = payload.get("requested_role")
    if not requested_role:
        raise ValidationError("requested_role is required", {"field": "requested_role"})

    role_request = role_request_service.submit_request(g.current_user, requested_role)
    return {"request": role_request.to_dict(), "message": "Role change request submitted successfully"}, 201


@role_requests_bp.get("/mine")
@require_auth
@require_permission("REQUEST_ROLE")
def my_requests_route():
    history = role_request_service.request_history(g.current_user, g.current_user.id)
    return {
        "current_role": g.current_user.role,
        "items": [r.to_dict() for r in history],
    }, 200


@role_requests_bp.get("/pending")
@require_auth
@require_permission("PROCESS_ROLE_REQUESTS")
def pending_requests_route():
    pending = role_request_service.list_pending(g.current_user)
    return {"items": [r.to_dict() for r in pending], "count": len(pending)}, 200


@role_requests_bp.get("/history/<int:user_id>")
@require_auth
@require_permission("PROCESS_ROLE_REQUESTS")
def request_history_route(user_id: int):
    history = role_request_service.request_history(g.current_user, user_id)
    return {"items": [r.to_dict() for r in history]}, 200


@role_requests_bp.post("/<int:user_id>/decision")
@require_auth
@require_permission("PROCESS_ROLE_REQUESTS")
def decide_route(user_id: int):
    """
    Body: {"action": "approve" | "reject", "request_id": optional int}

    Passing request_id guards against deciding a request that was replaced
    by a newer submission after the admin loaded the list (409 conflict).
    """
    payload = request.get_json(silent=True) or {}
    role_request = role_request_service.decide(
        g.current_user,
        user_id,
        payload.get("action"),
        request_id=optional_int_arg(payload, "request_id"),
    )
    return {"request": role_request.to_dict()}, 200
