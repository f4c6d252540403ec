# Overview: Flask API routes for admin user management.

"""
Admin routes: user listing, creation, deletion and direct role changes.

SECURITY: each route checks its own permission; direct role changes are
additionally reserved to role=admin inside the service.
"""

from flask import Blueprint, request, g

from ..services import auth_service, role_request_service, user_service
from ..validation import ValidationError
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_permission("VIEW_USERS")
def list_users_route():
    users = user_service.list_users(g.current_user)
    return {"users": [u.to_dict() for u in users]}, 200


@admin_bp.post("/users")
@require_auth
@require_permission("CREATE_USER")
def create_user_route():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("email", "password", "role") if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})

    user = auth_service.create_user(
        g.current_user,
        email=data["email"],
        password=data["password"],
        role=data["role"],
        display_name=data.get("display_name"),
    )
    return {"user": user.to_dict()}, 201


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission("VIEW_USERS")
def get_user_route(user_id: int):
    user = user_service.get_user(g.current_user, user_id)
    return {"user": user.to_dict()}, 200


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_permission("DELETE_USER")
def delete_user_route(user_id: int):
    deleted = user_service.delete_user(g.current_user, user_id)
    return {"deleted": deleted}, 200


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_permission("ASSIGN_ROLES")
def change_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        raise ValidationError("role is required", {"field": "role"})

    user = role_request_service.direct_change(g.current_user, user_id, data["role"])
    return {"user": user.to_dict()}, 200
