# Overview: Service-layer permission checks; role -> permission lookups.

"""
Permission Checking

WHY: Enforce role-based access control in the service layer as well as in
the route decorators, so CLI jobs and tests go through the same gate.

DESIGN PRINCIPLES:
- Fail closed: unknown roles and inactive users get no permissions
- Log denials only: permission grants are not logged
"""

from __future__ import annotations

from flask import current_app, has_app_context

from ..errors import PermissionDeniedError
from ..permissions import ROLE_ADMIN, get_role_permissions


def get_user_permissions(user) -> set[str]:
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def has_permission(user, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user, permission_code: str) -> None:
    """Raise PermissionDeniedError unless `user` holds `permission_code`."""
    if has_permission(user, permission_code):
        return

    if has_app_context():
        current_app.logger.warning(
            "Permission denied: user=%s role=%s permission=%s",
            getattr(user, "id", None),
            getattr(user, "role", None),
            permission_code,
        )
    raise PermissionDeniedError(
        f"Missing permission: {permission_code}",
        {"required_permission": permission_code},
    )


def require_admin(user) -> None:
    """Role-request decisions and direct role edits are reserved to the admin role itself."""
    if user is not None and user.is_active and user.role == ROLE_ADMIN:
        return
    raise PermissionDeniedError(
        "Admin role required",
        {"required_role": ROLE_ADMIN},
    )
