# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    USER_PERMISSIONS,
    ROLE_PERMISSIONS,
)
from .roles import (
    DEFAULT_ROLE,
    DEFAULT_ROLE_PERMISSIONS,
    ROLES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_NONE,
    ROLE_VIEWER,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_role_permissions,
    is_valid_role,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "USER_PERMISSIONS",
    "ROLE_PERMISSIONS",
    "DEFAULT_ROLE",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_NONE",
    "ROLE_VIEWER",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_role_permissions",
    "is_valid_role",
]
