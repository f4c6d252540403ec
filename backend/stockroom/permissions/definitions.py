# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View product cells, quantities and grouped products",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_INVENTORY",
        "Manage Inventory",
        "Create, add to, reduce, replace and delete product cells",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_AUDIT_LOG",
        "View Stock History",
        "View the append-only stock history",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Build sale carts and commit them into invoices",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View invoices and sales summaries",
        PermissionCategory.SALES,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "List user accounts and their roles",
        PermissionCategory.USERS,
    ),
    (
        "CREATE_USER",
        "Create User",
        "Create user accounts with an explicit role",
        PermissionCategory.USERS,
    ),
    (
        "DELETE_USER",
        "Delete User",
        "Delete user profiles (credentials are removed asynchronously)",
        PermissionCategory.USERS,
    ),
]


# -- ROLES --

ROLE_PERMISSIONS = [
    (
        "ASSIGN_ROLES",
        "Assign Roles",
        "Change a user's role directly, bypassing the request workflow",
        PermissionCategory.ROLES,
    ),
    (
        "PROCESS_ROLE_REQUESTS",
        "Process Role Requests",
        "Approve or reject pending role change requests",
        PermissionCategory.ROLES,
    ),
    (
        "REQUEST_ROLE",
        "Request Role",
        "Submit a role change request for one's own account",
        PermissionCategory.ROLES,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + USER_PERMISSIONS
    + ROLE_PERMISSIONS
)
