# Overview: Role names and the permissions each role carries by default.

ROLE_NONE = "none"
ROLE_VIEWER = "viewer"
ROLE_MANAGER = "manager"
ROLE_ADMIN = "admin"

ROLES = (ROLE_NONE, ROLE_VIEWER, ROLE_MANAGER, ROLE_ADMIN)

# Default role for self-registered accounts
DEFAULT_ROLE = ROLE_VIEWER

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: [
        # Admin gets ALL permissions
        "VIEW_INVENTORY",
        "MANAGE_INVENTORY",
        "VIEW_AUDIT_LOG",
        "CREATE_SALE",
        "VIEW_SALES",
        "VIEW_USERS",
        "CREATE_USER",
        "DELETE_USER",
        "ASSIGN_ROLES",
        "PROCESS_ROLE_REQUESTS",
        "REQUEST_ROLE",
    ],
    ROLE_MANAGER: [
        "VIEW_INVENTORY",
        "MANAGE_INVENTORY",
        "VIEW_AUDIT_LOG",
        "CREATE_SALE",
        "VIEW_SALES",
        "REQUEST_ROLE",
    ],
    ROLE_VIEWER: [
        "VIEW_INVENTORY",
        "VIEW_AUDIT_LOG",
        "REQUEST_ROLE",
    ],
    ROLE_NONE: [
        "REQUEST_ROLE",
    ],
}
