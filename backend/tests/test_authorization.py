"""
Authorization tests for the Stockroom API.

Verifies:
- Unauthenticated requests return 401
- role=none and viewer are denied writes (403)
- Role request decisions and direct role edits are reserved to admins
"""

import pytest


# =============================================================================
# UNAUTHENTICATED ACCESS — 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/inventory/cells"),
            ("POST", "/api/inventory/cells"),
            ("POST", "/api/inventory/cells/1/add"),
            ("GET", "/api/inventory/history"),
            ("POST", "/api/sales"),
            ("GET", "/api/invoices"),
            ("POST", "/api/role-requests"),
            ("GET", "/api/role-requests/pending"),
            ("GET", "/api/admin/users"),
            ("PUT", "/api/admin/users/1/role"),
            ("GET", "/api/notifications"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "unauthenticated"

    def test_garbage_token(self, client):
        resp = client.get("/api/inventory/cells", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# =============================================================================
# VIEWER DENIED WRITES — 403
# =============================================================================


class TestViewerDenied:

    def test_can_read_inventory(self, client, viewer_headers, widget):
        resp = client.get("/api/inventory/cells", headers=viewer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_cannot_add_stock(self, client, viewer_headers, widget):
        resp = client.post(f"/api/inventory/cells/{widget.id}/add", json={"amount": 1}, headers=viewer_headers)
        assert resp.status_code == 403
        assert resp.get_json()["details"]["required_permission"] == "MANAGE_INVENTORY"

    def test_cannot_open_sale(self, client, viewer_headers):
        resp = client.post("/api/sales", json={}, headers=viewer_headers)
        assert resp.status_code == 403

    def test_cannot_view_invoices(self, client, viewer_headers):
        resp = client.get("/api/invoices", headers=viewer_headers)
        assert resp.status_code == 403

    def test_cannot_list_users(self, client, viewer_headers):
        resp = client.get("/api/admin/users", headers=viewer_headers)
        assert resp.status_code == 403


class TestRoleNoneDenied:

    def test_cannot_read_inventory(self, client, nobody_headers):
        resp = client.get("/api/inventory/cells", headers=nobody_headers)
        assert resp.status_code == 403

    def test_can_request_role(self, client, nobody_headers):
        resp = client.post("/api/role-requests", json={"requested_role": "viewer"}, headers=nobody_headers)
        assert resp.status_code == 201


# =============================================================================
# ADMIN-ONLY ROLE MANAGEMENT
# =============================================================================


class TestRoleManagementReserved:

    def test_manager_cannot_list_pending(self, client, manager_headers):
        resp = client.get("/api/role-requests/pending", headers=manager_headers)
        assert resp.status_code == 403

    def test_manager_cannot_decide(self, client, manager_headers, viewer):
        resp = client.post(
            f"/api/role-requests/{viewer.id}/decision",
            json={"action": "approve"},
            headers=manager_headers,
        )
        assert resp.status_code == 403

    def test_manager_cannot_change_role(self, client, manager_headers, viewer):
        resp = client.put(f"/api/admin/users/{viewer.id}/role", json={"role": "admin"}, headers=manager_headers)
        assert resp.status_code == 403

    def test_admin_can_list_users(self, client, admin_headers, viewer):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        assert viewer.email in [u["email"] for u in resp.get_json()["users"]]


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================


class TestPublicEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_register(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"email": "New@Stockroom.test", "password": "Password123!"},
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["email"] == "new@stockroom.test"
        assert body["user"]["role"] == "viewer"
        assert "VIEW_INVENTORY" in body["permissions"]
        assert body["token"]

    def test_register_rejects_password_over_72_bytes(self, client):
        # 44 characters, 84 bytes once encoded
        password = "Aa1!" + "\u00e9" * 40
        resp = client.post(
            "/api/auth/register",
            json={"email": "long@stockroom.test", "password": password},
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "invalid_argument"


# =============================================================================
# ROLE DEFAULTS
# =============================================================================


class TestRoleDefaults:

    def test_admin_holds_every_permission(self):
        from stockroom.permissions import get_all_permission_codes, get_role_permissions

        assert get_role_permissions("admin") == set(get_all_permission_codes())

    def test_unknown_role_holds_nothing(self):
        from stockroom.permissions import get_role_permissions

        assert get_role_permissions("superuser") == set()
