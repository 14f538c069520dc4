"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- The read-only "user" role is denied every write (403)
- Editors run operations but cannot delete, void or manage users
- Banned users lose their sessions immediately
"""

import pytest

from stockbook.permissions import ROLE_PERMISSIONS, STATEMENT, permissions_for_role, role_allows
from stockbook.services import auth_service, sales_service
from stockbook.validation import ValidationError


# =============================================================================
# ROLE TABLE
# =============================================================================


class TestRoleTable:

    def test_roles_only_grant_declared_actions(self):
        for role, grants in ROLE_PERMISSIONS.items():
            for resource, actions in grants.items():
                assert resource in STATEMENT, f"{role}: unknown resource {resource}"
                assert set(actions) <= set(STATEMENT[resource]), f"{role}: unknown action on {resource}"

    def test_admin_has_everything(self):
        for resource, actions in STATEMENT.items():
            for action in actions:
                assert role_allows("admin", resource, action)

    def test_user_role_is_read_only(self):
        assert all(code.endswith(":read") for code in permissions_for_role("user"))

    def test_unknown_role_grants_nothing(self):
        assert permissions_for_role("superuser") == []
        assert not role_allows(None, "product", "read")


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/stock/overview"),
            ("POST", "/api/stock/in"),
            ("POST", "/api/stock/1/correct"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("POST", "/api/sales/1/void"),
            ("POST", "/api/sales/1/payments"),
            ("GET", "/api/payments/unpaid"),
            ("GET", "/api/admin/users"),
            ("GET", "/api/admin/audit"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# READ-ONLY ROLE - 403 ON WRITES
# =============================================================================


class TestViewerDenied:

    def test_can_read(self, client, viewer_headers):
        assert client.get("/api/products", headers=viewer_headers).status_code == 200
        assert client.get("/api/sales", headers=viewer_headers).status_code == 200

    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("POST", "/api/products", "product:create"),
            ("POST", "/api/stock/in", "stock:create"),
            ("POST", "/api/stock/1/correct", "stock:adjust"),
            ("POST", "/api/sales", "sale:create"),
            ("POST", "/api/sales/1/payments", "payment:create"),
            ("GET", "/api/admin/audit", "audit:read"),
        ],
    )
    def test_writes_denied(self, client, viewer_headers, method, path, permission):
        resp = getattr(client, method.lower())(path, json={}, headers=viewer_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == permission


# =============================================================================
# EDITOR LIMITS
# =============================================================================


class TestEditorLimits:

    def test_cannot_void(self, client, editor_headers, make_product):
        product = make_product(stock=2)
        sale = sales_service.create_sale([{"product_id": product.id, "quantity": 1}])
        resp = client.post(f"/api/sales/{sale.id}/void", headers=editor_headers)
        assert resp.status_code == 403

    def test_cannot_delete_product(self, client, editor_headers, make_product):
        product = make_product()
        assert client.delete(f"/api/products/{product.id}", headers=editor_headers).status_code == 403

    def test_cannot_manage_users(self, client, editor_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "x", "email": "x@x.com", "password": "P@ssw0rd123!"},
            headers=editor_headers,
        )
        assert resp.status_code == 403

    def test_viewer_cannot_change_stock_through_product_edit(self, client, make_product, viewer_headers):
        product = make_product(stock=3)
        resp = client.patch(f"/api/products/{product.id}", json={"current_stock": 10}, headers=viewer_headers)
        assert resp.status_code == 403


# =============================================================================
# BANS
# =============================================================================


class TestBan:

    def test_ban_revokes_existing_sessions(self, client, editor_user, editor_headers, admin_user):
        assert client.get("/api/auth/me", headers=editor_headers).status_code == 200

        auth_service.ban_user(editor_user.id, "Policy", actor_user_id=admin_user.id)
        assert client.get("/api/auth/me", headers=editor_headers).status_code == 401

    def test_admin_cannot_ban_self(self, admin_user):
        with pytest.raises(ValidationError):
            auth_service.ban_user(admin_user.id, actor_user_id=admin_user.id)
