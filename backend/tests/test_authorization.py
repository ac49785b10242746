"""
Authorization tests for PartsPOS.

Verifies:
- Unauthenticated requests return 401
- Roles are enforced per endpoint (403)
- Login, logout and session revocation
- Destructive operations require re-entering a password
"""

import pytest

from partspos.extensions import db
from partspos.models import Invoice

from conftest import PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("GET", "/api/products"),
            ("GET", "/api/customers"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/debts"),
            ("POST", "/api/debts/lend"),
            ("GET", "/api/deposits"),
            ("GET", "/api/expenses"),
            ("GET", "/api/settings/exchange-rate"),
            ("GET", "/api/settings/shop-balance"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/audit-logs"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:
    def test_login_by_username_and_email(self, client, cashier_user):
        assert get_auth_token(client, "cashier") is not None
        resp = client.post("/api/auth/login", json={"email": "cashier@partspos.test", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "CASHIER"

    def test_wrong_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "WrongPass1"})
        assert resp.status_code == 401

    def test_inactive_user_cannot_login(self, client, cashier_user):
        cashier_user.is_active = False
        db.session.commit()
        assert get_auth_token(client, "cashier") is None

    def test_me_and_logout(self, client, cashier_user):
        headers = auth_headers(get_auth_token(client, "cashier"))
        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "cashier"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


# =============================================================================
# USER MANAGEMENT - ADMIN ONLY
# =============================================================================


class TestUserManagement:
    def test_cashier_cannot_list_users(self, client, cashier_headers):
        assert client.get("/api/users", headers=cashier_headers).status_code == 403

    def test_admin_creates_user(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "newcashier", "email": "new@partspos.test", "password": PASSWORD, "role": "CASHIER",
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert get_auth_token(client, "newcashier") is not None

    def test_weak_password_rejected(self, client, admin_headers):
        resp = client.post("/api/users", json={
            "username": "weak", "email": "weak@partspos.test", "password": "short", "role": "CASHIER",
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_duplicate_username_is_409(self, client, admin_headers, cashier_user):
        resp = client.post("/api/users", json={
            "username": "cashier", "email": "other@partspos.test", "password": PASSWORD, "role": "CASHIER",
        }, headers=admin_headers)
        assert resp.status_code == 409

    def test_deactivation_revokes_sessions(self, client, admin_headers, cashier_user):
        cashier_headers = auth_headers(get_auth_token(client, "cashier"))
        resp = client.patch(f"/api/users/{cashier_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401


# =============================================================================
# ROLE ENFORCEMENT - 403
# =============================================================================


class TestRoleEnforcement:
    def test_cashier_cannot_lend(self, client, cashier_headers, customer):
        resp = client.post("/api/debts/lend", json={
            "customer_id": customer.id, "amount_afn_cents": 1000, "due_date": "2030-01-01",
        }, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cashier_cannot_delete_sale(self, client, cashier_headers):
        assert client.delete("/api/sales/1", json={"password": PASSWORD}, headers=cashier_headers).status_code == 403

    def test_manager_cannot_delete_all_sales(self, client, manager_headers):
        resp = client.post("/api/sales/delete-all", json={"password": PASSWORD}, headers=manager_headers)
        assert resp.status_code == 403

    def test_warehouse_cannot_see_shop_balance(self, client, warehouse_headers):
        assert client.get("/api/settings/shop-balance", headers=warehouse_headers).status_code == 403

    def test_audit_log_admin_only(self, client, admin_headers, manager_headers):
        client.post("/api/expenses", json={"description": "Fuel", "amount_afn_cents": 500}, headers=admin_headers)

        assert client.get("/api/audit-logs", headers=manager_headers).status_code == 403
        resp = client.get("/api/audit-logs?entity=expense", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["total"] == 1
        assert resp.json["items"][0]["action"] == "CREATE_EXPENSE"


# =============================================================================
# RE-AUTHENTICATION ON DESTRUCTIVE OPERATIONS
# =============================================================================


class TestReauthentication:
    def _sale(self, client, headers, product):
        resp = client.post("/api/sales", json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "paid_cents": 2500,
        }, headers=headers)
        assert resp.status_code == 201
        return resp.json["invoice"]["id"]

    def test_delete_sale_needs_password(self, client, admin_headers, rate, product):
        invoice_id = self._sale(client, admin_headers, product)

        assert client.delete(f"/api/sales/{invoice_id}", headers=admin_headers).status_code == 400
        resp = client.delete(f"/api/sales/{invoice_id}", json={"password": "WrongPass1"}, headers=admin_headers)
        assert resp.status_code == 403

        resp = client.delete(f"/api/sales/{invoice_id}", json={"password": PASSWORD}, headers=admin_headers)
        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(Invoice, invoice_id) is None

    def test_manager_uses_admin_master_key(self, client, admin_user, manager_headers, rate, product):
        invoice_id = self._sale(client, manager_headers, product)
        resp = client.delete(f"/api/sales/{invoice_id}", json={"password": PASSWORD}, headers=manager_headers)
        assert resp.status_code == 200

    def test_manager_without_admin_is_refused(self, client, manager_headers, rate, product):
        invoice_id = self._sale(client, manager_headers, product)
        resp = client.delete(f"/api/sales/{invoice_id}", json={"password": PASSWORD}, headers=manager_headers)
        assert resp.status_code == 403


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["cash_ledger"]["details"]["consistent"] is True

    def test_unknown_route_is_json_404(self, client, db_session):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json["message"] == "Not found"

    def test_cors_for_allowed_origin(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers.get("Access-Control-Allow-Origin") == "http://localhost:5173"
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
