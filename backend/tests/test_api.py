"""
HTTP API tests through the Flask test client.

Verifies request parsing, status codes for business errors and the JSON
shapes returned by each blueprint.
"""

from stockbook.services import stock_service

from conftest import TEST_PASSWORD


def _create_product(client, headers, **overrides):
    payload = {
        "sku": "SSD-512",
        "name": "SSD 512GB",
        "unit": "pcs",
        "base_price_cents": 60000000,
        "selling_price_cents": 75000000,
        "min_stock": 2,
        "initial_stock": 10,
    }
    payload.update(overrides)
    return client.post("/api/products", json=payload, headers=headers)


class TestHealthAndAuth:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_login_me_logout(self, client, editor_user):
        resp = client.post("/api/auth/login", json={"username": "editor", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        token = resp.json["token"]
        assert "sale:create" in resp.json["permissions"]

        headers = {"Authorization": f"Bearer {token}"}
        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["username"] == "editor"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_login_with_email(self, client, editor_user):
        resp = client.post("/api/auth/login", json={"email": "editor@stockbook.test", "password": TEST_PASSWORD})
        assert resp.status_code == 200

    def test_bad_credentials(self, client, editor_user):
        resp = client.post("/api/auth/login", json={"username": "editor", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={}).status_code == 400


class TestProductsApi:

    def test_create_get_and_list(self, client, editor_headers):
        resp = _create_product(client, editor_headers)
        assert resp.status_code == 201
        product = resp.json["product"]
        assert product["current_stock"] == 10
        assert product["is_low_stock"] is False

        detail = client.get(f"/api/products/{product['id']}", headers=editor_headers)
        assert detail.status_code == 200
        assert detail.json["product"]["sku"] == "SSD-512"

        listing = client.get("/api/products?search=ssd", headers=editor_headers)
        assert listing.json["count"] == 1

    def test_validation_errors(self, client, editor_headers):
        assert _create_product(client, editor_headers, sku="AB").status_code == 400
        assert _create_product(client, editor_headers, selling_price_cents=0).status_code == 400
        assert _create_product(client, editor_headers, unknown_field=1).status_code == 400
        assert _create_product(client, editor_headers, initial_stock=-1).status_code == 400

    def test_duplicate_sku_is_conflict(self, client, editor_headers):
        _create_product(client, editor_headers)
        assert _create_product(client, editor_headers).status_code == 409

    def test_patch_with_stock_books_correction(self, client, editor_headers):
        product_id = _create_product(client, editor_headers).json["product"]["id"]

        resp = client.patch(
            f"/api/products/{product_id}",
            json={"name": "SSD 512GB NVMe", "current_stock": 4},
            headers=editor_headers,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["current_stock"] == 4
        assert resp.json["product"]["name"] == "SSD 512GB NVMe"
        assert stock_service.reconcile_product(product_id)["is_consistent"] is True

    def test_delete_in_use_is_conflict(self, client, admin_headers):
        product_id = _create_product(client, admin_headers).json["product"]["id"]
        client.post("/api/sales", json={"items": [{"product_id": product_id, "quantity": 1}]}, headers=admin_headers)

        resp = client.delete(f"/api/products/{product_id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_missing_product_is_404(self, client, editor_headers):
        assert client.get("/api/products/999", headers=editor_headers).status_code == 404

    def test_meta(self, client, viewer_headers):
        resp = client.get("/api/products/meta", headers=viewer_headers)
        assert resp.status_code == 200
        assert "pcs" in resp.json["units"]
        assert "qris" in resp.json["payment_methods"]


class TestStockApi:

    def test_in_out_and_insufficient(self, client, editor_headers):
        product_id = _create_product(client, editor_headers).json["product"]["id"]

        resp = client.post("/api/stock/in", json={"product_id": product_id, "quantity": 5}, headers=editor_headers)
        assert resp.status_code == 201
        assert resp.json["current_stock"] == 15

        resp = client.post("/api/stock/out", json={"product_id": product_id, "quantity": 20}, headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json["details"]["product_id"] == product_id
        assert resp.json["details"]["current_stock"] == 15

    def test_invalid_quantity_and_unknown_product(self, client, editor_headers):
        product_id = _create_product(client, editor_headers).json["product"]["id"]
        bad = client.post("/api/stock/in", json={"product_id": product_id, "quantity": 0}, headers=editor_headers)
        assert bad.status_code == 400
        missing = client.post("/api/stock/in", json={"product_id": 999, "quantity": 1}, headers=editor_headers)
        assert missing.status_code == 404

    def test_correct_and_reconcile(self, client, editor_headers):
        product_id = _create_product(client, editor_headers).json["product"]["id"]

        resp = client.post(f"/api/stock/{product_id}/correct", json={"counted_quantity": 7}, headers=editor_headers)
        assert resp.status_code == 200
        assert resp.json["transaction"]["type"] == "out"
        assert resp.json["current_stock"] == 7

        noop = client.post(f"/api/stock/{product_id}/correct", json={"counted_quantity": 7}, headers=editor_headers)
        assert noop.json["transaction"] is None

        report = client.get(f"/api/stock/{product_id}/reconcile", headers=editor_headers)
        assert report.json["is_consistent"] is True
        assert report.json["ledger_stock"] == 7

    def test_overview_and_transactions(self, client, editor_headers):
        _create_product(client, editor_headers, initial_stock=1)
        overview = client.get("/api/stock/overview", headers=editor_headers)
        assert overview.status_code == 200
        assert overview.json["total_products"] == 1
        assert len(overview.json["low_stock_products"]) == 1

        history = client.get("/api/stock/transactions?type=in", headers=editor_headers)
        assert history.json["count"] == 1
        assert history.json["transactions"][0]["product"]["sku"] == "SSD-512"

        assert client.get("/api/stock/transactions?type=bogus", headers=editor_headers).status_code == 400


class TestSalesApi:

    def test_sale_flow(self, client, admin_headers):
        product_id = _create_product(client, admin_headers).json["product"]["id"]

        resp = client.post(
            "/api/sales",
            json={
                "items": [{"product_id": product_id, "quantity": 2, "unit_price_cents": 1000}],
                "customer_name": "PT Maju",
                "due_date": "2030-01-31",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_amount_cents"] == 2000
        assert sale["status"] == "unpaid"
        assert len(sale["items"]) == 1

        pay = client.post(
            f"/api/sales/{sale['id']}/payments",
            json={"amount": "Rp10", "payment_method": "cash"},
            headers=admin_headers,
        )
        assert pay.status_code == 201
        assert pay.json["sale"]["status"] == "partial"

        unpaid = client.get("/api/payments/unpaid", headers=admin_headers)
        assert unpaid.json["count"] == 1
        assert unpaid.json["total_outstanding_cents"] == 1000

        void = client.post(f"/api/sales/{sale['id']}/void", headers=admin_headers)
        assert void.status_code == 200
        assert void.json["sale"]["status"] == "voided"

        again = client.post(f"/api/sales/{sale['id']}/void", headers=admin_headers)
        assert again.status_code == 409

        late = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 100}, headers=admin_headers)
        assert late.status_code == 409

        detail = client.get(f"/api/sales/{sale['id']}", headers=admin_headers)
        assert detail.json["sale"]["paid_amount_cents"] == 1000
        assert len(detail.json["sale"]["payments"]) == 1

    def test_create_sale_errors(self, client, editor_headers):
        product_id = _create_product(client, editor_headers, initial_stock=1).json["product"]["id"]

        empty = client.post("/api/sales", json={"items": []}, headers=editor_headers)
        assert empty.status_code == 400

        short = client.post("/api/sales", json={"items": [{"product_id": product_id, "quantity": 5}]},
                            headers=editor_headers)
        assert short.status_code == 400
        assert short.json["details"]["requested_quantity"] == 5

    def test_list_and_summary(self, client, admin_headers):
        product_id = _create_product(client, admin_headers).json["product"]["id"]
        client.post("/api/sales", json={"items": [{"product_id": product_id, "quantity": 1}]}, headers=admin_headers)

        listing = client.get("/api/sales?status=unpaid", headers=admin_headers)
        assert listing.json["count"] == 1
        assert client.get("/api/sales?status=nope", headers=admin_headers).status_code == 400

        summary = client.get("/api/payments/summary", headers=admin_headers)
        assert summary.json["sales_count"] == 1
        assert summary.json["receivables_cents"] == 75000000

    def test_unknown_sale_is_404(self, client, editor_headers):
        assert client.get("/api/sales/4242", headers=editor_headers).status_code == 404
        resp = client.post("/api/sales/4242/payments", json={"amount_cents": 1}, headers=editor_headers)
        assert resp.status_code == 404

    def test_unparseable_amount_records_nothing(self, client, editor_headers):
        product_id = _create_product(client, editor_headers).json["product"]["id"]
        sale = client.post(
            "/api/sales", json={"items": [{"product_id": product_id, "quantity": 1}]}, headers=editor_headers
        ).json["sale"]

        for amount in ("1e3", "12abc34", "Rp 1x0.000"):
            resp = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": amount}, headers=editor_headers)
            assert resp.status_code == 400

        detail = client.get(f"/api/sales/{sale['id']}", headers=editor_headers).json["sale"]
        assert detail["paid_amount_cents"] == 0
        assert detail["status"] == "unpaid"
        assert detail["payments"] == []


class TestRequestBodies:

    def test_non_object_json_is_rejected(self, client, admin_headers):
        product_id = _create_product(client, admin_headers).json["product"]["id"]

        cases = [
            ("post", "/api/stock/in"),
            ("post", "/api/stock/out"),
            ("post", f"/api/stock/{product_id}/correct"),
            ("post", "/api/sales"),
            ("post", "/api/products"),
            ("patch", f"/api/products/{product_id}"),
            ("post", "/api/admin/users"),
        ]
        for method, url in cases:
            resp = getattr(client, method)(url, json=[{"product_id": product_id, "quantity": 1}], headers=admin_headers)
            assert resp.status_code == 400, url
            assert resp.json["error"] == "Request body must be a JSON object"

        assert stock_service.get_current_stock(product_id) == 10

    def test_non_object_payment_body(self, client, admin_headers):
        product_id = _create_product(client, admin_headers).json["product"]["id"]
        sale_id = client.post(
            "/api/sales", json={"items": [{"product_id": product_id, "quantity": 1}]}, headers=admin_headers
        ).json["sale"]["id"]

        resp = client.post(f"/api/sales/{sale_id}/payments", json=[100], headers=admin_headers)
        assert resp.status_code == 400

    def test_non_object_login_body(self, client, db_session):
        assert client.post("/api/auth/login", json=["admin", "secret"]).status_code == 400


class TestAdminApi:

    def test_create_user_role_ban_and_audit(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "kasir", "email": "kasir@stockbook.test", "password": TEST_PASSWORD},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        user_id = resp.json["user"]["id"]
        assert resp.json["user"]["role"] == "user"

        role = client.put(f"/api/admin/users/{user_id}/role", json={"role": "editor"}, headers=admin_headers)
        assert role.status_code == 200
        assert role.json["user"]["role"] == "editor"

        ban = client.post(f"/api/admin/users/{user_id}/ban", json={"reason": "left"}, headers=admin_headers)
        assert ban.json["user"]["banned"] is True
        login = client.post("/api/auth/login", json={"username": "kasir", "password": TEST_PASSWORD})
        assert login.status_code == 401

        client.post(f"/api/admin/users/{user_id}/unban", headers=admin_headers)
        login = client.post("/api/auth/login", json={"username": "kasir", "password": TEST_PASSWORD})
        assert login.status_code == 200

        audit = client.get("/api/admin/audit?target_type=user", headers=admin_headers)
        actions = [entry["action"] for entry in audit.json["items"]]
        assert actions[:4] == ["user.unban", "user.ban", "user.set_role", "user.create"]

    def test_weak_password_and_duplicate(self, client, admin_headers):
        weak = client.post(
            "/api/admin/users",
            json={"username": "weak", "email": "weak@stockbook.test", "password": "password"},
            headers=admin_headers,
        )
        assert weak.status_code == 400

        dup = client.post(
            "/api/admin/users",
            json={"username": "admin", "email": "other@stockbook.test", "password": TEST_PASSWORD},
            headers=admin_headers,
        )
        assert dup.status_code == 409

    def test_roles_table(self, client, admin_headers):
        resp = client.get("/api/admin/roles", headers=admin_headers)
        roles = {r["role"]: r["permissions"] for r in resp.json["roles"]}
        assert set(roles) == {"user", "editor", "admin"}
        assert "sale:void" in roles["admin"]
        assert "sale:void" not in roles["editor"]
