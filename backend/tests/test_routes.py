"""
HTTP surface tests: status codes, error bodies and JSON shapes.
"""

import pytest

from shopledger.database import TransientConnectionError
from shopledger.extensions import database
from shopledger.services import sales_service


class TestSystemRoutes:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["timestamp"].endswith("Z")
        assert "uptime" in body

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "ready"
        assert body["database"]["status"] == "connected"
        assert body["database"]["is_healthy"] is True

    def test_ready_when_ping_fails(self, client, monkeypatch):
        monkeypatch.setattr(database, "ping", lambda: False)

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.get_json()["status"] == "not_ready"

    def test_version(self, client):
        response = client.get("/version")

        assert response.status_code == 200
        assert response.get_json()["name"] == "shopledger"


class TestSalesRoutes:

    def test_create_sale(self, client, make_item, sale_body):
        item_id = make_item(quantity=10, cost_price=100, price=150)

        response = client.post("/api/sales", json=sale_body(item_id, quantity=3))

        assert response.status_code == 201
        assert response.get_json() == {
            "id": 1,
            "invoiceNumber": "TRN-00001",
            "total": 450.0,
            "totalCost": 300.0,
            "totalDiscount": 0.0,
            "profit": 150.0,
        }

        stock = client.get(f"/api/inventory/{item_id}").get_json()
        assert stock["quantity"] == 7

    def test_insufficient_stock_is_400_with_details(self, client, make_item, sale_body):
        item_id = make_item(quantity=7)

        response = client.post("/api/sales", json=sale_body(item_id, quantity=20))

        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert "Insufficient stock" in body["message"]
        assert body["details"]["available"] == 7

    def test_unknown_item_is_404(self, client, sale_body):
        response = client.post("/api/sales", json=sale_body(777))

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_validation_error_is_400(self, client):
        response = client.post("/api/sales", json={"items": []})

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_get_sale(self, client, make_item, sale_body):
        item_id = make_item()
        client.post("/api/sales", json=sale_body(item_id, quantity=2))

        body = client.get("/api/sales/1").get_json()

        assert body["invoiceNumber"] == "TRN-00001"
        assert body["date"] == "2026-01-15"
        assert body["items"][0]["quantity"] == 2
        assert body["items"][0]["costPrice"] == 100.0
        assert client.get("/api/sales/99").status_code == 404

    def test_list_sales_filters(self, client, make_item, sale_body):
        item_id = make_item(quantity=50)
        client.post("/api/sales", json=sale_body(item_id, quantity=1, date="2026-01-10"))
        client.post("/api/sales", json=sale_body(item_id, quantity=1, date="2026-01-15", sellerId=2))
        client.post("/api/sales", json=sale_body(item_id, quantity=1, date="2026-01-20"))

        by_date = client.get("/api/sales?date=2026-01-15").get_json()
        by_range = client.get("/api/sales?startDate=2026-01-12&endDate=2026-01-31").get_json()
        by_seller = client.get("/api/sales?sellerId=2").get_json()

        assert [s["date"] for s in by_date["data"]] == ["2026-01-15"]
        assert [s["date"] for s in by_range["data"]] == ["2026-01-20", "2026-01-15"]
        assert by_seller["pagination"]["total"] == 1

    def test_bad_date_filter_is_400(self, client):
        assert client.get("/api/sales?date=yesterday").status_code == 400

    def test_transient_database_failure_is_503(self, client, monkeypatch, make_item, sale_body):
        item_id = make_item()

        def unavailable(*args, **kwargs):
            raise TransientConnectionError("connection refused")

        monkeypatch.setattr(sales_service, "create_sale", unavailable)

        response = client.post("/api/sales", json=sale_body(item_id))

        assert response.status_code == 503
        assert response.get_json() == {"success": False, "message": "Database temporarily unavailable"}

    def test_unexpected_error_is_500(self, client, monkeypatch, make_item, sale_body):
        item_id = make_item()

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(sales_service, "create_sale", broken)

        response = client.post("/api/sales", json=sale_body(item_id))

        assert response.status_code == 500
        assert response.get_json() == {"success": False, "message": "Failed to create sale"}


class TestReturnRoutes:

    @pytest.fixture
    def invoice(self, client, make_item, sale_body):
        item_id = make_item(quantity=10, cost_price=100, price=150)
        sale = client.post("/api/sales", json=sale_body(item_id, quantity=3)).get_json()
        return sale

    def test_return_lifecycle(self, client, invoice, return_body):
        created = client.post(
            "/api/returns", json=return_body(invoice["invoiceNumber"], invoice["id"])
        )

        assert created.status_code == 201
        body = created.get_json()
        assert body == {"id": 1, "displayId": "RET-00001", "success": True}

        held = client.get("/api/returns/1/items").get_json()
        assert [i["condition"] for i in held["items"]] == ["returned"]

        approved = client.put("/api/returns/1", json={"status": "approved", "approvedBy": "Manager"})
        assert approved.status_code == 200
        assert approved.get_json() == {"success": True}

        sale = client.get(f"/api/sales/{invoice['id']}").get_json()
        assert sale["status"] == "returned"
        assert sale["total"] == 300.0
        assert sale["totalCost"] == 200.0
        assert sale["profit"] == 100.0

        ret = client.get("/api/returns/1").get_json()
        assert ret["status"] == "approved"
        assert ret["displayId"] == "RET-00001"

    def test_duplicate_return_is_400(self, client, invoice, return_body):
        body = return_body(invoice["invoiceNumber"], invoice["id"])
        client.post("/api/returns", json=body)

        response = client.post("/api/returns", json=body)

        assert response.status_code == 400
        assert "Only one return is allowed per sale" in response.get_json()["message"]

    def test_invalid_transition_is_409(self, client, invoice, return_body):
        client.post("/api/returns", json=return_body(invoice["invoiceNumber"], invoice["id"]))
        client.put("/api/returns/1", json={"status": "rejected", "rejectionReason": "Used"})

        response = client.put("/api/returns/1", json={"status": "approved"})

        assert response.status_code == 409
        assert response.get_json()["details"]["current"] == "rejected"

    def test_unknown_return_is_404(self, client):
        assert client.put("/api/returns/5", json={"status": "approved"}).status_code == 404
        assert client.get("/api/returns/5").status_code == 404

    def test_list_by_status(self, client, invoice, return_body):
        client.post("/api/returns", json=return_body(invoice["invoiceNumber"], invoice["id"]))

        pending = client.get("/api/returns?status=pending").get_json()
        approved = client.get("/api/returns?status=approved").get_json()

        assert pending["pagination"]["total"] == 1
        assert approved["pagination"]["total"] == 0
        assert client.get("/api/returns?status=lost").status_code == 400

    def test_returned_item_crud(self, client, invoice, return_body):
        client.post("/api/returns", json=return_body(invoice["invoiceNumber"], invoice["id"]))

        created = client.post("/api/returned-items", json={
            "returnId": 1,
            "sku": "SKU-A",
            "name": "Widget",
            "quantity": 1,
            "originalPrice": 150,
            "returnDate": "2026-01-21",
            "condition": "damaged",
        })
        assert created.status_code == 201
        item_id = created.get_json()["id"]

        updated = client.put(f"/api/returned-items/{item_id}", json={"condition": "defective"})
        assert updated.status_code == 200
        assert client.get(f"/api/returned-items/{item_id}").get_json()["condition"] == "defective"

        bad = client.put(f"/api/returned-items/{item_id}", json={"condition": "lost"})
        assert bad.status_code == 400

        assert client.delete(f"/api/returned-items/{item_id}").status_code == 200
        assert client.get(f"/api/returned-items/{item_id}").status_code == 404

    def test_returned_item_for_unknown_return(self, client):
        response = client.post("/api/returned-items", json={
            "returnId": 42,
            "sku": "SKU-A",
            "name": "Widget",
            "quantity": 1,
            "originalPrice": 10,
            "returnDate": "2026-01-21",
        })

        assert response.status_code == 404


class TestInventoryRoutes:

    def _body(self, **overrides):
        body = {
            "sku": "SKU-NEW",
            "name": "Bracket",
            "category": "Hardware",
            "quantity": 12,
            "costPrice": 3,
            "price": 5,
            "reorderLevel": 4,
            "supplier": "TechParts Inc",
        }
        body.update(overrides)
        return body

    def test_create_and_duplicate(self, client):
        first = client.post("/api/inventory", json=self._body())
        second = client.post("/api/inventory", json=self._body())

        assert first.status_code == 201
        assert first.get_json()["success"] is True
        assert second.status_code == 400
        assert second.get_json()["message"] == "SKU already exists"

    def test_negative_quantity_rejected(self, client):
        response = client.post("/api/inventory", json=self._body(quantity=-1))

        assert response.status_code == 400

    def test_unknown_field_rejected(self, client):
        response = client.post("/api/inventory", json=self._body(id=99))

        assert response.status_code == 400

    def test_pagination(self, client, make_item):
        for n in range(3):
            make_item(sku=f"SKU-{n}")

        body = client.get("/api/inventory?page=2&limit=2").get_json()

        assert [i["sku"] for i in body["data"]] == ["SKU-2"]
        assert body["pagination"] == {
            "total": 3,
            "page": 2,
            "limit": 2,
            "totalPages": 2,
            "hasNextPage": False,
            "hasPrevPage": True,
        }
        assert client.get("/api/inventory?limit=0").status_code == 400

    def test_restock_and_low_stock(self, client, make_item):
        item_id = make_item(quantity=1, reorder_level=3)

        low = client.get("/api/inventory/low-stock").get_json()
        assert [i["id"] for i in low["items"]] == [item_id]

        response = client.post(f"/api/inventory/{item_id}/restock", json={"quantity": 5, "date": "2026-02-01"})
        assert response.status_code == 200
        item = response.get_json()["item"]
        assert item["quantity"] == 6
        assert item["lastRestock"] == "2026-02-01"

        assert client.get("/api/inventory/low-stock").get_json()["items"] == []

    def test_missing_item(self, client):
        assert client.get("/api/inventory/9").status_code == 404
        assert client.put("/api/inventory/9", json={"name": "x"}).status_code == 404
        assert client.delete("/api/inventory/9").status_code == 404


class TestCustomerAndSupplierRoutes:

    def test_customer_crud(self, client):
        created = client.post("/api/customers", json={
            "name": "Bob Smith", "email": "bob@email.com", "phone": "+1234567893",
        })
        assert created.status_code == 201
        customer_id = created.get_json()["id"]

        duplicate = client.post("/api/customers", json={
            "name": "Bob Again", "email": "bob@email.com", "phone": "+1",
        })
        assert duplicate.status_code == 400
        assert duplicate.get_json()["message"] == "Email already exists"

        body = client.get(f"/api/customers/{customer_id}").get_json()
        assert body["totalPurchases"] == 0
        assert body["lifetimeValue"] == 0.0

        # Ledger-maintained stats are not client-writable
        assert client.put(f"/api/customers/{customer_id}", json={"lifetimeValue": 1}).status_code == 400

    def test_supplier_crud(self, client):
        created = client.post("/api/suppliers", json={
            "company": "TechParts Inc",
            "contact": "John Doe",
            "email": "john@techparts.com",
            "phone": "+1234567890",
            "terms": "Net 30",
            "categories": "Electronics",
            "products": "Cables",
        })
        assert created.status_code == 201
        supplier_id = created.get_json()["id"]

        assert client.put(f"/api/suppliers/{supplier_id}", json={"terms": "Net 45"}).status_code == 200
        assert client.get(f"/api/suppliers/{supplier_id}").get_json()["terms"] == "Net 45"
        assert client.delete(f"/api/suppliers/{supplier_id}").status_code == 200
        assert client.get(f"/api/suppliers/{supplier_id}").status_code == 404


class TestUserRoutes:

    def _create(self, client, **overrides):
        body = {"username": "dana", "password": "secret1", "name": "Dana", "role": "user"}
        body.update(overrides)
        return client.post("/api/users", json=body)

    def test_user_crud(self, client):
        created = self._create(client, email="dana@shop.test", mobileNumber="+256712345678")
        assert created.status_code == 201
        assert created.get_json()["message"] == "User created successfully"
        user_id = created.get_json()["id"]

        body = client.get(f"/api/users/{user_id}").get_json()
        assert body["username"] == "dana"
        assert body["mobileNumber"] == "+256712345678"
        assert "password" not in body
        assert "password_hash" not in body

        assert client.put(f"/api/users/{user_id}", json={"role": "admin"}).status_code == 200
        assert client.get(f"/api/users/{user_id}").get_json()["role"] == "admin"

        assert client.delete(f"/api/users/{user_id}").status_code == 200
        assert client.get(f"/api/users/{user_id}").status_code == 404

    def test_duplicate_username_is_400(self, client):
        assert self._create(client).status_code == 201

        duplicate = self._create(client, name="Another Dana")

        assert duplicate.status_code == 400
        assert duplicate.get_json() == {"success": False, "message": "Username already exists"}

    def test_list_is_paginated_and_hides_hashes(self, client):
        for name in ("dana", "eli", "fran"):
            assert self._create(client, username=name).status_code == 201

        body = client.get("/api/users?page=2&limit=2").get_json()

        assert [u["username"] for u in body["data"]] == ["fran"]
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["totalPages"] == 2
        assert all("password_hash" not in u for u in body["data"])

    @pytest.mark.parametrize(
        "overrides",
        [
            {"role": "owner"},
            {"password": "123"},
            {"username": "ab"},
            {"passwordHash": "$2b$04$forged"},
        ],
    )
    def test_invalid_create_is_400(self, client, overrides):
        response = self._create(client, **overrides)

        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_missing_password_is_400(self, client):
        response = client.post("/api/users", json={"username": "dana", "name": "Dana", "role": "user"})

        assert response.status_code == 400
        assert "password" in response.get_json()["message"]

    def test_update_unknown_user_is_404(self, client):
        response = client.put("/api/users/4242", json={"name": "Nobody"})

        assert response.status_code == 404


class TestDashboardRoutes:

    def test_profits(self, client, make_item, sale_body):
        item_id = make_item(quantity=10, cost_price=100, price=150)
        client.post("/api/sales", json=sale_body(item_id, quantity=3))

        body = client.get("/api/dashboard/profits").get_json()

        assert body["summary"]["totalSales"] == 1
        assert body["summary"]["totalProfit"] == 150.0
        assert body["topSellingItems"][0]["quantitySold"] == 3
        assert body["period"] == {"startDate": "All time", "endDate": "All time"}

    def test_inverted_range_is_400(self, client):
        response = client.get("/api/dashboard/profits?startDate=2026-02-01&endDate=2026-01-01")

        assert response.status_code == 400
