"""Tests for the admin back office helpers and routes."""

from datetime import datetime

from bson import ObjectId

from routers.admin import CUSTOMER_CSV_HEADERS, customers_csv, growth, month_bounds, period_bounds


class TestGrowth:

    def test_from_zero(self):
        assert growth(5, 0) == 100
        assert growth(0, 0) == 0

    def test_percentage(self):
        assert growth(150, 100) == 50
        assert growth(1, 3) == -66.67
        assert growth(1, 3, 1) == -66.7


class TestBounds:

    def test_month_bounds_in_january(self):
        this_month, last_month, this_year = month_bounds(datetime(2025, 1, 20, 10, 0))

        assert this_month == datetime(2025, 1, 1)
        assert last_month == datetime(2024, 12, 1)
        assert this_year == datetime(2025, 1, 1)

    def test_period_bounds(self):
        now = datetime(2025, 6, 30)

        start, previous, fmt = period_bounds("7d", now)
        assert (start, previous, fmt) == (datetime(2025, 6, 23), datetime(2025, 6, 16), "%Y-%m-%d")

        start, previous, fmt = period_bounds("1y", now)
        assert fmt == "%Y-%m"
        assert (now - start).days == 365


class TestCustomersCsv:

    def test_bom_header_and_stats(self):
        cid = ObjectId()
        customers = [{"_id": cid, "first_name": "Asha", "last_name": "Rao", "email": "asha@gmail.com",
                      "phone": "9876543210", "is_active": False, "created_at": datetime(2024, 2, 3)}]
        stats = {cid: {"order_count": 3, "total_spent": 5120.5, "last_order_date": datetime(2024, 4, 9)}}

        out = customers_csv(customers, stats)

        assert out.startswith("\ufeff")
        lines = out[1:].splitlines()
        assert lines[0] == ",".join(CUSTOMER_CSV_HEADERS)
        assert lines[1] == (f"{cid},Asha,Rao,asha@gmail.com,9876543210,Inactive,3,5120.5,"
                            "2024-04-09,2024-02-03,N/A,N/A")

    def test_customer_without_orders(self):
        customers = [{"_id": ObjectId(), "first_name": "Ravi", "email": "ravi@gmail.com"}]

        row = customers_csv(customers, {})[1:].splitlines()[1].split(",")

        assert row[5:9] == ["Active", "0", "0", "N/A"]


class TestAdminRoutes:
    """/api/admin"""

    def test_customer_cannot_access(self, client, customer_headers):
        res = client.get("/api/admin/products", headers=customer_headers)

        assert res.status_code == 403
        assert res.json()["message"] == "Admin access required"

    def test_deactivating_user_blocks_their_token(self, client, customer, customer_headers, admin_headers):
        res = client.put(f"/api/admin/users/{customer['_id']}/status", headers=admin_headers,
                         json={"is_active": False})

        assert res.status_code == 200
        assert res.json()["data"]["is_active"] is False
        blocked = client.get("/api/auth/profile", headers=customer_headers)
        assert blocked.status_code == 401
        assert blocked.json()["message"] == "Account is deactivated"

    def test_unknown_user(self, client, admin_headers):
        res = client.put(f"/api/admin/users/{ObjectId()}/status", headers=admin_headers, json={"is_active": False})

        assert res.status_code == 404

    def test_products_view_filters_status(self, client, admin_headers, make_product):
        make_product(name="On Sale")
        make_product(name="Retired", is_active=False)

        res = client.get("/api/admin/products", headers=admin_headers, params={"status": "active"})

        assert [p["name"] for p in res.json()["data"]] == ["On Sale"]

    def test_customer_orders_unknown_customer(self, client, admin_headers):
        res = client.get(f"/api/admin/customers/{ObjectId()}/orders", headers=admin_headers)

        assert res.status_code == 404

    def test_seed_is_idempotent(self, client, db, admin_headers):
        first = client.post("/api/admin/seed", headers=admin_headers).json()["data"]
        second = client.post("/api/admin/seed", headers=admin_headers).json()["data"]

        assert first == {"categories": 3, "admin": 0, "products": 12}
        assert second == {"categories": 0, "admin": 0, "products": 0}
        assert db["categories"].find_one({"slug": "kurtis-suits"})["subcategories"][0]["slug"] == "anarkali-suits"

    def test_dashboard(self, client, customer_headers, admin_headers, product, make_product, address):
        make_product(name="Leheriya Dupatta", stock=50)
        client.post("/api/cart/add", headers=customer_headers, json={"product_id": str(product["_id"]), "quantity": 2})
        order = client.post("/api/orders", headers=customer_headers, json={"shipping_address": address}).json()["data"]

        res = client.get("/api/admin/dashboard", headers=admin_headers)

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["overview"]["total_users"] == 1
        assert data["overview"]["total_products"] == 2
        assert data["overview"]["total_orders"] == 1
        assert data["overview"]["monthly_revenue"] == 2220
        assert data["growth"]["users"] == {"current": 1, "previous": 0, "growth": 100}
        assert data["growth"]["orders"]["growth"] == 100
        assert [o["order_id"] for o in data["recent_orders"]] == [order["order_id"]]
        assert data["recent_orders"][0]["user"]["email"] == "asha@gmail.com"
        assert [(p["name"], p["stock"]) for p in data["low_stock_products"]] == [("Banarasi Silk Saree", 8)]
        assert data["category_stats"][0]["product_count"] == 2
