"""Tests for newsletter subscriptions, contact messages and coupons."""

from datetime import datetime

from routers.newsletter import active_rate, period_start, subscribers_csv


def subscribe(client, email="reader@gmail.com", **extra):
    return client.post("/api/newsletter/subscribe", json={"email": email, **extra})


class TestSubscribe:
    """Public subscribe / unsubscribe."""

    def test_new_subscription(self, client, db):
        res = subscribe(client, "Reader@Gmail.com", first_name="Neha", tags=["diwali"])

        assert res.status_code == 201
        data = res.json()["data"]
        assert data["email"] == "reader@gmail.com"
        assert data["status"] == "active"
        assert "metadata" not in data
        stored = db["newsletters"].find_one({"email": "reader@gmail.com"})
        assert stored["metadata"]["user_agent"]

    def test_already_subscribed(self, client):
        subscribe(client)

        res = subscribe(client)

        assert res.status_code == 400
        assert res.json()["message"] == "Email is already subscribed to newsletter"

    def test_resubscribe_merges(self, client, db):
        subscribe(client, tags=["diwali"], preferences={"promotions": False})
        client.post("/api/newsletter/unsubscribe", json={"email": "reader@gmail.com"})

        res = subscribe(client, tags=["wedding", "diwali"])

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["status"] == "active"
        assert data["unsubscribed_at"] is None
        assert data["tags"] == ["diwali", "wedding"]
        assert data["preferences"]["promotions"] is False
        assert db["newsletters"].count_documents({}) == 1

    def test_unsubscribe_unknown(self, client):
        res = client.post("/api/newsletter/unsubscribe", json={"email": "ghost@gmail.com"})

        assert res.status_code == 404

    def test_unsubscribe_twice(self, client):
        subscribe(client)
        client.post("/api/newsletter/unsubscribe", json={"email": "reader@gmail.com"})

        res = client.post("/api/newsletter/unsubscribe", json={"email": "reader@gmail.com"})

        assert res.status_code == 400
        assert res.json()["message"] == "Email is already unsubscribed"


class TestNewsletterAdmin:
    """Admin subscriber management."""

    def test_subscribers_require_admin(self, client, customer_headers):
        assert client.get("/api/newsletter/subscribers", headers=customer_headers).status_code == 403

    def test_list_filters_by_status(self, client, admin_headers):
        subscribe(client, "a@gmail.com")
        subscribe(client, "b@gmail.com")
        client.post("/api/newsletter/unsubscribe", json={"email": "b@gmail.com"})

        res = client.get("/api/newsletter/subscribers", headers=admin_headers, params={"status": "active"})

        assert [s["email"] for s in res.json()["data"]] == ["a@gmail.com"]

    def test_csv_export(self, client, admin_headers):
        subscribe(client, "a@gmail.com", first_name="Anu")

        res = client.get("/api/newsletter/export", headers=admin_headers, params={"fields": "email,first_name"})

        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        assert res.text.splitlines() == ["email,first_name", "a@gmail.com,Anu"]

    def test_export_rejects_unknown_fields(self, client, admin_headers):
        res = client.get("/api/newsletter/export", headers=admin_headers, params={"fields": "email,password"})

        assert res.status_code == 400

    def test_bulk_unsubscribe(self, client, admin_headers):
        ids = [subscribe(client, e).json()["data"]["_id"] for e in ("a@gmail.com", "b@gmail.com")]

        res = client.post("/api/newsletter/bulk-action", headers=admin_headers,
                          json={"action": "unsubscribe", "subscriber_ids": ids})

        assert res.json()["data"] == {"modified_count": 2, "action": "unsubscribe"}

    def test_delete_is_soft(self, client, db, admin_headers):
        sub = subscribe(client).json()["data"]

        client.delete(f"/api/newsletter/subscribers/{sub['_id']}", headers=admin_headers)

        assert db["newsletters"].find_one({"email": "reader@gmail.com"})["is_active"] is False
        listed = client.get("/api/newsletter/subscribers", headers=admin_headers).json()
        assert listed["pagination"]["total"] == 0

    def test_deleted_subscriber_can_subscribe_again(self, client, db, admin_headers):
        sub = subscribe(client, tags=["diwali"]).json()["data"]
        client.delete(f"/api/newsletter/subscribers/{sub['_id']}", headers=admin_headers)

        res = subscribe(client)

        assert res.status_code == 200
        stored = db["newsletters"].find_one({"email": "reader@gmail.com"})
        assert stored["is_active"] is True
        assert stored["status"] == "active"
        listed = client.get("/api/newsletter/subscribers", headers=admin_headers).json()
        assert listed["pagination"]["total"] == 1

    def test_deleted_subscriber_cannot_unsubscribe(self, client, admin_headers):
        sub = subscribe(client).json()["data"]
        client.delete(f"/api/newsletter/subscribers/{sub['_id']}", headers=admin_headers)

        res = client.post("/api/newsletter/unsubscribe", json={"email": "reader@gmail.com"})

        assert res.status_code == 404


class TestNewsletterHelpers:

    def test_subscribers_csv_flattens_values(self):
        rows = [{"email": "x@gmail.com", "tags": ["a", "b"], "subscribed_at": datetime(2024, 5, 1, 9, 30)}]

        out = subscribers_csv(rows, ["email", "tags", "subscribed_at", "first_name"])

        assert out.splitlines()[1] == 'x@gmail.com,"[""a"", ""b""]",2024-05-01T09:30:00,'

    def test_period_start(self):
        now = datetime(2024, 5, 17, 15, 45)

        assert period_start("day", now) == datetime(2024, 5, 17)
        assert period_start("month", now) == datetime(2024, 5, 1)
        assert period_start("year", now) == datetime(2024, 1, 1)
        assert period_start("week", now) == datetime(2024, 5, 10, 15, 45)
        assert period_start("all", now) is None

    def test_active_rate(self):
        assert active_rate(2, 3) == 66.67
        assert active_rate(0, 0) == 0


class TestContact:
    """/api/contact"""

    MESSAGE = {"name": "Kavya", "email": "kavya@gmail.com", "subject": "Bulk order",
               "message": "Do you take orders for 40 sarees?"}

    def test_anonymous_message(self, client, db):
        res = client.post("/api/contact", json=self.MESSAGE)

        assert res.status_code == 201
        assert res.json()["data"]["user"] is None
        assert res.json()["data"]["status"] == "new"
        assert db["contacts"].count_documents({}) == 1

    def test_logged_in_message_links_user(self, client, customer, customer_headers):
        res = client.post("/api/contact", headers=customer_headers, json=self.MESSAGE)

        assert res.json()["data"]["user"] == str(customer["_id"])

    def test_admin_status_update(self, client, admin_headers):
        msg = client.post("/api/contact", json=self.MESSAGE).json()["data"]

        res = client.patch(f"/api/contact/{msg['_id']}/status", headers=admin_headers, json={"status": "read"})

        assert res.json()["data"]["status"] == "read"
        listed = client.get("/api/contact", headers=admin_headers, params={"status": "new"}).json()
        assert listed["pagination"]["total"] == 0


class TestCoupons:
    """/api/coupons"""

    def test_code_is_uppercased_and_unique(self, client, admin_headers):
        first = client.post("/api/coupons", headers=admin_headers,
                            json={"code": "welcome15", "type": "percent", "value": 15})
        again = client.post("/api/coupons", headers=admin_headers,
                            json={"code": "WELCOME15", "type": "flat", "value": 100})

        assert first.status_code == 201
        assert first.json()["data"]["code"] == "WELCOME15"
        assert again.status_code == 400
        assert again.json()["message"] == "Coupon code already exists"

    def test_percent_over_hundred(self, client, admin_headers):
        res = client.post("/api/coupons", headers=admin_headers,
                          json={"code": "HUGE", "type": "percent", "value": 150})

        assert res.status_code == 400

    def test_lookup(self, client, admin_headers):
        client.post("/api/coupons", headers=admin_headers, json={"code": "FLAT200", "type": "flat", "value": 200})

        assert client.get("/api/coupons/flat200").status_code == 200
        assert client.get("/api/coupons/NOPE").json()["message"] == "Invalid coupon"
