"""Tests for the saved address book."""

from bson import ObjectId


def add(client, headers, address, **extra):
    return client.post("/api/addresses", headers=headers, json={**address, **extra})


def defaults(addresses):
    return [a["city"] for a in addresses if a["is_default"]]


class TestAddresses:
    """/api/addresses"""

    def test_first_address_becomes_default(self, client, customer_headers, address):
        res = add(client, customer_headers, address)

        assert res.status_code == 201
        data = res.json()["data"]
        assert data[0]["is_default"] is True
        assert data[0]["country"] == "India"

    def test_single_default(self, client, customer_headers, address):
        add(client, customer_headers, address)
        add(client, customer_headers, address, city="Udaipur")
        res = add(client, customer_headers, address, city="Jodhpur", is_default=True)

        assert defaults(res.json()["data"]) == ["Jodhpur"]

    def test_set_default(self, client, customer_headers, address):
        add(client, customer_headers, address)
        second = add(client, customer_headers, address, city="Udaipur").json()["data"][1]

        res = client.patch(f"/api/addresses/{second['_id']}/default", headers=customer_headers)

        assert defaults(res.json()["data"]) == ["Udaipur"]

    def test_deleting_default_promotes_next(self, client, customer_headers, address):
        first = add(client, customer_headers, address).json()["data"][0]
        add(client, customer_headers, address, city="Udaipur")

        res = client.delete(f"/api/addresses/{first['_id']}", headers=customer_headers)

        assert defaults(res.json()["data"]) == ["Udaipur"]

    def test_update_fields(self, client, customer_headers, address):
        first = add(client, customer_headers, address).json()["data"][0]

        res = client.put(f"/api/addresses/{first['_id']}", headers=customer_headers, json={"city": "Ajmer"})

        assert res.json()["data"][0]["city"] == "Ajmer"
        assert res.json()["data"][0]["is_default"] is True

    def test_unknown_address(self, client, customer_headers):
        res = client.delete(f"/api/addresses/{ObjectId()}", headers=customer_headers)

        assert res.status_code == 404
        assert res.json()["message"] == "Address not found"

    def test_invalid_phone(self, client, customer_headers, address):
        res = add(client, customer_headers, address, phone="12345")

        assert res.status_code == 400

    def test_addresses_are_per_user(self, client, customer_headers, admin_headers, address):
        add(client, customer_headers, address)

        assert client.get("/api/addresses", headers=admin_headers).json()["data"] == []
        assert len(client.get("/api/addresses", headers=customer_headers).json()["data"]) == 1
