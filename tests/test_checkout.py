"""Unit tests for order pricing and cart snapshotting."""

import pytest

from checkout import build_order_items, compute_totals, coupon_discount, restore_stock, round_half_up
from responses import ApiError


class TestRoundHalfUp:

    def test_halves_round_away_from_zero(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4999) == 2

    def test_places(self):
        assert round_half_up(1.005, 2) == 1.01


class TestComputeTotals:
    """Tax on the discounted subtotal, free shipping above the threshold."""

    def test_small_order_pays_shipping(self):
        totals = compute_totals(1000)

        assert totals == {"subtotal": 1000, "discount": 0, "tax": 50, "shipping": 120, "total": 1170}

    def test_large_order_ships_free(self):
        totals = compute_totals(5000)

        assert totals["tax"] == 250
        assert totals["shipping"] == 0
        assert totals["total"] == 5250

    def test_threshold_uses_taxed_amount(self):
        """4800 + 240 tax is over 5000, so shipping is free even though the subtotal is not."""
        totals = compute_totals(4800)

        assert totals["shipping"] == 0
        assert totals["total"] == 5040

    def test_discount_reduces_taxable_amount(self):
        totals = compute_totals(2000, 200)

        assert totals["tax"] == 90
        assert totals["shipping"] == 120
        assert totals["total"] == 2010

    def test_discount_capped_at_subtotal(self):
        totals = compute_totals(300, 500)

        assert totals["discount"] == 300
        assert totals["tax"] == 0
        assert totals["total"] == 120

    def test_tax_rounds_half_up(self):
        assert compute_totals(10)["tax"] == 1

    @pytest.mark.parametrize("subtotal,discount", [(1, 0), (999.99, 0), (2500, 250), (7350.5, 1000)])
    def test_total_is_sum_of_parts(self, subtotal, discount):
        t = compute_totals(subtotal, discount)

        assert t["total"] == pytest.approx(t["subtotal"] - t["discount"] + t["tax"] + t["shipping"])


class TestCouponDiscount:

    def test_no_coupon(self):
        assert coupon_discount(None, 1000) == 0

    def test_percent(self):
        assert coupon_discount({"type": "percent", "value": 10, "min_order": 0}, 1500) == 150

    def test_flat_never_exceeds_subtotal(self):
        assert coupon_discount({"type": "flat", "value": 800, "min_order": 0}, 500) == 500

    def test_below_minimum_order(self):
        assert coupon_discount({"type": "flat", "value": 100, "min_order": 2000}, 1999) == 0


class TestBuildOrderItems:
    """Cart lines become order items only when every line can be fulfilled."""

    def test_empty_cart(self, db):
        with pytest.raises(ApiError) as exc:
            build_order_items(db, {"items": []})

        assert exc.value.status_code == 400
        assert exc.value.detail == "Cart is empty"

    def test_snapshot_copies_price_and_first_image(self, db, product):
        cart = {"items": [{"product_id": product["_id"], "quantity": 2, "selected_size": "Free Size"}]}

        items = build_order_items(db, cart)

        assert len(items) == 1
        assert items[0]["name"] == product["name"]
        assert items[0]["price"] == 1000
        assert items[0]["quantity"] == 2
        assert items[0]["image"] == product["images"][0]
        assert items[0]["selected_size"] == "Free Size"

    def test_unavailable_lines_reported_together(self, db, make_product):
        short = make_product(name="Chiffon Saree", stock=1)
        gone = make_product(name="Old Saree", is_active=False)
        cart = {"items": [
            {"product_id": short["_id"], "quantity": 3},
            {"product_id": gone["_id"], "quantity": 1},
        ]}

        with pytest.raises(ApiError) as exc:
            build_order_items(db, cart)

        reasons = exc.value.data["unavailable_items"]
        assert [r["name"] for r in reasons] == ["Chiffon Saree", "Old Saree"]
        assert "Only 1 items available" in reasons[0]["reason"]


def test_restore_stock_marks_product_in_stock(db, make_product):
    sold_out = make_product(stock=0)

    restore_stock(db, [{"product_id": sold_out["_id"], "quantity": 2}])

    doc = db["products"].find_one({"_id": sold_out["_id"]})
    assert doc["stock"] == 2
    assert doc["in_stock"] is True
