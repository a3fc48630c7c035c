"""
Order placement and cancellation.

Placing an order reads the user's cart, checks every product, prices the
order, stores it, takes the quantities out of stock, empties the cart and
emails a confirmation. The steps are independent writes: there is no
multi-document transaction around them.
"""
import logging
import secrets
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from pymongo.database import Database

import config
import emailer
from database import now_utc
from responses import ApiError
from schemas import CANCELLABLE_STATUSES, Order, OrderItem

logger = logging.getLogger(__name__)


def round_half_up(value: float, places: int = 0) -> float:
    quant = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quant, rounding=ROUND_HALF_UP))


# ---------------------- Pricing ----------------------

def find_coupon(database: Database, code: Optional[str]) -> Optional[Dict[str, Any]]:
    if not code:
        return None
    return database["coupons"].find_one({
        "code": code.strip().upper(),
        "active": True,
        "$or": [{"expires_at": None}, {"expires_at": {"$gt": now_utc()}}],
    })


def coupon_discount(coupon: Optional[Dict[str, Any]], subtotal: float) -> float:
    if not coupon or subtotal < float(coupon.get("min_order", 0)):
        return 0.0
    value = float(coupon.get("value", 0))
    if coupon.get("type") == "percent":
        discount = subtotal * min(value, 100.0) / 100.0
    else:
        discount = value
    return round(min(discount, subtotal), 2)


def compute_totals(subtotal: float, discount: float = 0.0) -> Dict[str, float]:
    """Tax is charged on the discounted amount; shipping is free above the threshold."""
    subtotal = round(subtotal, 2)
    discount = round(min(max(discount, 0.0), subtotal), 2)
    taxable = subtotal - discount
    tax = round_half_up(taxable * config.TAX_RATE)
    shipping = 0.0 if taxable + tax > config.FREE_SHIPPING_THRESHOLD else float(config.FLAT_SHIPPING)
    total = round(subtotal - discount + tax + shipping, 2)
    return {"subtotal": subtotal, "discount": discount, "tax": tax, "shipping": shipping, "total": total}


# ---------------------- Cart -> order items ----------------------

def build_order_items(database: Database, cart: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Snapshot the cart into order items, rejecting the whole cart if any line cannot be fulfilled."""
    if not cart or not cart.get("items"):
        raise ApiError(400, "Cart is empty")

    ids = [it["product_id"] for it in cart["items"]]
    products = {p["_id"]: p for p in database["products"].find({"_id": {"$in": ids}})}

    unavailable = []
    items = []
    for cart_item in cart["items"]:
        product = products.get(cart_item["product_id"])
        qty = cart_item["quantity"]
        if not product or not product.get("is_active") or not product.get("in_stock"):
            unavailable.append({
                "name": (product or {}).get("name", "Unknown Product"),
                "reason": "Product is no longer available",
            })
            continue
        if product.get("stock", 0) < qty:
            unavailable.append({
                "name": product["name"],
                "reason": f"Only {product.get('stock', 0)} items available, but {qty} requested",
            })
            continue
        items.append(OrderItem(
            product_id=product["_id"],
            name=product["name"],
            quantity=qty,
            price=float(product["price"]),
            original_price=product.get("original_price"),
            selected_size=cart_item.get("selected_size"),
            selected_color=cart_item.get("selected_color"),
            image=(product.get("images") or [None])[0],
        ).model_dump())

    if unavailable:
        raise ApiError(400, "Some items are unavailable", data={"unavailable_items": unavailable})
    return items


def generate_order_id(database: Database) -> str:
    while True:
        candidate = secrets.token_hex(4).upper()
        if not database["orders"].find_one({"order_id": candidate}, {"_id": 1}):
            return candidate


# ---------------------- Stock ----------------------

def decrement_stock(database: Database, items: List[Dict[str, Any]]) -> None:
    for it in items:
        res = database["products"].update_one(
            {"_id": it["product_id"], "stock": {"$gte": it["quantity"]}},
            {"$inc": {"stock": -it["quantity"]}, "$set": {"updated_at": now_utc()}},
        )
        if res.modified_count == 0:
            logger.warning("Stock for product %s could not cover %s units", it["product_id"], it["quantity"])
        database["products"].update_one(
            {"_id": it["product_id"], "stock": {"$lte": 0}}, {"$set": {"in_stock": False}}
        )


def restore_stock(database: Database, items: List[Dict[str, Any]]) -> None:
    for it in items:
        database["products"].update_one(
            {"_id": it["product_id"]},
            {"$inc": {"stock": it["quantity"]}, "$set": {"in_stock": True, "updated_at": now_utc()}},
        )


# ---------------------- Placement ----------------------

def price_cart(database: Database, user: Dict[str, Any], coupon_code: Optional[str] = None):
    """Snapshot the user's cart and price it. Returns (items, coupon, totals)."""
    cart = database["carts"].find_one({"user_id": user["_id"]})
    items = build_order_items(database, cart)
    subtotal = sum(it["price"] * it["quantity"] for it in items)
    coupon = find_coupon(database, coupon_code)
    return items, coupon, compute_totals(subtotal, coupon_discount(coupon, subtotal))


def place_order(database: Database, user: Dict[str, Any], shipping_address: Dict[str, Any],
                billing_address: Optional[Dict[str, Any]], payment_method: str,
                payment_status: str = "pending", payment_id: Optional[str] = None,
                razorpay_order_id: Optional[str] = None, coupon_code: Optional[str] = None,
                notes: Optional[str] = None, priced=None) -> Dict[str, Any]:
    items, coupon, totals = priced or price_cart(database, user, coupon_code)

    stamp = now_utc()
    order = Order(
        order_id=generate_order_id(database),
        user_id=user["_id"],
        items=items,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        payment_method=payment_method,
        payment_status=payment_status,
        payment_id=payment_id,
        razorpay_order_id=razorpay_order_id,
        order_status="pending",
        status_history=[{"status": "pending", "notes": "Order placed", "updated_by": user["_id"], "updated_at": stamp}],
        coupon_code=coupon["code"] if coupon else None,
        estimated_delivery=stamp + timedelta(days=config.DELIVERY_DAYS),
        notes=notes,
        **totals,
    ).model_dump()
    order["created_at"] = stamp
    order["updated_at"] = stamp

    order["_id"] = database["orders"].insert_one(order).inserted_id
    decrement_stock(database, items)
    database["carts"].update_one({"user_id": user["_id"]}, {"$set": {"items": [], "updated_at": stamp}})

    logger.info("Order %s placed by %s total=%s method=%s", order["order_id"], user["_id"], order["total"], payment_method)
    emailer.notify("order_confirmation", user.get("email"), {
        "order_id": order["order_id"],
        "customer_name": user.get("first_name"),
        "items": items,
        "total": order["total"],
        "estimated_delivery": order["estimated_delivery"],
    })
    return order


def history_entry(status: str, by: Any = None, notes: Optional[str] = None) -> Dict[str, Any]:
    return {"status": status, "notes": notes, "updated_by": by, "updated_at": now_utc()}


def cancel_order(database: Database, order: Dict[str, Any], by: Any, reason: Optional[str] = None) -> Dict[str, Any]:
    """Cancel a pending/confirmed order and put its quantities back in stock."""
    if order.get("order_status") not in CANCELLABLE_STATUSES:
        raise ApiError(400, f"Order cannot be cancelled once it is {order.get('order_status')}")
    stamp = now_utc()
    updates = {
        "order_status": "cancelled",
        "cancelled_at": stamp,
        "cancellation_reason": reason,
        "updated_at": stamp,
    }
    res = database["orders"].update_one(
        {"_id": order["_id"], "order_status": {"$in": list(CANCELLABLE_STATUSES)}},
        {"$set": updates, "$push": {"status_history": history_entry("cancelled", by, reason)}},
    )
    if res.modified_count == 0:
        raise ApiError(400, "Order cannot be cancelled")
    restore_stock(database, order.get("items", []))
    logger.info("Order %s cancelled by %s", order.get("order_id"), by)
    return database["orders"].find_one({"_id": order["_id"]})
