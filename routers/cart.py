from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import success
from schemas import cart_view, product_view
from security import get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"])

MAX_QUANTITY = 100


class CartLine(BaseModel):
    product_id: str
    selected_size: Optional[str] = Field(None, max_length=20)
    selected_color: Optional[str] = Field(None, max_length=30)


class AddToCartBody(CartLine):
    quantity: int = Field(1, ge=1, le=MAX_QUANTITY)


class UpdateCartBody(CartLine):
    quantity: int = Field(..., ge=0, le=MAX_QUANTITY)


def populated_cart(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    cart = db["carts"].find_one({"user_id": user_id}) or {"user_id": user_id, "items": []}
    ids = [it["product_id"] for it in cart.get("items", [])]
    fields = {"name": 1, "price": 1, "original_price": 1, "images": 1, "stock": 1, "in_stock": 1, "is_active": 1}
    products = {p["_id"]: product_view(p) for p in db["products"].find({"_id": {"$in": ids}}, fields)}
    for it in cart.get("items", []):
        it["product"] = products.get(it["product_id"])
    return cart_view(cart)


def _save_items(db: Database, user_id: ObjectId, items: List[Dict[str, Any]]) -> None:
    items = [it for it in items if it.get("quantity", 0) > 0]
    stamp = now_utc()
    db["carts"].update_one(
        {"user_id": user_id},
        {"$set": {"items": items, "updated_at": stamp}, "$setOnInsert": {"created_at": stamp}},
        upsert=True,
    )


def _items(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    cart = db["carts"].find_one({"user_id": user_id})
    return list(cart.get("items", [])) if cart else []


def _match(items: List[Dict[str, Any]], line: CartLine) -> Optional[Dict[str, Any]]:
    """Lines are keyed by product, size and colour."""
    product_id = oid(line.product_id)
    return next((it for it in items
                 if it["product_id"] == product_id
                 and it.get("selected_size") == line.selected_size
                 and it.get("selected_color") == line.selected_color), None)


def _active_product(db: Database, product_id: Any) -> Dict[str, Any]:
    product = db["products"].find_one({"_id": oid(product_id)})
    if not product or not product.get("is_active"):
        raise HTTPException(404, "Product not found")
    return product


def _check_stock(product: Dict[str, Any], quantity: int) -> None:
    if product.get("stock", 0) < quantity:
        raise HTTPException(400, f"Only {product.get('stock', 0)} items available in stock")


@router.get("")
def get_cart(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    return success(populated_cart(db, user["_id"]), "Cart fetched successfully")


@router.get("/count")
def cart_count(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    count = sum(it["quantity"] for it in _items(db, user["_id"]))
    return success({"count": count}, "Cart count fetched successfully")


@router.post("/add")
def add_to_cart(body: AddToCartBody, user: Dict[str, Any] = Depends(get_current_user),
                db: Database = Depends(get_db)):
    product = _active_product(db, body.product_id)
    items = _items(db, user["_id"])
    existing = _match(items, body)
    if existing:
        quantity = min(existing["quantity"] + body.quantity, MAX_QUANTITY)
        _check_stock(product, quantity)
        existing["quantity"] = quantity
    else:
        _check_stock(product, body.quantity)
        items.append({
            "_id": ObjectId(),
            "product_id": product["_id"],
            "quantity": body.quantity,
            "selected_size": body.selected_size,
            "selected_color": body.selected_color,
            "added_at": now_utc(),
        })
    _save_items(db, user["_id"], items)
    return success(populated_cart(db, user["_id"]), "Item added to cart successfully")


@router.put("/update")
def update_cart(body: UpdateCartBody, user: Dict[str, Any] = Depends(get_current_user),
                db: Database = Depends(get_db)):
    items = _items(db, user["_id"])
    item = _match(items, body)
    if not item:
        raise HTTPException(404, "Item not found in cart")
    if body.quantity > 0:
        _check_stock(_active_product(db, item["product_id"]), body.quantity)
    item["quantity"] = body.quantity
    _save_items(db, user["_id"], items)
    return success(populated_cart(db, user["_id"]), "Cart updated successfully")


@router.delete("/remove")
def remove_from_cart(body: CartLine, user: Dict[str, Any] = Depends(get_current_user),
                     db: Database = Depends(get_db)):
    items = _items(db, user["_id"])
    item = _match(items, body)
    if not item:
        raise HTTPException(404, "Item not found in cart")
    items.remove(item)
    _save_items(db, user["_id"], items)
    return success(populated_cart(db, user["_id"]), "Item removed from cart successfully")


@router.delete("/clear")
def clear_cart(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    _save_items(db, user["_id"], [])
    return success(populated_cart(db, user["_id"]), "Cart cleared successfully")
