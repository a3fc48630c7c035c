from typing import Any, Dict, List

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import success
from routers.products import with_category
from security import get_current_user

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class WishlistBody(BaseModel):
    product_id: str


def _product_ids(db: Database, user_id: ObjectId) -> List[ObjectId]:
    w = db["wishlists"].find_one({"user_id": user_id})
    return list(w.get("products", [])) if w else []


def _save(db: Database, user_id: ObjectId, ids: List[ObjectId]) -> None:
    stamp = now_utc()
    db["wishlists"].update_one(
        {"user_id": user_id},
        {"$set": {"products": ids, "updated_at": stamp}, "$setOnInsert": {"created_at": stamp}},
        upsert=True,
    )


def populated_wishlist(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    ids = _product_ids(db, user_id)
    found = {p["_id"]: p for p in db["products"].find({"_id": {"$in": ids}, "is_active": True})}
    products = with_category(db, [found[i] for i in ids if i in found])
    return {"user_id": user_id, "products": products, "count": len(products)}


def _require_product(db: Database, product_id: str) -> ObjectId:
    pid = oid(product_id)
    if not db["products"].find_one({"_id": pid, "is_active": True}, {"_id": 1}):
        raise HTTPException(404, "Product not found")
    return pid


@router.get("")
def get_wishlist(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    return success(populated_wishlist(db, user["_id"]), "Wishlist fetched successfully")


@router.post("/add")
def add_to_wishlist(body: WishlistBody, user: Dict[str, Any] = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    pid = _require_product(db, body.product_id)
    ids = _product_ids(db, user["_id"])
    if pid not in ids:
        ids.append(pid)
        _save(db, user["_id"], ids)
    return success(populated_wishlist(db, user["_id"]), "Product added to wishlist")


@router.delete("/remove")
def remove_from_wishlist(body: WishlistBody, user: Dict[str, Any] = Depends(get_current_user),
                         db: Database = Depends(get_db)):
    pid = oid(body.product_id)
    ids = _product_ids(db, user["_id"])
    if pid not in ids:
        raise HTTPException(404, "Product not in wishlist")
    ids.remove(pid)
    _save(db, user["_id"], ids)
    return success(populated_wishlist(db, user["_id"]), "Product removed from wishlist")


@router.post("/toggle")
def toggle_wishlist(body: WishlistBody, user: Dict[str, Any] = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    pid = oid(body.product_id)
    ids = _product_ids(db, user["_id"])
    if pid in ids:
        ids.remove(pid)
        added = False
    else:
        _require_product(db, body.product_id)
        ids.append(pid)
        added = True
    _save(db, user["_id"], ids)
    return success({"product_id": pid, "in_wishlist": added},
                   "Product added to wishlist" if added else "Product removed from wishlist")
