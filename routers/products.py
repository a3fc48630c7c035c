import logging
import re
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import paginated, success
from schemas import IMAGE_URL_PATTERN, Product, product_view
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])
shop_router = APIRouter(prefix="/api/shop", tags=["products"])

SortKey = Literal["price", "-price", "created_at", "-created_at", "name", "-name", "rating", "-rating"]


class ProductBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., ge=0)
    original_price: float = Field(..., ge=0)
    category: str
    subcategory: Optional[str] = None
    material: Optional[str] = None
    colors: List[str] = []
    sizes: List[str] = []
    images: List[str] = []
    tags: List[str] = []
    stock: int = Field(0, ge=0)
    is_featured: bool = False
    is_new: bool = True
    is_active: bool = True

    @field_validator("images")
    @classmethod
    def images_are_urls(cls, v):
        if any(not IMAGE_URL_PATTERN.match(url) for url in v):
            raise ValueError("Image must be a valid URL")
        return v


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    subcategory: Optional[str] = None
    material: Optional[str] = None
    colors: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    images: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    is_featured: Optional[bool] = None
    is_new: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("images")
    @classmethod
    def images_are_urls(cls, v):
        if v is not None and any(not IMAGE_URL_PATTERN.match(url) for url in v):
            raise ValueError("Image must be a valid URL")
        return v

    @field_validator("tags")
    @classmethod
    def lowercase_tags(cls, v):
        return None if v is None else [t.strip().lower() for t in v if t.strip()]


# ---------------------- Query helpers ----------------------

def _sort_order(sort: Optional[str]):
    if not sort:
        return [("created_at", -1)]
    return [(sort.lstrip("-"), -1 if sort.startswith("-") else 1)]


def build_filter(category: Optional[str] = None, search: Optional[str] = None,
                 min_price: Optional[float] = None, max_price: Optional[float] = None,
                 in_stock: Optional[bool] = None, featured: Optional[bool] = None,
                 active_only: bool = True) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if active_only:
        filt["is_active"] = True
    if category:
        filt["category"] = oid(category)
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}, {"tags": pattern}]
    price_cond: Dict[str, float] = {}
    if min_price is not None:
        price_cond["$gte"] = min_price
    if max_price is not None:
        price_cond["$lte"] = max_price
    if price_cond:
        filt["price"] = price_cond
    if in_stock is not None:
        filt["in_stock"] = in_stock
    if featured is not None:
        filt["is_featured"] = featured
    return filt


def with_category(db: Database, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace the category id with {_id, name, slug} and add derived fields."""
    ids = {p.get("category") for p in products if p.get("category")}
    cats = {c["_id"]: c for c in db["categories"].find({"_id": {"$in": list(ids)}}, {"name": 1, "slug": 1})}
    for p in products:
        if p.get("category") in cats:
            p["category"] = cats[p["category"]]
        product_view(p)
    return products


def _page(db: Database, filt: Dict[str, Any], page: int, limit: int, sort: Optional[str], message: str):
    total = db["products"].count_documents(filt)
    cursor = db["products"].find(filt).sort(_sort_order(sort)).skip((page - 1) * limit).limit(limit)
    return paginated(with_category(db, list(cursor)), page, limit, total, message)


def _require_category(db: Database, category_id: str):
    cat_oid = oid(category_id)
    if not db["categories"].find_one({"_id": cat_oid}, {"_id": 1}):
        raise HTTPException(400, "Category not found")
    return cat_oid


def _get_product(db: Database, product_id: str) -> Dict[str, Any]:
    product = db["products"].find_one({"_id": oid(product_id)})
    if not product:
        raise HTTPException(404, "Product not found")
    return product


# ---------------------- Public ----------------------

@router.get("")
def list_products(page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100),
                  category: Optional[str] = None, sort: Optional[SortKey] = None,
                  search: Optional[str] = None, min_price: Optional[float] = Query(None, ge=0),
                  max_price: Optional[float] = Query(None, ge=0), db: Database = Depends(get_db)):
    filt = build_filter(category, search, min_price, max_price)
    return _page(db, filt, page, limit, sort, "Products fetched successfully")


@shop_router.get("/products")
@router.get("/shop-products")
def shop_products(page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100),
                  category: Optional[str] = None, sort: Optional[SortKey] = None,
                  search: Optional[str] = None, min_price: Optional[float] = Query(None, ge=0),
                  max_price: Optional[float] = Query(None, ge=0), in_stock: Optional[bool] = None,
                  featured: Optional[bool] = None, db: Database = Depends(get_db)):
    filt = build_filter(category, search, min_price, max_price, in_stock, featured)
    return _page(db, filt, page, limit, sort, "Products fetched successfully")


@router.get("/featured")
def featured_products(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    cursor = db["products"].find({"is_active": True, "is_featured": True}).sort("created_at", -1).limit(limit)
    return success(with_category(db, list(cursor)), "Featured products fetched successfully")


@router.get("/new-arrivals")
def new_arrivals(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    cursor = db["products"].find({"is_active": True}).sort("created_at", -1).limit(limit)
    return success(with_category(db, list(cursor)), "New arrivals fetched successfully")


@router.get("/search")
def search_products(q: str = Query(..., min_length=1), page: int = Query(1, ge=1),
                    limit: int = Query(12, ge=1, le=100), db: Database = Depends(get_db)):
    return _page(db, build_filter(search=q), page, limit, None, "Search results fetched successfully")


@router.get("/category/{category_id}")
def products_by_category(category_id: str, page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100),
                         sort: Optional[SortKey] = None, db: Database = Depends(get_db)):
    return _page(db, build_filter(category=category_id), page, limit, sort, "Products fetched successfully")


# ---------------------- Admin ----------------------

@router.get("/admin/all")
def admin_products(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                   search: Optional[str] = None, status: Literal["active", "inactive", "all"] = "all",
                   category: Optional[str] = None, sort: Optional[SortKey] = None,
                   admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    filt = build_filter(category=category, search=search, active_only=False)
    if status != "all":
        filt["is_active"] = status == "active"
    return _page(db, filt, page, limit, sort, "Products fetched successfully")


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = _get_product(db, product_id)
    return success(with_category(db, [product])[0], "Product fetched successfully")


@router.post("", status_code=201)
def create_product(body: ProductBody, admin: Dict[str, Any] = Depends(require_admin),
                   db: Database = Depends(get_db)):
    data = body.model_dump()
    data["category"] = _require_category(db, body.category)
    data["in_stock"] = data["stock"] > 0
    doc = Product(**data, created_by=admin["_id"]).model_dump()
    doc["created_at"] = doc["updated_at"] = now_utc()
    doc["_id"] = db["products"].insert_one(doc).inserted_id
    logger.info("Product %s created by %s", doc["_id"], admin["_id"])
    return success(product_view(doc), "Product created successfully")


@router.put("/{product_id}")
def update_product(product_id: str, body: ProductUpdate, admin: Dict[str, Any] = Depends(require_admin),
                   db: Database = Depends(get_db)):
    product = _get_product(db, product_id)
    updates = body.model_dump(exclude_none=True)
    if "category" in updates:
        updates["category"] = _require_category(db, updates["category"])
    stock = updates.get("stock", product.get("stock", 0))
    updates["in_stock"] = stock > 0
    updates["updated_by"] = admin["_id"]
    updates["updated_at"] = now_utc()
    db["products"].update_one({"_id": product["_id"]}, {"$set": updates})
    return success(product_view(db["products"].find_one({"_id": product["_id"]})), "Product updated successfully")


@router.delete("/{product_id}")
def delete_product(product_id: str, admin: Dict[str, Any] = Depends(require_admin),
                   db: Database = Depends(get_db)):
    product = _get_product(db, product_id)
    stamp = now_utc()
    db["products"].update_one({"_id": product["_id"]}, {"$set": {
        "is_active": False, "deleted_by": admin["_id"], "deleted_at": stamp, "updated_at": stamp,
    }})
    logger.info("Product %s deactivated by %s", product["_id"], admin["_id"])
    return success(None, "Product deleted successfully")


@router.patch("/{product_id}/toggle-status")
def toggle_status(product_id: str, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    product = _get_product(db, product_id)
    active = not product.get("is_active", True)
    db["products"].update_one({"_id": product["_id"]},
                              {"$set": {"is_active": active, "updated_by": admin["_id"], "updated_at": now_utc()}})
    return success({"_id": product["_id"], "is_active": active},
                   f"Product {'activated' if active else 'deactivated'} successfully")


@router.patch("/{product_id}/toggle-featured")
def toggle_featured(product_id: str, admin: Dict[str, Any] = Depends(require_admin),
                    db: Database = Depends(get_db)):
    product = _get_product(db, product_id)
    featured = not product.get("is_featured", False)
    db["products"].update_one({"_id": product["_id"]},
                              {"$set": {"is_featured": featured, "updated_by": admin["_id"], "updated_at": now_utc()}})
    return success({"_id": product["_id"], "is_featured": featured},
                   f"Product {'marked as featured' if featured else 'removed from featured'}")
