import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_db, is_object_id, now_utc, oid
from responses import success
from schemas import Category, Subcategory, with_slugs
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    subcategories: Optional[List[Subcategory]] = None
    featured: Optional[bool] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


def _name_taken(db: Database, name: str, exclude_id=None) -> bool:
    filt: Dict[str, Any] = {"name": {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}}
    if exclude_id is not None:
        filt["_id"] = {"$ne": exclude_id}
    return db["categories"].find_one(filt, {"_id": 1}) is not None


def _find_category(db: Database, key: str) -> Dict[str, Any]:
    filt = {"_id": oid(key)} if is_object_id(key) else {"slug": key.lower()}
    cat = db["categories"].find_one(filt)
    if not cat:
        raise HTTPException(404, "Category not found")
    return cat


@router.get("")
def list_categories(db: Database = Depends(get_db)):
    cats = list(db["categories"].find({"is_active": True}).sort([("sort_order", 1), ("name", 1)]))
    for c in cats:
        c["product_count"] = db["products"].count_documents({"category": c["_id"], "is_active": True})
    return success(cats, "Categories fetched successfully")


@router.get("/{key}")
def get_category(key: str, db: Database = Depends(get_db)):
    cat = _find_category(db, key)
    cat["product_count"] = db["products"].count_documents({"category": cat["_id"], "is_active": True})
    return success(cat, "Category fetched successfully")


@router.post("", status_code=201)
def create_category(body: Category, admin: Dict[str, Any] = Depends(require_admin),
                    db: Database = Depends(get_db)):
    if _name_taken(db, body.name):
        raise HTTPException(400, "Category with this name already exists")
    doc = with_slugs(body.model_dump())
    doc["created_at"] = doc["updated_at"] = now_utc()
    try:
        doc["_id"] = db["categories"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Category with this name already exists")
    logger.info("Category %s created by %s", doc["slug"], admin["_id"])
    return success(doc, "Category created successfully")


@router.put("/{category_id}")
def update_category(category_id: str, body: CategoryUpdate, admin: Dict[str, Any] = Depends(require_admin),
                    db: Database = Depends(get_db)):
    cat = db["categories"].find_one({"_id": oid(category_id)})
    if not cat:
        raise HTTPException(404, "Category not found")
    updates = body.model_dump(exclude_none=True)
    if "name" in updates and _name_taken(db, updates["name"], exclude_id=cat["_id"]):
        raise HTTPException(400, "Category with this name already exists")
    merged = with_slugs({**cat, **updates})
    updates["slug"] = merged["slug"]
    if "subcategories" in updates:
        updates["subcategories"] = merged["subcategories"]
    updates["updated_at"] = now_utc()
    db["categories"].update_one({"_id": cat["_id"]}, {"$set": updates})
    return success(db["categories"].find_one({"_id": cat["_id"]}), "Category updated successfully")


@router.delete("/{category_id}")
def delete_category(category_id: str, admin: Dict[str, Any] = Depends(require_admin),
                    db: Database = Depends(get_db)):
    res = db["categories"].delete_one({"_id": oid(category_id)})
    if res.deleted_count == 0:
        raise HTTPException(404, "Category not found")
    logger.info("Category %s deleted by %s", category_id, admin["_id"])
    return success(None, "Category deleted successfully")
