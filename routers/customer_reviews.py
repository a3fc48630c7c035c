import re
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import paginated, success
from schemas import CustomerReview
from security import require_admin

router = APIRouter(prefix="/api/customer-reviews", tags=["customer-reviews"])


class CustomerReviewUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=2, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=10, max_length=500)
    is_active: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)


def _get(db: Database, review_id: str) -> Dict[str, Any]:
    review = db["customer_reviews"].find_one({"_id": oid(review_id)})
    if not review:
        raise HTTPException(404, "Customer review not found")
    return review


@router.get("/active")
def active_reviews(limit: int = Query(10, ge=1, le=50), db: Database = Depends(get_db)):
    cursor = db["customer_reviews"].find({"is_active": True}).sort([("display_order", 1), ("created_at", -1)]).limit(limit)
    return success(list(cursor), "Customer reviews fetched successfully")


@router.get("")
def all_reviews(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                status: Literal["active", "inactive", "all"] = "all", search: Optional[str] = None,
                sort_by: Literal["created_at", "rating", "display_order", "customer_name"] = "created_at",
                sort_order: Literal["asc", "desc"] = "desc",
                admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    filt: Dict[str, Any] = {}
    if status != "all":
        filt["is_active"] = status == "active"
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"customer_name": pattern}, {"location": pattern}, {"comment": pattern}]
    total = db["customer_reviews"].count_documents(filt)
    cursor = (db["customer_reviews"].find(filt)
              .sort(sort_by, 1 if sort_order == "asc" else -1)
              .skip((page - 1) * limit).limit(limit))
    return paginated(list(cursor), page, limit, total, "Customer reviews retrieved successfully")


@router.get("/{review_id}")
def get_review(review_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    return success(_get(db, review_id), "Customer review retrieved successfully")


@router.post("", status_code=201)
def create_review(body: CustomerReview, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    doc = body.model_dump()
    doc["customer_name"] = doc["customer_name"].strip()
    doc["comment"] = doc["comment"].strip()
    doc["created_at"] = doc["updated_at"] = now_utc()
    doc["_id"] = db["customer_reviews"].insert_one(doc).inserted_id
    return success(doc, "Customer review created successfully")


@router.put("/{review_id}")
def update_review(review_id: str, body: CustomerReviewUpdate, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    review = _get(db, review_id)
    updates = body.model_dump(exclude_none=True)
    updates["updated_at"] = now_utc()
    db["customer_reviews"].update_one({"_id": review["_id"]}, {"$set": updates})
    return success(_get(db, review_id), "Customer review updated successfully")


@router.delete("/{review_id}")
def delete_review(review_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    review = _get(db, review_id)
    db["customer_reviews"].delete_one({"_id": review["_id"]})
    return success(None, "Customer review deleted successfully")


@router.patch("/{review_id}/toggle-status")
def toggle_status(review_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    review = _get(db, review_id)
    active = not review.get("is_active", True)
    db["customer_reviews"].update_one({"_id": review["_id"]}, {"$set": {"is_active": active, "updated_at": now_utc()}})
    return success({"_id": review["_id"], "is_active": active},
                   f"Customer review {'activated' if active else 'deactivated'} successfully")
