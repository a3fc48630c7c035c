import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_db, now_utc, oid
from responses import success
from schemas import Review
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


class ReviewBody(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


def recompute_rating(db: Database, product_id: ObjectId) -> Dict[str, Any]:
    ratings = [r["rating"] for r in db["reviews"].find({"product_id": product_id}, {"rating": 1})]
    summary = {
        "rating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
        "review_count": len(ratings),
    }
    db["products"].update_one({"_id": product_id}, {"$set": summary})
    return summary


def has_purchased(db: Database, user_id: ObjectId, product_id: ObjectId) -> bool:
    return db["orders"].find_one({
        "user_id": user_id,
        "order_status": "delivered",
        "items.product_id": product_id,
    }, {"_id": 1}) is not None


def _own_review(db: Database, review_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    review = db["reviews"].find_one({"_id": oid(review_id)})
    if not review:
        raise HTTPException(404, "Review not found")
    if review["user_id"] != user["_id"]:
        raise HTTPException(403, "You can only modify your own reviews")
    return review


@router.get("/product/{product_id}")
def product_reviews(product_id: str, db: Database = Depends(get_db)):
    reviews = list(db["reviews"].find({"product_id": oid(product_id)}).sort("created_at", -1))
    users = {u["_id"]: u for u in db["users"].find(
        {"_id": {"$in": list({r["user_id"] for r in reviews})}}, {"first_name": 1, "last_name": 1})}
    for r in reviews:
        r["user"] = users.get(r["user_id"])
    return success(reviews, "Reviews fetched successfully")


@router.post("/product/{product_id}", status_code=201)
def add_review(product_id: str, body: ReviewBody, user: Dict[str, Any] = Depends(get_current_user),
               db: Database = Depends(get_db)):
    pid = oid(product_id)
    if not db["products"].find_one({"_id": pid}, {"_id": 1}):
        raise HTTPException(404, "Product not found")
    if db["reviews"].find_one({"product_id": pid, "user_id": user["_id"]}, {"_id": 1}):
        raise HTTPException(400, "You have already reviewed this product")

    doc = Review(
        product_id=pid,
        user_id=user["_id"],
        rating=body.rating,
        comment=body.comment.strip() if body.comment else None,
        is_verified=has_purchased(db, user["_id"], pid),
    ).model_dump()
    doc["created_at"] = doc["updated_at"] = now_utc()
    try:
        doc["_id"] = db["reviews"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "You have already reviewed this product")
    recompute_rating(db, pid)
    return success(doc, "Review added successfully")


@router.put("/{review_id}")
def update_review(review_id: str, body: ReviewBody, user: Dict[str, Any] = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    review = _own_review(db, review_id, user)
    updates = {
        "rating": body.rating,
        "comment": body.comment.strip() if body.comment else None,
        "updated_at": now_utc(),
    }
    db["reviews"].update_one({"_id": review["_id"]}, {"$set": updates})
    recompute_rating(db, review["product_id"])
    return success(db["reviews"].find_one({"_id": review["_id"]}), "Review updated successfully")


@router.delete("/{review_id}")
def delete_review(review_id: str, user: Dict[str, Any] = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    review = _own_review(db, review_id, user)
    db["reviews"].delete_one({"_id": review["_id"]})
    recompute_rating(db, review["product_id"])
    logger.info("Review %s deleted by %s", review["_id"], user["_id"])
    return success(None, "Review deleted successfully")
