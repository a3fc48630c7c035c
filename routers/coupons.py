from datetime import datetime
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from checkout import find_coupon
from database import get_db, now_utc
from responses import success
from schemas import Coupon
from security import require_admin

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


class CouponBody(BaseModel):
    code: str = Field(..., min_length=2, max_length=30)
    type: Literal["percent", "flat"]
    value: float = Field(..., gt=0)
    min_order: float = Field(0, ge=0)
    active: bool = True
    expires_at: Optional[datetime] = None


@router.post("", status_code=201)
def create_coupon(body: CouponBody, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    if body.type == "percent" and body.value > 100:
        raise HTTPException(400, "Percent coupons cannot exceed 100")
    doc = Coupon(**{**body.model_dump(), "code": body.code.strip().upper()}).model_dump()
    if db["coupons"].find_one({"code": doc["code"]}, {"_id": 1}):
        raise HTTPException(400, "Coupon code already exists")
    doc["created_at"] = now_utc()
    try:
        doc["_id"] = db["coupons"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Coupon code already exists")
    return success(doc, "Coupon created successfully")


@router.get("")
def list_coupons(admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    return success(list(db["coupons"].find().sort("created_at", -1)), "Coupons fetched successfully")


@router.get("/{code}")
def get_coupon(code: str, db: Database = Depends(get_db)):
    coupon = find_coupon(db, code)
    if not coupon:
        raise HTTPException(404, "Invalid coupon")
    return success(coupon, "Coupon is valid")
