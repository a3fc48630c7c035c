import csv
import io
import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import get_db, now_utc, oid
from responses import paginated, serialize, success
from schemas import Newsletter, NewsletterPreferences
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])

DEFAULT_EXPORT_FIELDS = ["email", "first_name", "last_name", "status", "subscribed_at"]
EXPORTABLE_FIELDS = {
    "email", "first_name", "last_name", "status", "source", "subscribed_at", "unsubscribed_at",
    "email_count", "last_email_sent", "preferences", "tags",
}
PREFERENCE_KEYS = ("promotions", "new_products", "style_tips", "order_updates")


class SubscribeBody(BaseModel):
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    preferences: Optional[Dict[str, bool]] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, str]] = None


class UnsubscribeBody(BaseModel):
    email: EmailStr


class SubscriberUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    status: Optional[Literal["active", "unsubscribed", "bounced"]] = None
    preferences: Optional[NewsletterPreferences] = None
    tags: Optional[List[str]] = None


class BulkActionBody(BaseModel):
    action: Literal["unsubscribe", "activate", "delete"]
    subscriber_ids: List[str] = Field(..., min_length=1)


def _request_metadata(request: Request, supplied: Optional[Dict[str, str]]) -> Dict[str, str]:
    meta = {k: v for k, v in (supplied or {}).items() if v and v.strip()}
    if request.client and request.client.host:
        meta.setdefault("ip_address", request.client.host)
    agent = request.headers.get("user-agent")
    if agent:
        meta.setdefault("user_agent", agent)
    return meta


def _clean_preferences(prefs: Optional[Dict[str, bool]]) -> Dict[str, bool]:
    return {k: bool(v) for k, v in (prefs or {}).items() if k in PREFERENCE_KEYS}


@router.post("/subscribe", status_code=201)
def subscribe(body: SubscribeBody, request: Request, response: Response, db: Database = Depends(get_db)):
    email = body.email.lower()
    metadata = _request_metadata(request, body.metadata)
    existing = db["newsletters"].find_one({"email": email})

    if existing:
        if existing.get("is_active", True) and existing.get("status") != "unsubscribed":
            raise HTTPException(400, "Email is already subscribed to newsletter")
        updates = {
            "status": "active",
            "unsubscribed_at": None,
            "is_active": True,
            "preferences": {**existing.get("preferences", {}), **_clean_preferences(body.preferences)},
            "tags": list(dict.fromkeys(existing.get("tags", []) + (body.tags or []))),
            "metadata": {**existing.get("metadata", {}), **metadata},
            "updated_at": now_utc(),
        }
        db["newsletters"].update_one({"_id": existing["_id"]}, {"$set": updates})
        logger.info("Newsletter resubscribe %s", email)
        response.status_code = 200
        return success(
            db["newsletters"].find_one({"_id": existing["_id"]}, {"metadata": 0}),
            "Welcome back! You have been resubscribed to our newsletter.",
        )

    stamp = now_utc()
    doc = Newsletter(
        email=email,
        first_name=body.first_name,
        last_name=body.last_name,
        subscribed_at=stamp,
        preferences=NewsletterPreferences(**_clean_preferences(body.preferences)),
        tags=body.tags or [],
        metadata=metadata,
    ).model_dump()
    doc["created_at"] = doc["updated_at"] = stamp
    try:
        doc["_id"] = db["newsletters"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Email is already subscribed to newsletter")
    logger.info("Newsletter subscribe %s", email)
    doc.pop("metadata")
    return success(doc, "Successfully subscribed to newsletter!")


@router.post("/unsubscribe")
def unsubscribe(body: UnsubscribeBody, db: Database = Depends(get_db)):
    subscriber = db["newsletters"].find_one({"email": body.email.lower(), "is_active": {"$ne": False}})
    if not subscriber:
        raise HTTPException(404, "Email not found in newsletter subscribers")
    if subscriber.get("status") == "unsubscribed":
        raise HTTPException(400, "Email is already unsubscribed")
    stamp = now_utc()
    db["newsletters"].update_one({"_id": subscriber["_id"]},
                                 {"$set": {"status": "unsubscribed", "unsubscribed_at": stamp, "updated_at": stamp}})
    return success(None, "You have been unsubscribed from our newsletter.")


# ---------------------- Admin ----------------------

@router.get("/subscribers")
def subscribers(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                status: Literal["active", "unsubscribed", "bounced", "all"] = "all",
                search: Optional[str] = None,
                sort_by: Literal["subscribed_at", "email", "first_name", "status"] = "subscribed_at",
                sort_order: Literal["asc", "desc"] = "desc",
                admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    filt: Dict[str, Any] = {"is_active": True}
    if status != "all":
        filt["status"] = status
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"email": pattern}, {"first_name": pattern}, {"last_name": pattern}]
    total = db["newsletters"].count_documents(filt)
    cursor = (db["newsletters"].find(filt, {"metadata": 0})
              .sort(sort_by, 1 if sort_order == "asc" else -1)
              .skip((page - 1) * limit).limit(limit))
    return paginated(list(cursor), page, limit, total, "Newsletter subscribers retrieved successfully")


def period_start(period: str, now: datetime) -> Optional[datetime]:
    if period == "day":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "year":
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def active_rate(active: int, total: int) -> float:
    return round(active / total * 100, 2) if total else 0


@router.get("/stats")
def stats(period: Literal["day", "week", "month", "year", "all"] = "all",
          admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    now = now_utc()
    base: Dict[str, Any] = {"is_active": True}
    start = period_start(period, now)
    if start:
        base["subscribed_at"] = {"$gte": start}
    col = db["newsletters"]

    counts = {s: col.count_documents({**base, "status": s}) for s in ("active", "unsubscribed", "bounced")}
    total = col.count_documents(base)

    trends = list(col.aggregate([
        {"$match": {"is_active": True, "subscribed_at": {"$gte": now - timedelta(days=30)}}},
        {"$group": {"_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$subscribed_at"}}, "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    top_tags = list(col.aggregate([
        {"$match": base},
        {"$unwind": "$tags"},
        {"$group": {"_id": "$tags", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 10},
    ]))
    preferences = {k: col.count_documents({**base, f"preferences.{k}": True}) for k in PREFERENCE_KEYS}

    data = {
        "overview": {"total": total, **counts, "active_rate": active_rate(counts["active"], total)},
        "trends": {"subscription_trends": trends, "top_tags": top_tags},
        "preferences": preferences,
        "period": period,
    }
    return success(data, "Newsletter statistics retrieved successfully")


@router.put("/subscribers/{subscriber_id}")
def update_subscriber(subscriber_id: str, body: SubscriberUpdate, admin: Dict[str, Any] = Depends(require_admin),
                      db: Database = Depends(get_db)):
    subscriber = db["newsletters"].find_one({"_id": oid(subscriber_id)})
    if not subscriber:
        raise HTTPException(404, "Newsletter subscriber not found")
    updates = body.model_dump(exclude_none=True)
    if updates.get("status") == "unsubscribed" and subscriber.get("status") != "unsubscribed":
        updates["unsubscribed_at"] = now_utc()
    elif updates.get("status") == "active":
        updates["unsubscribed_at"] = None
    updates["updated_at"] = now_utc()
    db["newsletters"].update_one({"_id": subscriber["_id"]}, {"$set": updates})
    return success(db["newsletters"].find_one({"_id": subscriber["_id"]}, {"metadata": 0}),
                   "Newsletter subscriber updated successfully")


@router.delete("/subscribers/{subscriber_id}")
def delete_subscriber(subscriber_id: str, admin: Dict[str, Any] = Depends(require_admin),
                      db: Database = Depends(get_db)):
    res = db["newsletters"].update_one({"_id": oid(subscriber_id)},
                                       {"$set": {"is_active": False, "updated_at": now_utc()}})
    if res.matched_count == 0:
        raise HTTPException(404, "Newsletter subscriber not found")
    return success(None, "Newsletter subscriber deleted successfully")


def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(serialize(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def subscribers_csv(rows: List[Dict[str, Any]], fields: List[str]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(fields)
    for row in rows:
        writer.writerow([_csv_cell(row.get(f)) for f in fields])
    return buf.getvalue()


@router.get("/export")
def export_subscribers(format: Literal["csv", "json"] = "csv",
                       status: Literal["active", "unsubscribed", "bounced", "all"] = "all",
                       fields: Optional[str] = None,
                       admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    chosen = [f.strip() for f in fields.split(",") if f.strip()] if fields else list(DEFAULT_EXPORT_FIELDS)
    unknown = [f for f in chosen if f not in EXPORTABLE_FIELDS]
    if unknown:
        raise HTTPException(400, f"Unknown export fields: {', '.join(unknown)}")
    filt: Dict[str, Any] = {"is_active": True}
    if status != "all":
        filt["status"] = status
    rows = list(db["newsletters"].find(filt, {f: 1 for f in chosen}).sort("subscribed_at", -1))

    if format == "csv":
        return Response(
            content=subscribers_csv(rows, chosen),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=newsletter-subscribers.csv"},
        )
    return success({"subscribers": rows, "count": len(rows), "exported_at": now_utc()},
                   "Newsletter subscribers exported successfully")


@router.post("/bulk-action")
def bulk_action(body: BulkActionBody, admin: Dict[str, Any] = Depends(require_admin),
                db: Database = Depends(get_db)):
    stamp = now_utc()
    if body.action == "unsubscribe":
        update, message = {"status": "unsubscribed", "unsubscribed_at": stamp}, "Subscribers unsubscribed successfully"
    elif body.action == "activate":
        update, message = {"status": "active", "unsubscribed_at": None}, "Subscribers activated successfully"
    else:
        update, message = {"is_active": False}, "Subscribers deleted successfully"
    update["updated_at"] = stamp
    ids = [oid(i) for i in body.subscriber_ids]
    res = db["newsletters"].update_many({"_id": {"$in": ids}}, {"$set": update})
    logger.info("Newsletter bulk %s on %d subscribers by %s", body.action, res.modified_count, admin["_id"])
    return success({"modified_count": res.modified_count, "action": body.action}, message)
