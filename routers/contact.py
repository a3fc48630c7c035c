from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import paginated, success
from schemas import Contact
from security import get_optional_user, require_admin

router = APIRouter(prefix="/api/contact", tags=["contact"])

ContactStatus = Literal["new", "read", "responded", "closed"]


class ContactBody(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    subject: str = Field(..., min_length=2, max_length=150)
    message: str = Field(..., min_length=5, max_length=2000)


class StatusBody(BaseModel):
    status: ContactStatus


@router.post("", status_code=201)
def create_message(body: ContactBody, request: Request, user: Optional[Dict[str, Any]] = Depends(get_optional_user),
                   db: Database = Depends(get_db)):
    doc = Contact(
        name=body.name.strip(),
        email=body.email.lower(),
        phone=body.phone.strip() if body.phone else None,
        subject=body.subject.strip(),
        message=body.message.strip(),
        user=user["_id"] if user else None,
        metadata={
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        },
    ).model_dump()
    doc["created_at"] = doc["updated_at"] = now_utc()
    doc["_id"] = db["contacts"].insert_one(doc).inserted_id
    return success(doc, "Message received. We will get back to you soon.")


@router.get("")
def list_messages(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                  status: Optional[ContactStatus] = None, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    filt: Dict[str, Any] = {"status": status} if status else {}
    total = db["contacts"].count_documents(filt)
    cursor = db["contacts"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return paginated(list(cursor), page, limit, total, "Contact messages fetched")


@router.patch("/{message_id}/status")
def update_status(message_id: str, body: StatusBody, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    res = db["contacts"].update_one({"_id": oid(message_id)},
                                    {"$set": {"status": body.status, "updated_at": now_utc()}})
    if res.matched_count == 0:
        raise HTTPException(404, "Message not found")
    return success(db["contacts"].find_one({"_id": oid(message_id)}), "Message status updated successfully")
