import logging
import re
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.database import Database

import emailer
from checkout import cancel_order, history_entry, place_order, restore_stock
from database import get_db, now_utc, oid
from responses import paginated, success
from schemas import Address, OrderStatus, PaymentStatus, order_view
from security import get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

SELLER = {
    "name": "Samjubaa Creation",
    "email": "support@samjubaa.com",
    "address": "Jaipur, Rajasthan, India",
}


class CreateOrderBody(BaseModel):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Literal["razorpay", "cod"] = "cod"
    coupon_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class CancelBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusBody(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = None


class PaymentStatusBody(BaseModel):
    payment_status: PaymentStatus
    payment_id: Optional[str] = None


def _get_order(db: Database, order_id: str) -> Dict[str, Any]:
    order = db["orders"].find_one({"_id": oid(order_id)})
    if not order:
        raise HTTPException(404, "Order not found")
    return order


def _owned_order(db: Database, order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    order = _get_order(db, order_id)
    if order["user_id"] != user["_id"] and user.get("role") != "admin":
        raise HTTPException(403, "Access denied")
    return order


def update_order_status(db: Database, order: Dict[str, Any], status: str, by: Any,
                        notes: Optional[str] = None, tracking_number: Optional[str] = None) -> Dict[str, Any]:
    """Apply an admin status change; cancelling puts the stock back and is final."""
    if order.get("order_status") == "cancelled":
        raise HTTPException(400, "Cancelled orders cannot be updated")
    stamp = now_utc()
    updates: Dict[str, Any] = {"order_status": status, "updated_at": stamp}
    if tracking_number:
        updates["tracking_number"] = tracking_number
    if status == "delivered":
        updates["delivered_at"] = stamp
    if status == "cancelled":
        updates["cancelled_at"] = stamp
        updates["cancellation_reason"] = notes

    res = db["orders"].update_one(
        {"_id": order["_id"], "order_status": {"$ne": "cancelled"}},
        {"$set": updates, "$push": {"status_history": history_entry(status, by, notes)}},
    )
    if res.modified_count == 0:
        raise HTTPException(400, "Cancelled orders cannot be updated")
    if status == "cancelled":
        restore_stock(db, order.get("items", []))

    updated = db["orders"].find_one({"_id": order["_id"]})
    logger.info("Order %s moved to %s by %s", order.get("order_id"), status, by)
    customer = db["users"].find_one({"_id": order["user_id"]}, {"email": 1, "first_name": 1}) or {}
    emailer.notify("order_status", customer.get("email"), {
        "order_id": order.get("order_id"),
        "customer_name": customer.get("first_name"),
        "status": status,
        "tracking_number": updated.get("tracking_number"),
    })
    return updated


def update_payment_status(db: Database, order: Dict[str, Any], payment_status: str,
                          payment_id: Optional[str] = None) -> Dict[str, Any]:
    updates: Dict[str, Any] = {"payment_status": payment_status, "updated_at": now_utc()}
    if payment_id:
        updates["payment_id"] = payment_id
    db["orders"].update_one({"_id": order["_id"]}, {"$set": updates})
    return db["orders"].find_one({"_id": order["_id"]})


def admin_order_filter(db: Database, status: Optional[str] = None, payment_status: Optional[str] = None,
                       search: Optional[str] = None) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if status:
        filt["order_status"] = status
    if payment_status:
        filt["payment_status"] = payment_status
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        user_ids = [u["_id"] for u in db["users"].find(
            {"$or": [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]}, {"_id": 1})]
        filt["$or"] = [{"order_id": pattern}, {"user_id": {"$in": user_ids}}]
    return filt


def with_customers(db: Database, orders):
    ids = list({o["user_id"] for o in orders})
    users = {u["_id"]: u for u in db["users"].find(
        {"_id": {"$in": ids}}, {"first_name": 1, "last_name": 1, "email": 1, "phone": 1})}
    for o in orders:
        o["user"] = users.get(o["user_id"])
        order_view(o)
    return orders


# ---------------------- Customer ----------------------

@router.post("", status_code=201)
def create_order(body: CreateOrderBody, user: Dict[str, Any] = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    order = place_order(
        db, user,
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        payment_method=body.payment_method,
        coupon_code=body.coupon_code,
        notes=body.notes,
    )
    return success(order_view(order), "Order created successfully")


@router.get("")
def my_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
              status: Optional[OrderStatus] = None, user: Dict[str, Any] = Depends(get_current_user),
              db: Database = Depends(get_db)):
    filt: Dict[str, Any] = {"user_id": user["_id"]}
    if status:
        filt["order_status"] = status
    total = db["orders"].count_documents(filt)
    cursor = db["orders"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return paginated([order_view(o) for o in cursor], page, limit, total, "Orders fetched successfully")


# ---------------------- Admin ----------------------

@router.get("/admin/all")
def all_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
               status: Optional[OrderStatus] = None, payment_status: Optional[PaymentStatus] = None,
               search: Optional[str] = None, admin: Dict[str, Any] = Depends(require_admin),
               db: Database = Depends(get_db)):
    filt = admin_order_filter(db, status, payment_status, search)
    total = db["orders"].count_documents(filt)
    cursor = db["orders"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return paginated(with_customers(db, list(cursor)), page, limit, total, "Orders fetched successfully")


@router.patch("/admin/{order_id}/status")
def admin_update_status(order_id: str, body: StatusBody, admin: Dict[str, Any] = Depends(require_admin),
                        db: Database = Depends(get_db)):
    order = _get_order(db, order_id)
    updated = update_order_status(db, order, body.status, admin["_id"], body.notes, body.tracking_number)
    return success(order_view(updated), "Order status updated successfully")


@router.patch("/admin/{order_id}/payment")
def admin_update_payment(order_id: str, body: PaymentStatusBody, admin: Dict[str, Any] = Depends(require_admin),
                         db: Database = Depends(get_db)):
    order = _get_order(db, order_id)
    updated = update_payment_status(db, order, body.payment_status, body.payment_id)
    return success(order_view(updated), "Payment status updated successfully")


# ---------------------- Single order ----------------------

@router.get("/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    return success(order_view(_owned_order(db, order_id, user)), "Order fetched successfully")


@router.get("/{order_id}/invoice")
def get_invoice(order_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    order = order_view(_owned_order(db, order_id, user))
    customer = db["users"].find_one({"_id": order["user_id"]}, {"first_name": 1, "last_name": 1, "email": 1, "phone": 1})
    invoice = {
        "invoice_number": f"INV-{order['order_id']}",
        "invoice_date": order.get("created_at"),
        "seller": SELLER,
        "customer": customer,
        "billing_address": order.get("billing_address"),
        "shipping_address": order.get("shipping_address"),
        "items": [dict(it, line_total=round(it["price"] * it["quantity"], 2)) for it in order["items"]],
        "summary": {k: order.get(k) for k in ("subtotal", "discount", "tax", "shipping", "total")},
        "payment": {
            "method": order.get("payment_method"),
            "status": order.get("payment_status"),
            "payment_id": order.get("payment_id"),
        },
        "order": order,
    }
    return success(invoice, "Invoice generated successfully")


@router.patch("/{order_id}/cancel")
def cancel(order_id: str, body: Optional[CancelBody] = None, user: Dict[str, Any] = Depends(get_current_user),
           db: Database = Depends(get_db)):
    order = _owned_order(db, order_id, user)
    reason = body.reason if body else None
    updated = cancel_order(db, order, user["_id"], reason or "Cancelled by customer")
    emailer.notify("order_status", user.get("email"), {
        "order_id": updated.get("order_id"),
        "customer_name": user.get("first_name"),
        "status": "cancelled",
    })
    return success(order_view(updated), "Order cancelled successfully")
