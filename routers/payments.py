import json
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field
from pymongo.database import Database

import config
import emailer
import razorpay_client
from checkout import history_entry, place_order, price_cart
from database import get_db, now_utc
from responses import success
from schemas import Address, order_view
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


class CreatePaymentOrderBody(BaseModel):
    coupon_code: Optional[str] = None
    currency: Literal["INR"] = "INR"


class OrderData(BaseModel):
    shipping_address: Address
    billing_address: Optional[Address] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class VerifyPaymentBody(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    order_data: Optional[OrderData] = None


@router.post("/create-order")
def create_payment_order(body: CreatePaymentOrderBody, user: Dict[str, Any] = Depends(get_current_user),
                         db: Database = Depends(get_db)):
    """Open a gateway order for the server-priced cart and remember what it was for."""
    if not razorpay_client.is_configured():
        raise HTTPException(500, "Razorpay credentials are not configured")
    _, _, totals = price_cart(db, user, body.coupon_code)
    if totals["total"] < 1:
        raise HTTPException(400, "Amount must be at least 1 INR")
    try:
        order = razorpay_client.create_order(totals["total"], body.currency)
    except razorpay_client.GatewayError as e:
        raise HTTPException(e.status_code, str(e))

    db["payment_orders"].insert_one({
        "razorpay_order_id": order["id"],
        "user_id": user["_id"],
        "amount": razorpay_client.to_paise(totals["total"]),
        "currency": body.currency,
        "coupon_code": body.coupon_code,
        "status": "created",
        "created_at": now_utc(),
    })
    logger.info("Razorpay order %s created for user %s amount=%s", order.get("id"), user["_id"], totals["total"])
    return success(dict(order, key_id=config.RAZORPAY_KEY_ID, totals=totals), "Razorpay order created")


@router.post("/verify")
def verify_payment(body: VerifyPaymentBody, user: Dict[str, Any] = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    if not razorpay_client.verify_payment_signature(body.razorpay_order_id, body.razorpay_payment_id,
                                                    body.razorpay_signature):
        logger.warning("Payment signature mismatch for razorpay order %s", body.razorpay_order_id)
        raise HTTPException(400, "Invalid signature - payment verification failed")
    if body.order_data is None:
        raise HTTPException(400, "Order data is required")

    payment_order = db["payment_orders"].find_one({"razorpay_order_id": body.razorpay_order_id,
                                                   "user_id": user["_id"]})
    if not payment_order:
        raise HTTPException(400, "Unknown payment order")
    if payment_order.get("status") == "paid":
        raise HTTPException(400, "Payment has already been processed")

    data = body.order_data
    priced = price_cart(db, user, data.coupon_code)
    if razorpay_client.to_paise(priced[2]["total"]) != payment_order["amount"]:
        logger.warning("Razorpay order %s paid %s paise but cart totals %s", body.razorpay_order_id,
                       payment_order["amount"], priced[2]["total"])
        raise HTTPException(400, "Payment amount does not match order total")

    order = place_order(
        db, user,
        shipping_address=data.shipping_address.model_dump(),
        billing_address=data.billing_address.model_dump() if data.billing_address else None,
        payment_method="razorpay",
        payment_status="paid",
        payment_id=body.razorpay_payment_id,
        razorpay_order_id=body.razorpay_order_id,
        coupon_code=data.coupon_code,
        notes=data.notes,
        priced=priced,
    )
    db["payment_orders"].update_one({"_id": payment_order["_id"]}, {"$set": {
        "status": "paid", "payment_id": body.razorpay_payment_id, "order_id": order["_id"], "updated_at": now_utc(),
    }})
    emailer.notify("payment_confirmation", user.get("email"), {
        "order_id": order["order_id"],
        "customer_name": user.get("first_name"),
        "amount": order["total"],
        "payment_method": "Razorpay",
    })
    return success(order_view(order), "Payment verified and order created successfully")


@router.post("/webhook")
async def webhook(request: Request, x_razorpay_signature: Optional[str] = Header(None),
                  db: Database = Depends(get_db)):
    raw = await request.body()
    if not razorpay_client.verify_webhook_signature(raw, x_razorpay_signature):
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(400, "Invalid webhook signature")
    try:
        event = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(400, "Invalid webhook payload")

    if event.get("event") == "payment.captured":
        entity = event.get("payload", {}).get("payment", {}).get("entity", {})
        mark_captured(db, entity.get("order_id"), entity.get("id"))
    else:
        logger.info("Ignoring webhook event %s", event.get("event"))
    return success({"status": "ok"}, "Webhook processed")


def mark_captured(db: Database, razorpay_order_id: Optional[str], payment_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not razorpay_order_id:
        return None
    order = db["orders"].find_one({"razorpay_order_id": razorpay_order_id})
    if not order:
        logger.warning("Captured payment for unknown razorpay order %s", razorpay_order_id)
        return None
    if order.get("payment_status") == "paid":
        logger.info("Duplicate capture for order %s ignored", order.get("order_id"))
        return order
    updates: Dict[str, Any] = {"payment_status": "paid", "updated_at": now_utc()}
    if payment_id:
        updates["payment_id"] = payment_id
    change: Dict[str, Any] = {"$set": updates}
    if order.get("order_status") == "pending":
        updates["order_status"] = "confirmed"
        change["$push"] = {"status_history": history_entry("confirmed", None, "Payment captured")}
    db["orders"].update_one({"_id": order["_id"]}, change)

    customer = db["users"].find_one({"_id": order["user_id"]}, {"email": 1, "first_name": 1}) or {}
    emailer.notify("payment_confirmation", customer.get("email"), {
        "order_id": order["order_id"],
        "customer_name": customer.get("first_name"),
        "amount": order.get("total"),
        "payment_method": "Razorpay",
    })
    return db["orders"].find_one({"_id": order["_id"]})
