"""
Razorpay gateway: order creation over the REST API and signature checks.
"""
import hashlib
import hmac
import logging
import time
from typing import Any, Dict

import httpx

import config

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


def is_configured() -> bool:
    return bool(config.RAZORPAY_KEY_ID and config.RAZORPAY_KEY_SECRET)


def to_paise(amount_rupees: float) -> int:
    return int(round(amount_rupees * 100))


def create_order(amount_rupees: float, currency: str = config.CURRENCY) -> Dict[str, Any]:
    payload = {
        "amount": to_paise(amount_rupees),
        "currency": currency,
        "receipt": f"order_{int(time.time() * 1000)}",
    }
    try:
        resp = httpx.post(
            f"{config.RAZORPAY_API_URL}/orders",
            json=payload,
            auth=(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET),
            timeout=15.0,
        )
    except httpx.HTTPError as e:
        logger.error("Razorpay create order request failed: %s", e)
        raise GatewayError("Failed to reach payment gateway")
    if resp.status_code >= 400:
        try:
            err = resp.json().get("error", {})
        except ValueError:
            err = {}
        message = err.get("description") or err.get("reason") or "Failed to create payment order"
        logger.error("Razorpay create order failed (%s): %s", resp.status_code, message)
        raise GatewayError(message)
    return resp.json()


def _hex_hmac(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    return _hex_hmac(secret, f"{order_id}|{payment_id}".encode("utf-8"))


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str = None) -> bool:
    secret = secret if secret is not None else config.RAZORPAY_KEY_SECRET
    if not secret or not signature:
        return False
    expected = payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str = None) -> bool:
    secret = secret if secret is not None else config.RAZORPAY_WEBHOOK_SECRET
    if not secret or not signature:
        return False
    return hmac.compare_digest(_hex_hmac(secret, raw_body), signature)
