"""
Transactional email through Resend.

Callers treat every send as best-effort: `send_email` raises on provider
errors and the call sites log and carry on.
"""
import html
import logging
from typing import Any, Dict, Optional

import resend

import config

logger = logging.getLogger(__name__)

BRAND = "Samjubaa Creation"


def _money(amount: Any) -> str:
    return f"₹{float(amount or 0):,.2f}"


def send_email(to: str, subject: str, html_body: str, text: Optional[str] = None) -> Optional[str]:
    """Send one email and return the provider message id, or None when email is not configured."""
    if not config.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured, skipping email %r to %s", subject, to)
        return None
    resend.api_key = config.RESEND_API_KEY
    params = {
        "from": config.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html_body,
    }
    if text:
        params["text"] = text
    result = resend.Emails.send(params)
    email_id = result.get("id") if isinstance(result, dict) else getattr(result, "id", None)
    logger.info("Email sent to %s (%s) id=%s", to, subject, email_id)
    return email_id


def _items_table(items) -> str:
    rows = "".join(
        f"<tr><td>{html.escape(str(it.get('name', '')))}</td><td>{it['quantity']}</td>"
        f"<td>{_money(it['price'])}</td></tr>"
        for it in items
    )
    return f"<table><tr><th>Item</th><th>Qty</th><th>Price</th></tr>{rows}</table>"


def render_template(name: str, ctx: Dict[str, Any]) -> Dict[str, str]:
    """Return subject and html for a named template."""
    customer = html.escape(ctx.get("customer_name") or "Customer")
    if name == "welcome":
        return {
            "subject": f"Welcome to {BRAND}",
            "html": f"<p>Dear {customer},</p><p>Welcome to {BRAND}! Your account has been created successfully.</p>",
        }
    if name == "password_reset":
        return {
            "subject": "Password Reset Request",
            "html": (f"<p>Dear {customer},</p><p>Click the link to reset your password "
                     f"(valid for {config.PASSWORD_RESET_EXPIRES_MINUTES} minutes):</p>"
                     f"<p><a href=\"{ctx['reset_url']}\">{ctx['reset_url']}</a></p>"),
        }
    if name == "order_confirmation":
        eta = ctx.get("estimated_delivery")
        eta_line = f"<p>Estimated delivery: {eta:%d %b %Y}</p>" if eta else ""
        return {
            "subject": f"Order Confirmed - {ctx['order_id']}",
            "html": (f"<p>Dear {customer},</p><p>Your order <b>{ctx['order_id']}</b> has been placed successfully.</p>"
                     f"{_items_table(ctx.get('items', []))}<p>Total: {_money(ctx['total'])}</p>{eta_line}"),
        }
    if name == "payment_confirmation":
        return {
            "subject": f"Payment Received - {ctx['order_id']}",
            "html": (f"<p>Dear {customer},</p><p>We received your payment of {_money(ctx['amount'])} "
                     f"for order <b>{ctx['order_id']}</b> via {html.escape(ctx.get('payment_method') or 'Online Payment')}.</p>"),
        }
    if name == "order_status":
        tracking = ctx.get("tracking_number")
        tracking_line = f"<p>Tracking number: {html.escape(tracking)}</p>" if tracking else ""
        return {
            "subject": f"Order {ctx['order_id']} is now {ctx['status']}",
            "html": (f"<p>Dear {customer},</p><p>Your order <b>{ctx['order_id']}</b> has been updated to "
                     f"<b>{ctx['status']}</b>.</p>{tracking_line}"),
        }
    raise ValueError(f"Unknown email template: {name}")


def send_template_email(name: str, to: str, ctx: Dict[str, Any]) -> Optional[str]:
    rendered = render_template(name, ctx)
    return send_email(to, rendered["subject"], rendered["html"])


def notify(name: str, to: Optional[str], ctx: Dict[str, Any]) -> None:
    """Best-effort send used by request handlers; failures are logged only."""
    if not to:
        return
    try:
        send_template_email(name, to, ctx)
    except Exception:
        logger.exception("Failed to send %s email to %s", name, to)
