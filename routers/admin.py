"""
Admin back office: dashboard figures, analytics, customers and the admin
views over products and orders.
"""
import csv
import io
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel
from pymongo.database import Database

import config
import seed
from database import get_db, now_utc, oid
from responses import paginated, success
from routers.orders import StatusBody, admin_order_filter, update_order_status, with_customers
from routers.products import with_category
from schemas import order_view
from security import public_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

NOT_CANCELLED = {"order_status": {"$ne": "cancelled"}}
PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class UserStatusBody(BaseModel):
    is_active: bool


# ---------------------- Helpers ----------------------

def growth(current: float, previous: float, places: int = 2) -> float:
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100, places)


def month_bounds(now: datetime) -> Tuple[datetime, datetime, datetime]:
    """Start of this month, start of last month and start of this year."""
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    this_year = this_month.replace(month=1)
    return this_month, last_month, this_year


def period_bounds(period: str, now: datetime) -> Tuple[datetime, datetime, str]:
    """Start of the period, start of the previous equal-length period and the date grouping."""
    if period == "1y":
        start = now - timedelta(days=365)
        return start, start - timedelta(days=365), "%Y-%m"
    days = PERIOD_DAYS.get(period, 30)
    start = now - timedelta(days=days)
    return start, start - timedelta(days=days), "%Y-%m-%d"


def _sum_total(db: Database, match: Dict[str, Any]) -> float:
    rows = list(db["orders"].aggregate([
        {"$match": {**match, **NOT_CANCELLED}},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    return rows[0]["total"] if rows else 0


def _product_sales(db: Database, match: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
    rows = list(db["orders"].aggregate([
        {"$match": {**match, **NOT_CANCELLED}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_sold": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.quantity", "$items.price"]}},
        }},
        {"$sort": {"revenue": -1}},
        {"$limit": limit},
    ]))
    products = {p["_id"]: p for p in db["products"].find(
        {"_id": {"$in": [r["_id"] for r in rows if r["_id"]]}}, {"name": 1, "images": 1})}
    return [{
        "product": {"_id": r["_id"], "name": products[r["_id"]]["name"],
                    "image": (products[r["_id"]].get("images") or [None])[0]},
        "total_sold": r["total_sold"],
        "revenue": r["revenue"],
    } for r in rows if r["_id"] in products]


def order_stats_by_user(db: Database, user_ids: List[Any]) -> Dict[Any, Dict[str, Any]]:
    rows = db["orders"].aggregate([
        {"$match": {"user_id": {"$in": user_ids}}},
        {"$group": {
            "_id": "$user_id",
            "order_count": {"$sum": 1},
            "total_spent": {"$sum": "$total"},
            "last_order_date": {"$max": "$created_at"},
        }},
    ])
    return {r["_id"]: r for r in rows}


def customer_filter(search: Optional[str], status: str) -> Dict[str, Any]:
    filt: Dict[str, Any] = {"role": "customer"}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]
    if status != "all":
        filt["is_active"] = status == "active"
    return filt


def _fmt_date(value: Optional[datetime], default: str = "") -> str:
    return value.strftime("%Y-%m-%d") if value else default


CUSTOMER_CSV_HEADERS = [
    "Customer ID", "First Name", "Last Name", "Email", "Phone", "Status", "Total Orders",
    "Total Spent (₹)", "Last Order Date", "Joined Date", "Gender", "Date of Birth",
]


def customers_csv(customers: List[Dict[str, Any]], stats: Dict[Any, Dict[str, Any]]) -> str:
    """CSV with a UTF-8 BOM so spreadsheet apps pick the right encoding."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CUSTOMER_CSV_HEADERS)
    for c in customers:
        st = stats.get(c["_id"], {})
        writer.writerow([
            str(c["_id"]),
            c.get("first_name") or "",
            c.get("last_name") or "",
            c.get("email") or "",
            c.get("phone") or "",
            "Active" if c.get("is_active", True) else "Inactive",
            st.get("order_count", 0),
            st.get("total_spent", 0),
            _fmt_date(st.get("last_order_date"), "N/A"),
            _fmt_date(c.get("created_at")),
            c.get("gender") or "N/A",
            _fmt_date(c.get("date_of_birth"), "N/A"),
        ])
    return "\ufeff" + buf.getvalue()


# ---------------------- Dashboard & analytics ----------------------

@router.get("/dashboard")
def dashboard(db: Database = Depends(get_db)):
    now = now_utc()
    this_month, last_month, this_year = month_bounds(now)
    current = {"created_at": {"$gte": this_month}}
    previous = {"created_at": {"$gte": last_month, "$lt": this_month}}

    monthly_revenue = _sum_total(db, current)
    previous_revenue = _sum_total(db, previous)
    orders_now = db["orders"].count_documents({**current, **NOT_CANCELLED})
    orders_before = db["orders"].count_documents({**previous, **NOT_CANCELLED})
    users_now = db["users"].count_documents({"role": "customer", **current})
    users_before = db["users"].count_documents({"role": "customer", **previous})

    recent = with_customers(db, list(db["orders"].find().sort("created_at", -1).limit(10)))
    recent_orders = [{
        "_id": o["_id"],
        "order_id": o.get("order_id"),
        "user": o.get("user") or {"first_name": "Guest", "last_name": "", "email": ""},
        "total": o.get("total"),
        "status": o.get("order_status"),
        "created_at": o.get("created_at"),
    } for o in recent]

    low_stock = [{
        "_id": p["_id"], "name": p["name"], "stock": p.get("stock", 0),
        "image": (p.get("images") or [None])[0],
    } for p in db["products"].find(
        {"stock": {"$lt": config.LOW_STOCK_THRESHOLD}, "is_active": True}, {"name": 1, "stock": 1, "images": 1}
    ).sort("stock", 1).limit(10)]

    category_stats = sorted(({
        "_id": c["_id"],
        "name": c["name"],
        "product_count": db["products"].count_documents({"category": c["_id"]}),
        "active_products": db["products"].count_documents({"category": c["_id"], "is_active": True}),
    } for c in db["categories"].find({}, {"name": 1})), key=lambda c: c["product_count"], reverse=True)

    data = {
        "overview": {
            "total_users": db["users"].count_documents({"role": "customer"}),
            "total_products": db["products"].count_documents({}),
            "total_categories": db["categories"].count_documents({}),
            "total_orders": db["orders"].count_documents({}),
            "monthly_revenue": monthly_revenue,
            "yearly_revenue": _sum_total(db, {"created_at": {"$gte": this_year}}),
        },
        "growth": {
            "users": {"current": users_now, "previous": users_before, "growth": growth(users_now, users_before)},
            "orders": {"current": orders_now, "previous": orders_before, "growth": growth(orders_now, orders_before)},
            "revenue": {"current": monthly_revenue, "previous": previous_revenue,
                        "growth": growth(monthly_revenue, previous_revenue)},
        },
        "recent_orders": recent_orders,
        "top_products": _product_sales(db, current, 10),
        "low_stock_products": low_stock,
        "category_stats": category_stats,
    }
    return success(data, "Dashboard statistics fetched successfully")


def _period_totals(db: Database, match: Dict[str, Any]) -> Dict[str, float]:
    rows = list(db["orders"].aggregate([
        {"$match": {**match, **NOT_CANCELLED}},
        {"$group": {"_id": None, "revenue": {"$sum": "$total"}, "orders": {"$sum": 1},
                    "avg_order_value": {"$avg": "$total"}}},
    ]))
    return rows[0] if rows else {"revenue": 0, "orders": 0, "avg_order_value": 0}


def _metric(current: float, previous: float) -> Dict[str, float]:
    return {"current": current, "previous": previous, "change": growth(current, previous, 1)}


@router.get("/analytics")
def analytics(period: Literal["7d", "30d", "90d", "1y"] = "30d", db: Database = Depends(get_db)):
    now = now_utc()
    start, previous_start, fmt = period_bounds(period, now)
    current = {"created_at": {"$gte": start}}
    previous = {"created_at": {"$gte": previous_start, "$lt": start}}

    sales = [{"date": r["_id"], "revenue": r["revenue"], "orders": r["orders"]} for r in db["orders"].aggregate([
        {"$match": {**current, **NOT_CANCELLED}},
        {"$group": {"_id": {"$dateToString": {"format": fmt, "date": "$created_at"}},
                    "revenue": {"$sum": "$total"}, "orders": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ])]
    if period == "7d":
        sales = [{"day": DAY_NAMES[datetime.strptime(s["date"], "%Y-%m-%d").weekday()],
                  "date": s["date"], "sales": s["revenue"], "orders": s["orders"]} for s in sales]

    registrations = [{"date": r["_id"], "registrations": r["count"]} for r in db["users"].aggregate([
        {"$match": {"role": "customer", **current}},
        {"$group": {"_id": {"$dateToString": {"format": fmt, "date": "$created_at"}}, "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ])]

    product_performance = _product_sales(db, current, 20)

    category_rows = db["orders"].aggregate([
        {"$match": {**current, **NOT_CANCELLED}},
        {"$unwind": "$items"},
        {"$lookup": {"from": "products", "localField": "items.product_id", "foreignField": "_id", "as": "product"}},
        {"$unwind": "$product"},
        {"$group": {"_id": "$product.category", "total_sold": {"$sum": "$items.quantity"},
                    "revenue": {"$sum": {"$multiply": ["$items.quantity", "$items.price"]}}}},
        {"$sort": {"revenue": -1}},
    ])
    category_rows = list(category_rows)
    names = {c["_id"]: c["name"] for c in db["categories"].find(
        {"_id": {"$in": [r["_id"] for r in category_rows if r["_id"]]}}, {"name": 1})}
    category_performance = [{
        "category_id": r["_id"], "category_name": names[r["_id"]],
        "total_sold": r["total_sold"], "revenue": r["revenue"],
    } for r in category_rows if r["_id"] in names]

    now_totals = _period_totals(db, current)
    before_totals = _period_totals(db, previous)
    customers_now = db["users"].count_documents({"role": "customer", **current})
    customers_before = db["users"].count_documents({"role": "customer", **previous})
    metrics = {
        "revenue": _metric(now_totals["revenue"], before_totals["revenue"]),
        "orders": _metric(now_totals["orders"], before_totals["orders"]),
        "customers": _metric(customers_now, customers_before),
        "average_order": _metric(round(now_totals["avg_order_value"] or 0),
                                 round(before_totals["avg_order_value"] or 0)),
    }

    city_insights = [{"city": r["_id"], "customers": len(r["customers"]), "revenue": r["revenue"]}
                     for r in db["orders"].aggregate([
                         {"$match": {**current, **NOT_CANCELLED, "shipping_address.city": {"$nin": [None, ""]}}},
                         {"$group": {"_id": "$shipping_address.city", "customers": {"$addToSet": "$user_id"},
                                     "revenue": {"$sum": "$total"}}},
                         {"$sort": {"revenue": -1}},
                         {"$limit": 10},
                     ])]

    previous_sold = {r["_id"]: r["total_sold"] for r in db["orders"].aggregate([
        {"$match": {**previous, **NOT_CANCELLED}},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.product_id", "total_sold": {"$sum": "$items.quantity"}}},
    ])}
    top_products = [dict(p, growth=growth(p["total_sold"], previous_sold.get(p["product"]["_id"], 0), 1))
                    for p in product_performance[:10]]

    data = {
        "period": period,
        "sales_data": sales,
        "user_registrations": registrations,
        "product_performance": product_performance,
        "category_performance": category_performance,
        "metrics": metrics,
        "customer_insights": city_insights,
        "top_products": top_products,
    }
    return success(data, "Analytics fetched successfully")


# ---------------------- Customers ----------------------

@router.get("/customers")
def customers(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), search: Optional[str] = None,
              status: Literal["active", "inactive", "all"] = "all", db: Database = Depends(get_db)):
    filt = customer_filter(search, status)
    total = db["users"].count_documents(filt)
    rows = list(db["users"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    stats = order_stats_by_user(db, [c["_id"] for c in rows])
    data = []
    for c in rows:
        st = stats.get(c["_id"], {})
        data.append(dict(public_user(c), stats={
            "order_count": st.get("order_count", 0),
            "total_spent": st.get("total_spent", 0),
            "last_order_date": st.get("last_order_date"),
        }))
    return paginated(data, page, limit, total, "Customers fetched successfully")


@router.get("/customers/export")
def export_customers(db: Database = Depends(get_db)):
    rows = list(db["users"].find({"role": "customer"}).sort("created_at", -1))
    content = customers_csv(rows, order_stats_by_user(db, [c["_id"] for c in rows]))
    filename = f"customers-export-{now_utc():%Y-%m-%d}.csv"
    return Response(content=content, media_type="text/csv; charset=utf-8",
                    headers={"Content-Disposition": f"attachment; filename={filename}"})


@router.get("/customers/{customer_id}/orders")
def customer_orders(customer_id: str, db: Database = Depends(get_db)):
    customer = db["users"].find_one({"_id": oid(customer_id)}, {"_id": 1})
    if not customer:
        raise HTTPException(404, "Customer not found")
    orders = [order_view(o) for o in db["orders"].find({"user_id": customer["_id"]}).sort("created_at", -1)]
    return success(orders, "Customer orders fetched successfully")


@router.put("/users/{user_id}/status")
def update_user_status(user_id: str, body: UserStatusBody, admin: Dict[str, Any] = Depends(require_admin),
                       db: Database = Depends(get_db)):
    res = db["users"].update_one({"_id": oid(user_id)}, {"$set": {"is_active": body.is_active, "updated_at": now_utc()}})
    if res.matched_count == 0:
        raise HTTPException(404, "User not found")
    logger.info("User %s set active=%s by %s", user_id, body.is_active, admin["_id"])
    return success(public_user(db["users"].find_one({"_id": oid(user_id)})), "User status updated")


# ---------------------- Products & orders ----------------------

@router.get("/products")
def products(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), search: Optional[str] = None,
             status: Literal["active", "inactive", "all"] = "all", db: Database = Depends(get_db)):
    filt: Dict[str, Any] = {}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}]
    if status != "all":
        filt["is_active"] = status == "active"
    total = db["products"].count_documents(filt)
    rows = list(db["products"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    return paginated(with_category(db, rows), page, limit, total, "Products fetched successfully")


@router.get("/orders")
def orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
           status: Literal["all", "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned"] = "all",
           search: Optional[str] = None,
           sort_by: Literal["created_at", "total", "order_status"] = "created_at",
           sort_order: Literal["asc", "desc"] = "desc", db: Database = Depends(get_db)):
    filt = admin_order_filter(db, None if status == "all" else status, None, search)
    total = db["orders"].count_documents(filt)
    rows = list(db["orders"].find(filt).sort(sort_by, 1 if sort_order == "asc" else -1)
                .skip((page - 1) * limit).limit(limit))
    return paginated(with_customers(db, rows), page, limit, total, "Orders fetched successfully")


@router.put("/orders/{order_id}/status")
def update_status(order_id: str, body: StatusBody, admin: Dict[str, Any] = Depends(require_admin),
                  db: Database = Depends(get_db)):
    order = db["orders"].find_one({"_id": oid(order_id)})
    if not order:
        raise HTTPException(404, "Order not found")
    updated = update_order_status(db, order, body.status, admin["_id"], body.notes, body.tracking_number)
    return success(order_view(updated), "Order status updated successfully")


@router.post("/seed")
def seed_demo_data(db: Database = Depends(get_db)):
    return success(seed.seed_database(db), "Seed completed")
