"""
Database Schemas for the storefront

Each Pydantic model represents a document stored in MongoDB. Collection names
are plural snake_case (Product -> "products", CustomerReview ->
"customer_reviews"). Embedded models (Address, CartItem, OrderItem, ...) live
inside their parent document.

The helpers at the bottom compute the derived fields the API exposes next to
the stored ones (discount percentage, cart totals, order savings).
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PHONE_PATTERN = r"^[6-9]\d{9}$"
PINCODE_PATTERN = r"^[1-9][0-9]{5}$"
IMAGE_URL_PATTERN = re.compile(r"^https?://.+")

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
CANCELLABLE_STATUSES = ("pending", "confirmed")

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class MongoModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class Address(MongoModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    address: str = Field(..., min_length=5, max_length=200)
    city: str = Field(..., min_length=2, max_length=50)
    state: str = Field(..., min_length=2, max_length=50)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    country: str = Field("India", min_length=2, max_length=50)


class SavedAddress(Address):
    is_default: bool = False


class User(MongoModel):
    first_name: str = Field(..., max_length=50)
    last_name: str = Field(..., max_length=50)
    email: EmailStr
    password_hash: str
    phone: Optional[str] = None
    role: Literal["customer", "admin"] = "customer"
    is_active: bool = True
    addresses: List[Dict[str, Any]] = []
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    token_version: int = 0


class Subcategory(MongoModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = None


class Category(MongoModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None
    subcategories: List[Subcategory] = []
    featured: bool = False
    sort_order: int = 0
    is_active: bool = True


class Product(MongoModel):
    name: str = Field(..., max_length=200)
    description: str = Field(..., max_length=2000)
    price: float = Field(..., ge=0)
    original_price: float = Field(..., ge=0)
    category: ObjectId
    subcategory: Optional[str] = None
    material: Optional[str] = None
    colors: List[str] = []
    sizes: List[str] = []
    images: List[str] = []
    tags: List[str] = []
    stock: int = Field(0, ge=0)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    in_stock: bool = True
    is_featured: bool = False
    is_new: bool = True
    is_active: bool = True
    created_by: Optional[ObjectId] = None
    updated_by: Optional[ObjectId] = None

    @field_validator("images")
    @classmethod
    def images_are_urls(cls, v: List[str]) -> List[str]:
        for url in v:
            if not IMAGE_URL_PATTERN.match(url):
                raise ValueError("Image must be a valid URL")
        return v

    @field_validator("tags")
    @classmethod
    def lowercase_tags(cls, v: List[str]) -> List[str]:
        return [t.strip().lower() for t in v if t.strip()]


class CartItem(MongoModel):
    product_id: ObjectId
    quantity: int = Field(..., ge=1, le=100)
    selected_size: Optional[str] = Field(None, max_length=20)
    selected_color: Optional[str] = Field(None, max_length=30)


class OrderItem(MongoModel):
    product_id: ObjectId
    name: str
    quantity: int = Field(..., ge=1, le=100)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    image: Optional[str] = None


class StatusHistory(MongoModel):
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)
    updated_by: Optional[ObjectId] = None
    updated_at: datetime


class Order(MongoModel):
    order_id: str
    user_id: ObjectId
    items: List[OrderItem]
    shipping_address: Address
    billing_address: Address
    payment_method: Literal["razorpay", "cod"]
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    order_status: OrderStatus = "pending"
    status_history: List[StatusHistory] = []
    tracking_number: Optional[str] = None
    subtotal: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    tax: float = Field(..., ge=0)
    shipping: float = Field(..., ge=0)
    total: float = Field(..., ge=0)
    coupon_code: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


class Review(MongoModel):
    product_id: ObjectId
    user_id: ObjectId
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    is_verified: bool = False


class CustomerReview(MongoModel):
    customer_name: str = Field(..., min_length=2, max_length=100)
    location: Optional[str] = Field(None, max_length=100)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=10, max_length=500)
    is_active: bool = True
    display_order: int = Field(0, ge=0)


class NewsletterPreferences(MongoModel):
    promotions: bool = True
    new_products: bool = True
    style_tips: bool = True
    order_updates: bool = True


class Newsletter(MongoModel):
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    status: Literal["active", "unsubscribed", "bounced"] = "active"
    source: Literal["website", "admin", "import"] = "website"
    subscribed_at: datetime
    unsubscribed_at: Optional[datetime] = None
    last_email_sent: Optional[datetime] = None
    email_count: int = 0
    preferences: NewsletterPreferences = NewsletterPreferences()
    tags: List[str] = []
    metadata: Dict[str, str] = {}
    is_active: bool = True


class Contact(MongoModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    subject: str = Field(..., min_length=2, max_length=150)
    message: str = Field(..., min_length=5, max_length=2000)
    status: Literal["new", "read", "responded", "closed"] = "new"
    user: Optional[ObjectId] = None
    metadata: Dict[str, Optional[str]] = {}


class Coupon(MongoModel):
    code: str
    type: Literal["percent", "flat"]
    value: float = Field(..., gt=0)
    min_order: float = Field(0, ge=0)
    active: bool = True
    expires_at: Optional[datetime] = None


# ---------------------- Derived fields ----------------------

def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def with_slugs(category: Dict[str, Any]) -> Dict[str, Any]:
    """Fill the category slug and any missing subcategory slugs from names."""
    category["slug"] = slugify(category["name"])
    for sub in category.get("subcategories") or []:
        if sub.get("name") and not sub.get("slug"):
            sub["slug"] = slugify(sub["name"])
    return category


def discount_percentage(price: float, original_price: Optional[float]) -> int:
    if original_price and original_price > price:
        return int(round((original_price - price) / original_price * 100))
    return 0


def product_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["discount_percentage"] = discount_percentage(doc.get("price", 0), doc.get("original_price"))
    doc["is_available"] = bool(doc.get("is_active") and doc.get("in_stock") and doc.get("stock", 0) > 0)
    return doc


def cart_view(cart: Dict[str, Any]) -> Dict[str, Any]:
    """Add total_items/total_amount; items must already carry their product."""
    items = cart.get("items", [])
    cart["total_items"] = sum(it["quantity"] for it in items)
    cart["total_amount"] = round(sum(
        it["product"]["price"] * it["quantity"] for it in items if it.get("product")
    ), 2)
    return cart


def order_view(order: Dict[str, Any]) -> Dict[str, Any]:
    items = order.get("items", [])
    order["total_items"] = sum(it["quantity"] for it in items)
    order["total_savings"] = round(sum(
        (it["original_price"] - it["price"]) * it["quantity"]
        for it in items
        if it.get("original_price") and it["original_price"] > it["price"]
    ), 2)
    return order
