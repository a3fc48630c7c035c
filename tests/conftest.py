"""Shared pytest fixtures.

The app runs against an in-memory mongomock database injected through the
`get_db` dependency. The TestClient is not used as a context manager, so the
lifespan (index creation, client shutdown) never runs in tests.
"""

import os
import sys
from pathlib import Path

import pytest

# =============================================================================
# Environment (must be set before config is imported)
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

os.environ.pop("DATABASE_URL", None)
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-jwt-refresh-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["CLOUDINARY_CLOUD_NAME"] = ""

import mongomock  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import get_db, now_utc  # noqa: E402
from main import app  # noqa: E402
from schemas import User, with_slugs  # noqa: E402
from security import create_access_token, hash_password  # noqa: E402

PASSWORD = "secret123"

ADDRESS = {
    "full_name": "Asha Rao",
    "phone": "9876543210",
    "address": "12 MG Road, Civil Lines",
    "city": "Jaipur",
    "state": "Rajasthan",
    "pincode": "302001",
}


# =============================================================================
# App & database
# =============================================================================


@pytest.fixture
def db():
    """A fresh in-memory database per test."""
    return mongomock.MongoClient()["samjubaa_test"]


@pytest.fixture
def client(db):
    """TestClient wired to the in-memory database."""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Users
# =============================================================================


def insert_user(db, email, role="customer", first_name="Asha", password=PASSWORD, **extra):
    user = User(
        first_name=first_name,
        last_name="Rao",
        email=email,
        password_hash=hash_password(password),
        phone="9876543210",
        role=role,
        **extra,
    ).model_dump()
    user["created_at"] = user["updated_at"] = now_utc()
    user["_id"] = db["users"].insert_one(user).inserted_id
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def customer(db):
    return insert_user(db, "asha@gmail.com")


@pytest.fixture
def other_customer(db):
    return insert_user(db, "ravi@gmail.com", first_name="Ravi")


@pytest.fixture
def admin(db):
    return insert_user(db, "admin@samjubaa.com", role="admin", first_name="Admin")


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


# =============================================================================
# Catalog
# =============================================================================


@pytest.fixture
def make_category(db):
    """Factory inserting an active category."""

    def _make(name="Sarees", **fields):
        doc = with_slugs({"name": name, "subcategories": [], "featured": False, "sort_order": 0,
                          "is_active": True, **fields})
        doc["created_at"] = doc["updated_at"] = now_utc()
        doc["_id"] = db["categories"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def category(make_category):
    return make_category()


@pytest.fixture
def make_product(db, category):
    """Factory inserting a product in the default category."""

    def _make(name="Banarasi Silk Saree", price=1000.0, stock=10, **fields):
        doc = {
            "name": name,
            "description": f"{name} with zari border",
            "price": price,
            "original_price": fields.pop("original_price", price),
            "category": category["_id"],
            "colors": ["Red"],
            "sizes": ["Free Size"],
            "images": ["https://picsum.photos/seed/saree/600/800"],
            "tags": ["silk"],
            "stock": stock,
            "in_stock": stock > 0,
            "rating": 0,
            "review_count": 0,
            "is_featured": False,
            "is_new": True,
            "is_active": True,
            "created_at": now_utc(),
            "updated_at": now_utc(),
            **fields,
        }
        doc["_id"] = db["products"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def address():
    return dict(ADDRESS)
