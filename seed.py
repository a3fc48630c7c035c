"""
Demo data: categories with subcategories, an admin account and a set of
products. Each collection is only seeded while it is empty.

    python seed.py
"""
import logging
import sys
from typing import Any, Dict

from pymongo.database import Database

import config
from database import now_utc
from schemas import Category, Product, User, with_slugs
from security import hash_password

logger = logging.getLogger(__name__)

CATEGORIES = [
    {
        "name": "Sarees",
        "description": "Traditional Indian sarees in various fabrics and designs.",
        "image": "https://images.unsplash.com/photo-1583391733956-6c78276477e2?w=500&h=500&fit=crop",
        "subcategories": [{"name": "Silk Sarees"}, {"name": "Cotton Sarees"},
                          {"name": "Designer Sarees"}, {"name": "Wedding Sarees"}],
        "featured": True,
        "sort_order": 1,
    },
    {
        "name": "Lehengas",
        "description": "Elegant lehengas for weddings, festivals and celebrations.",
        "image": "https://images.unsplash.com/photo-1594736797933-d0401ba2fe65?w=500&h=500&fit=crop",
        "subcategories": [{"name": "Bridal Lehengas"}, {"name": "Party Lehengas"},
                          {"name": "Designer Lehengas"}, {"name": "Traditional Lehengas"}],
        "featured": True,
        "sort_order": 2,
    },
    {
        "name": "Kurtis & Suits",
        "description": "Comfortable kurtis, salwar suits and everyday ethnic wear.",
        "image": "https://images.unsplash.com/photo-1583391733981-3cc22c4e0e3e?w=500&h=500&fit=crop",
        "subcategories": [{"name": "Anarkali Suits"}, {"name": "Straight Suits"}, {"name": "Palazzo Sets"}],
        "featured": False,
        "sort_order": 3,
    },
]

MATERIALS = ["Silk", "Cotton", "Georgette", "Chiffon"]
COLORS = [["Red", "Maroon"], ["Blue", "Navy"], ["Green", "Olive"], ["Pink", "Peach"]]


def seed_categories(db: Database) -> int:
    if db["categories"].count_documents({}) > 0:
        return 0
    stamp = now_utc()
    docs = []
    for raw in CATEGORIES:
        doc = with_slugs(Category(**raw).model_dump())
        doc["created_at"] = doc["updated_at"] = stamp
        docs.append(doc)
    db["categories"].insert_many(docs)
    return len(docs)


def seed_admin(db: Database) -> int:
    if db["users"].find_one({"role": "admin"}, {"_id": 1}):
        return 0
    admin = User(
        first_name="Admin",
        last_name="User",
        email=config.ADMIN_EMAIL,
        password_hash=hash_password(config.ADMIN_PASSWORD),
        role="admin",
    ).model_dump()
    admin["created_at"] = admin["updated_at"] = now_utc()
    db["users"].insert_one(admin)
    return 1


def seed_products(db: Database, per_category: int = 4) -> int:
    if db["products"].count_documents({}) > 0:
        return 0
    docs = []
    for cat in db["categories"].find({"is_active": True}).sort("sort_order", 1):
        subs = cat.get("subcategories") or [{}]
        for i in range(1, per_category + 1):
            price = 1499 + i * 500
            stock = 5 if i == per_category else 25 + i * 5
            doc = Product(
                name=f"{cat['name']} Collection {i}",
                description=f"Handpicked {cat['name'].lower()} piece from the Samjubaa collection.",
                price=price,
                original_price=price + 700,
                category=cat["_id"],
                subcategory=subs[(i - 1) % len(subs)].get("name"),
                material=MATERIALS[(i - 1) % len(MATERIALS)],
                colors=COLORS[(i - 1) % len(COLORS)],
                sizes=["Free Size"],
                images=[f"https://picsum.photos/seed/{cat['slug']}{i}/600/800"],
                tags=[cat["slug"], "new"],
                stock=stock,
                in_stock=stock > 0,
                is_featured=i <= 2,
            ).model_dump()
            doc["created_at"] = doc["updated_at"] = now_utc()
            docs.append(doc)
    if docs:
        db["products"].insert_many(docs)
    return len(docs)


def seed_database(db: Database) -> Dict[str, Any]:
    result = {
        "categories": seed_categories(db),
        "admin": seed_admin(db),
        "products": seed_products(db),
    }
    logger.info("Seeded %s", result)
    return result


if __name__ == "__main__":
    import database

    config.configure_logging()
    if database.db is None:
        logger.error("DATABASE_URL is not set")
        sys.exit(1)
    database.ensure_indexes(database.db)
    print(seed_database(database.db))
