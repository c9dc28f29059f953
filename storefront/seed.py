"""Demo catalog: categories, products and coupons for an empty store."""
import logging
from datetime import timedelta
from typing import Any, Dict

from pymongo.database import Database

from .database import CATEGORIES, COUPONS, PRODUCTS
from .utils import utcnow

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "https://res.cloudinary.com/demo/image/upload/v1699999999/storefront-placeholder.jpg"

CATEGORY_SAMPLES = [
    {"name": "Electronics", "slug": "electronics", "description": "Latest gadgets and electronics for every need."},
    {"name": "Home & Kitchen", "slug": "home-kitchen",
     "description": "Essentials and decor for your home and kitchen."},
    {"name": "Fashion", "slug": "fashion", "description": "Trendy apparel and accessories for men and women."},
]

PRODUCT_SAMPLES = [
    {
        "name": "Wireless Noise Cancelling Headphones",
        "brand": "SoundSphere",
        "category": "electronics",
        "price": 8999,
        "stock": 40,
        "tags": ["audio", "headphones", "wireless"],
        "image": "https://images.unsplash.com/photo-1516116216624-53e697fedbea?auto=format&fit=crop&w=900&q=80",
        "is_featured": True,
    },
    {
        "name": "Smart Fitness Tracker Watch",
        "brand": "FitPulse",
        "category": "electronics",
        "price": 4999,
        "stock": 60,
        "tags": ["smartwatch", "fitness"],
        "image": "https://images.unsplash.com/photo-1523275335684-37898b6baf30?auto=format&fit=crop&w=900&q=80",
        "is_trending": True,
    },
    {
        "name": "Robot Vacuum Cleaner",
        "brand": "CleanBot",
        "category": "home-kitchen",
        "price": 18999,
        "stock": 15,
        "tags": ["cleaning", "robot"],
        "image": "https://images.unsplash.com/photo-1581578731548-c64695cc6952?auto=format&fit=crop&w=900&q=80",
        "is_new": True,
    },
    {
        "name": "Stainless Steel Cookware Set",
        "brand": "ChefCraft",
        "category": "home-kitchen",
        "price": 6999,
        "stock": 25,
        "tags": ["cookware", "kitchen"],
        "image": "https://images.unsplash.com/photo-1623936960377-4d43fd9bc1a5?auto=format&fit=crop&w=900&q=80",
        "is_featured": True,
    },
    {
        "name": "Slim Fit Cotton Shirt",
        "brand": "Urban Threads",
        "category": "fashion",
        "price": 1299,
        "stock": 120,
        "tags": ["shirt", "men"],
        "image": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?auto=format&fit=crop&w=900&q=80",
        "is_new": True,
    },
    {
        "name": "Unisex Running Shoes",
        "brand": "StrideMax",
        "category": "fashion",
        "price": 2899,
        "stock": 80,
        "tags": ["footwear", "running"],
        "image": "https://images.unsplash.com/photo-1542291026-7eec264c27ff?auto=format&fit=crop&w=900&q=80",
        "is_trending": True,
    },
]

COUPON_SAMPLES = [
    {"code": "WELCOME10", "description": "10% off on your first purchase", "discount_type": "percent",
     "discount_value": 10, "min_cart_value": 500, "max_discount": 500, "usage_limit": 500, "per_user_limit": 1,
     "days": 90},
    {"code": "FREESHIP", "description": "Flat 100 off on orders above 999", "discount_type": "flat",
     "discount_value": 100, "min_cart_value": 999, "max_discount": 100, "usage_limit": 1000, "per_user_limit": 5,
     "days": 180},
    {"code": "FESTIVE20", "description": "Festive special 20% off up to 1000", "discount_type": "percent",
     "discount_value": 20, "min_cart_value": 1500, "max_discount": 1000, "usage_limit": 300, "per_user_limit": 2,
     "days": 45},
]


def _slugify(name: str) -> str:
    return "-".join("".join(c if c.isalnum() else " " for c in name.lower()).split())


def seed_demo_data(db: Database) -> Dict[str, Any]:
    if db[PRODUCTS].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}

    now = utcnow()
    stamps = {"created_at": now, "updated_at": now}

    categories = {}
    for sample in CATEGORY_SAMPLES:
        existing = db[CATEGORIES].find_one({"slug": sample["slug"]})
        if existing:
            categories[sample["slug"]] = existing["_id"]
            continue
        doc = {**sample, "image": {"public_id": f"seed/{sample['slug']}", "url": PLACEHOLDER_IMAGE},
               "parent_category": None, "is_active": True, **stamps}
        categories[sample["slug"]] = db[CATEGORIES].insert_one(doc).inserted_id

    products = []
    for index, sample in enumerate(PRODUCT_SAMPLES, start=1):
        slug = _slugify(sample["name"])
        products.append({
            "name": sample["name"],
            "slug": slug,
            "description": f"{sample['name']} by {sample['brand']}, built for everyday use.",
            "price": sample["price"],
            "discount_price": round(sample["price"] * 0.9),
            "category": categories[sample["category"]],
            "brand": sample["brand"],
            "sku": f"SKU-{index:04d}",
            "stock": sample["stock"],
            "sold": 0,
            "images": [{"public_id": f"seed/{slug}", "url": sample["image"]}],
            "thumbnail": {"public_id": f"seed/{slug}", "url": sample["image"]},
            "features": [],
            "specifications": {"Brand": sample["brand"]},
            "rating": 0.0,
            "num_reviews": 0,
            "is_featured": sample.get("is_featured", False),
            "is_new": sample.get("is_new", False),
            "is_trending": sample.get("is_trending", False),
            "is_active": True,
            "tags": sample["tags"],
            **stamps,
        })
    db[PRODUCTS].insert_many(products)

    coupons = 0
    for sample in COUPON_SAMPLES:
        if db[COUPONS].find_one({"code": sample["code"]}):
            continue
        fields = {k: v for k, v in sample.items() if k != "days"}
        db[COUPONS].insert_one({
            **fields,
            "usage_count": 0,
            "start_date": now,
            "expiry_date": now + timedelta(days=sample["days"]),
            "is_active": True,
            "applicable_categories": [],
            "applicable_products": [],
            **stamps,
        })
        coupons += 1

    logger.info("Seeded %d categories, %d products, %d coupons", len(categories), len(products), coupons)
    return {"seeded": True, "categories": len(categories), "products": len(products), "coupons": coupons}
