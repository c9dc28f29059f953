"""
MongoDB access for the storefront.

Each entity lives in its own collection, named in lowercase singular:
user, product, category, cart, order, coupon, review, address, wishlist.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import Settings
from .utils import utcnow

logger = logging.getLogger(__name__)

USERS = "user"
PRODUCTS = "product"
CATEGORIES = "category"
CARTS = "cart"
ORDERS = "order"
COUPONS = "coupon"
REVIEWS = "review"
ADDRESSES = "address"
WISHLISTS = "wishlist"


def connect(settings: Settings) -> MongoClient:
    """Open the client and verify the server answers; exits the process if it does not."""
    client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000, maxPoolSize=20)
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        logger.error("MongoDB connection error: %s", exc)
        raise SystemExit(1) from exc
    logger.info("Connected to MongoDB")
    return client


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index("email", unique=True)
    db[PRODUCTS].create_index("slug", unique=True)
    db[PRODUCTS].create_index("sku", unique=True)
    db[PRODUCTS].create_index([("category", ASCENDING), ("price", ASCENDING), ("rating", DESCENDING)])
    db[PRODUCTS].create_index("is_active")
    db[CATEGORIES].create_index("name", unique=True)
    db[CATEGORIES].create_index("slug", unique=True)
    db[CARTS].create_index("user", unique=True)
    db[ORDERS].create_index("order_number", unique=True)
    db[ORDERS].create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    db[ORDERS].create_index("payment_details.razorpay_order_id")
    db[COUPONS].create_index("code", unique=True)
    db[COUPONS].create_index([("is_active", ASCENDING), ("start_date", ASCENDING), ("expiry_date", ASCENDING)])
    db[REVIEWS].create_index([("product", ASCENDING), ("user", ASCENDING)], unique=True)
    db[ADDRESSES].create_index([("user", ASCENDING), ("is_default", ASCENDING)])
    db[WISHLISTS].create_index("user", unique=True)
    logger.info("Indexes ensured")


def create_document(db: Database, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert ``data`` stamped with created_at/updated_at and return the stored document."""
    now = utcnow()
    doc = dict(data)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    doc["_id"] = db[collection].insert_one(doc).inserted_id
    return doc


def get_documents(db: Database, collection: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort=None, skip: int = 0, limit: int = 0, projection=None) -> List[Dict[str, Any]]:
    cursor = db[collection].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_db(request: Request) -> Database:
    return request.app.state.db
