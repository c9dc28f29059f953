import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ..database import CATEGORIES, ORDERS, PRODUCTS, REVIEWS, USERS, create_document, get_documents
from ..errors import ApiError
from ..pricing import discount_percent
from ..utils import is_object_id, parse_object_id, utcnow

logger = logging.getLogger(__name__)

SORTS = {
    "price": [("price", ASCENDING)],
    "-price": [("price", DESCENDING)],
    "rating": [("rating", DESCENDING)],
    "newest": [("created_at", DESCENDING)],
    "popular": [("sold", DESCENDING)],
}
# orders in these states count as a verified purchase
PURCHASED_STATUSES = ("processing", "shipped", "delivered")
SHOWCASE_FLAGS = {"featured": "is_featured", "trending": "is_trending", "new-arrivals": "is_new"}
SHOWCASE_LIMIT = 12
RELATED_LIMIT = 8


def _truthy(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes")


def _float(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except ValueError:
        raise ApiError(400, f"Invalid number: {value}")


def serialize_product(product: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(product)
    out["discount_percent"] = discount_percent(product)
    return out


def product_filter(db: Database, params: Dict[str, Optional[str]]) -> Dict[str, Any]:
    """Build the Mongo filter for the public product listing."""
    filt: Dict[str, Any] = {"is_active": True}

    category = params.get("category")
    if category:
        if is_object_id(category):
            filt["category"] = ObjectId(category)
        else:
            found = category_by_id_or_slug_optional(db, category)
            # unknown category slug matches nothing
            filt["category"] = found["_id"] if found else None
    for key in ("sub_category", "brand"):
        if params.get(key):
            filt[key] = params[key]
    for key in ("is_featured", "is_new", "is_trending"):
        flag = _truthy(params.get(key))
        if flag is not None:
            filt[key] = flag

    price: Dict[str, float] = {}
    min_price, max_price = _float(params.get("min_price")), _float(params.get("max_price"))
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        filt["price"] = price

    rating = _float(params.get("rating"))
    if rating is not None:
        filt["rating"] = {"$gte": rating}

    if params.get("tags"):
        tags = [t.strip() for t in params["tags"].split(",") if t.strip()]
        if tags:
            filt["tags"] = {"$in": tags}

    search = (params.get("search") or "").strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}, {"brand": pattern}, {"tags": pattern}]
    return filt


def list_products(db: Database, params: Dict[str, Optional[str]], skip: int, limit: int) -> Tuple[List[dict], int]:
    filt = product_filter(db, params)
    sort = SORTS.get(params.get("sort") or "newest", SORTS["newest"])
    total = db[PRODUCTS].count_documents(filt)
    items = get_documents(db, PRODUCTS, filt, sort=sort, skip=skip, limit=limit)
    return [serialize_product(p) for p in items], total


def showcase(db: Database, kind: str) -> List[dict]:
    flag = SHOWCASE_FLAGS[kind]
    items = get_documents(db, PRODUCTS, {"is_active": True, flag: True},
                          sort=[("created_at", DESCENDING)], limit=SHOWCASE_LIMIT)
    return [serialize_product(p) for p in items]


def get_product(db: Database, id_or_slug: str) -> dict:
    if is_object_id(id_or_slug):
        product = db[PRODUCTS].find_one({"_id": ObjectId(id_or_slug)})
    else:
        product = db[PRODUCTS].find_one({"slug": id_or_slug})
    if not product:
        raise ApiError(404, "Product not found")
    return product


def get_live_product(db: Database, product_id: Any) -> dict:
    """An existing, active product or 404 "Product not available"."""
    if not is_object_id(product_id):
        raise ApiError(404, "Product not available")
    product = db[PRODUCTS].find_one({"_id": ObjectId(product_id)})
    if not product or not product.get("is_active", True):
        raise ApiError(404, "Product not available")
    return product


def related_products(db: Database, product_id: str) -> List[dict]:
    product = db[PRODUCTS].find_one({"_id": parse_object_id(product_id, "Product")})
    if not product:
        raise ApiError(404, "Product not found")
    items = get_documents(
        db, PRODUCTS,
        {"category": product["category"], "_id": {"$ne": product["_id"]}, "is_active": True},
        sort=[("created_at", DESCENDING)], limit=RELATED_LIMIT,
    )
    return [serialize_product(p) for p in items]


def _category_ref(db: Database, value: Optional[str]) -> Optional[ObjectId]:
    if value is None:
        return None
    category = db[CATEGORIES].find_one({"_id": parse_object_id(value, "Category")})
    if not category:
        raise ApiError(404, "Category not found")
    return category["_id"]


def create_product(db: Database, data: Dict[str, Any]) -> dict:
    data = dict(data)
    data["category"] = _category_ref(db, data["category"])
    if data.get("is_active") is None:
        data["is_active"] = True
    for flag in ("is_featured", "is_new", "is_trending"):
        if data.get(flag) is None:
            data[flag] = False
    data.update({"sold": 0, "rating": 0.0, "num_reviews": 0})
    product = create_document(db, PRODUCTS, data)
    logger.info("Product created: %s (%s)", product["name"], product["sku"])
    return serialize_product(product)


def update_product(db: Database, product_id: str, changes: Dict[str, Any]) -> dict:
    oid = parse_object_id(product_id, "Product")
    if "category" in changes:
        changes["category"] = _category_ref(db, changes["category"])
    changes["updated_at"] = utcnow()
    result = db[PRODUCTS].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise ApiError(404, "Product not found")
    return serialize_product(db[PRODUCTS].find_one({"_id": oid}))


def deactivate_product(db: Database, product_id: str) -> dict:
    oid = parse_object_id(product_id, "Product")
    result = db[PRODUCTS].update_one({"_id": oid}, {"$set": {"is_active": False, "updated_at": utcnow()}})
    if result.matched_count == 0:
        raise ApiError(404, "Product not found")
    return serialize_product(db[PRODUCTS].find_one({"_id": oid}))


# Reviews

def list_reviews(db: Database, product_id: str, skip: int, limit: int) -> Tuple[List[dict], int]:
    oid = parse_object_id(product_id, "Product")
    if not db[PRODUCTS].find_one({"_id": oid}, {"_id": 1}):
        raise ApiError(404, "Product not found")
    filt = {"product": oid}
    total = db[REVIEWS].count_documents(filt)
    reviews = get_documents(db, REVIEWS, filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
    user_ids = list({r["user"] for r in reviews})
    names = {u["_id"]: u.get("name") for u in db[USERS].find({"_id": {"$in": user_ids}}, {"name": 1})}
    for review in reviews:
        review["user"] = {"id": review["user"], "name": names.get(review["user"])}
    return reviews, total


def refresh_rating(db: Database, product_id: ObjectId) -> Tuple[float, int]:
    """Recompute ``rating``/``num_reviews`` from the stored reviews."""
    stats = list(db[REVIEWS].aggregate([
        {"$match": {"product": product_id}},
        {"$group": {"_id": "$product", "avg": {"$avg": "$rating"}, "count": {"$sum": 1}}},
    ]))
    rating, count = (round(stats[0]["avg"], 1), stats[0]["count"]) if stats else (0.0, 0)
    db[PRODUCTS].update_one({"_id": product_id},
                            {"$set": {"rating": rating, "num_reviews": count, "updated_at": utcnow()}})
    return rating, count


def add_review(db: Database, product_id: str, user: dict, data: Dict[str, Any]) -> dict:
    product = get_live_product(db, parse_object_id(product_id, "Product"))

    purchase = db[ORDERS].find_one({
        "user": user["_id"],
        "items.product": product["_id"],
        "order_status": {"$in": list(PURCHASED_STATUSES)},
    }, {"_id": 1})

    if db[REVIEWS].find_one({"product": product["_id"], "user": user["_id"]}, {"_id": 1}):
        raise ApiError(409, "You have already reviewed this product")
    try:
        review = create_document(db, REVIEWS, {
            "product": product["_id"],
            "user": user["_id"],
            "order": purchase["_id"] if purchase else None,
            "rating": data["rating"],
            "comment": data["comment"],
            "images": data.get("images") or [],
            "is_verified_purchase": purchase is not None,
            "helpful": 0,
        })
    except DuplicateKeyError:
        raise ApiError(409, "You have already reviewed this product")

    refresh_rating(db, product["_id"])
    return review


# Categories

def category_by_id_or_slug_optional(db: Database, id_or_slug: str) -> Optional[dict]:
    if is_object_id(id_or_slug):
        return db[CATEGORIES].find_one({"_id": ObjectId(id_or_slug)})
    return db[CATEGORIES].find_one({"slug": id_or_slug})


def get_category(db: Database, id_or_slug: str) -> dict:
    category = category_by_id_or_slug_optional(db, id_or_slug)
    if not category:
        raise ApiError(404, "Category not found")
    return category


def create_category(db: Database, data: Dict[str, Any]) -> dict:
    data = dict(data)
    if data.get("parent_category"):
        data["parent_category"] = _category_ref(db, data["parent_category"])
    return create_document(db, CATEGORIES, data)


def update_category(db: Database, category_id: str, data: Dict[str, Any]) -> dict:
    oid = parse_object_id(category_id, "Category")
    data = dict(data)
    if data.get("parent_category"):
        data["parent_category"] = _category_ref(db, data["parent_category"])
        if data["parent_category"] == oid:
            raise ApiError(400, "Category cannot be its own parent")
    data["updated_at"] = utcnow()
    result = db[CATEGORIES].update_one({"_id": oid}, {"$set": data})
    if result.matched_count == 0:
        raise ApiError(404, "Category not found")
    return db[CATEGORIES].find_one({"_id": oid})


def delete_category(db: Database, category_id: str) -> None:
    oid = parse_object_id(category_id, "Category")
    if not db[CATEGORIES].find_one({"_id": oid}, {"_id": 1}):
        raise ApiError(404, "Category not found")
    in_use = db[PRODUCTS].count_documents({"category": oid})
    if in_use:
        raise ApiError(409, f"Category is used by {in_use} product(s)")
    db[CATEGORIES].delete_one({"_id": oid})
