"""Dashboard and analytics figures, recomputed from the collections on every call."""
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from ..database import CATEGORIES, ORDERS, PRODUCTS, USERS, get_documents
from ..errors import ApiError
from ..utils import parse_object_id, utcnow

LOW_STOCK_THRESHOLD = 5
DASHBOARD_LIST_SIZE = 5
TOP_PRODUCTS_LIMIT = 10

PRODUCT_CARD = {"name": 1, "slug": 1, "sku": 1, "stock": 1, "sold": 1, "price": 1, "thumbnail": 1}
ADMIN_PRODUCT_FIELDS = {
    "name": 1, "slug": 1, "sku": 1, "price": 1, "discount_price": 1, "stock": 1, "sold": 1, "is_featured": 1,
    "is_trending": 1, "is_active": 1, "category": 1, "thumbnail": 1, "tags": 1, "created_at": 1, "updated_at": 1,
}


def _attach_customers(db: Database, orders: List[dict]) -> List[dict]:
    ids = list({o["user"] for o in orders})
    customers = {u["_id"]: u for u in db[USERS].find({"_id": {"$in": ids}}, {"name": 1, "email": 1})}
    for order in orders:
        order["user"] = customers.get(order["user"], {"_id": order["user"]})
    return orders


def dashboard(db: Database) -> Dict[str, Any]:
    revenue = list(db[ORDERS].aggregate([
        {"$match": {"payment_status": "completed"}},
        {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}}},
    ]))
    recent = get_documents(
        db, ORDERS, sort=[("created_at", DESCENDING)], limit=DASHBOARD_LIST_SIZE,
        projection={"order_number": 1, "total_amount": 1, "payment_status": 1, "order_status": 1,
                    "created_at": 1, "user": 1},
    )
    return {
        "totals": {
            "users": db[USERS].count_documents({}),
            "products": db[PRODUCTS].count_documents({"is_active": True}),
            "orders": db[ORDERS].count_documents({}),
            "delivered_orders": db[ORDERS].count_documents({"order_status": "delivered"}),
            "revenue": round(revenue[0]["revenue"], 2) if revenue else 0,
        },
        "recent_orders": _attach_customers(db, recent),
        "low_stock_products": get_documents(
            db, PRODUCTS, {"stock": {"$lt": LOW_STOCK_THRESHOLD}, "is_active": True},
            sort=[("stock", ASCENDING)], limit=DASHBOARD_LIST_SIZE, projection=PRODUCT_CARD),
        "top_products": get_documents(
            db, PRODUCTS, {"is_active": True},
            sort=[("sold", DESCENDING)], limit=DASHBOARD_LIST_SIZE, projection=PRODUCT_CARD),
    }


def analytics(db: Database) -> Dict[str, Any]:
    since = utcnow() - timedelta(days=365)
    sales_by_month = list(db[ORDERS].aggregate([
        {"$match": {"created_at": {"$gte": since}}},
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "total": {"$sum": "$total_amount"},
            "orders": {"$sum": 1},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1}},
    ]))
    product_performance = list(db[ORDERS].aggregate([
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product",
            "total_sold": {"$sum": "$items.quantity"},
            "revenue": {"$sum": "$items.subtotal"},
        }},
        {"$sort": {"total_sold": -1}},
        {"$limit": TOP_PRODUCTS_LIMIT},
        {"$lookup": {"from": PRODUCTS, "localField": "_id", "foreignField": "_id", "as": "product"}},
        {"$unwind": "$product"},
        {"$project": {
            "_id": 0,
            "product_id": "$product._id",
            "name": "$product.name",
            "slug": "$product.slug",
            "sku": "$product.sku",
            "price": "$product.price",
            "thumbnail": "$product.thumbnail",
            "total_sold": 1,
            "revenue": 1,
        }},
    ]))
    return {
        "sales_by_month": [
            {"year": row["_id"]["year"], "month": row["_id"]["month"], "total": round(row["total"], 2),
             "orders": row["orders"]}
            for row in sales_by_month
        ],
        "product_performance": product_performance,
    }


def list_users(db: Database, search: Optional[str], role: Optional[str], skip: int,
               limit: int) -> Tuple[List[dict], int]:
    filt: Dict[str, Any] = {}
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"email": pattern}, {"phone": pattern}]
    if role:
        filt["role"] = role
    total = db[USERS].count_documents(filt)
    return get_documents(db, USERS, filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit), total


def update_user(db: Database, user_id: str, changes: Dict[str, Any]) -> dict:
    oid = parse_object_id(user_id, "User")
    update: Dict[str, Any] = {"$set": {**changes, "updated_at": utcnow()}}
    if changes.get("is_blocked"):
        # blocking also revokes the stored refresh token
        update["$unset"] = {"refresh_token": ""}
    result = db[USERS].update_one({"_id": oid}, update)
    if result.matched_count == 0:
        raise ApiError(404, "User not found")
    return db[USERS].find_one({"_id": oid})


def list_admin_products(db: Database, search: Optional[str], status: Optional[str], tag: Optional[str],
                        skip: int, limit: int) -> Tuple[List[dict], int]:
    filt: Dict[str, Any] = {}
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"sku": pattern}]
    if status == "active":
        filt["is_active"] = True
    elif status == "inactive":
        filt["is_active"] = False
    elif status == "featured":
        filt["is_featured"] = True
    if tag and tag.strip():
        filt["tags"] = {"$in": [tag.strip()]}

    total = db[PRODUCTS].count_documents(filt)
    products = get_documents(db, PRODUCTS, filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit,
                             projection=ADMIN_PRODUCT_FIELDS)
    categories = {c["_id"]: c for c in db[CATEGORIES].find(
        {"_id": {"$in": list({p.get("category") for p in products})}}, {"name": 1, "slug": 1})}
    for product in products:
        product["category"] = categories.get(product.get("category"), product.get("category"))
    return products, total
