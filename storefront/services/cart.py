"""
Per-user cart. Each line carries a unit price snapshot taken from the product
when the line is added or updated; totals are recomputed on every write.
"""
from typing import List

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ..database import CARTS, PRODUCTS, create_document
from ..errors import ApiError
from ..pricing import cart_totals, effective_price
from ..utils import parse_object_id, utcnow
from .catalog import get_live_product

SUMMARY_FIELDS = {"name": 1, "slug": 1, "price": 1, "discount_price": 1, "stock": 1, "thumbnail": 1,
                  "images": 1, "is_active": 1}


def get_or_create_cart(db: Database, user_id: ObjectId) -> dict:
    cart = db[CARTS].find_one({"user": user_id})
    if cart:
        return cart
    try:
        return create_document(db, CARTS, {"user": user_id, "items": [], "total_amount": 0.0, "total_items": 0})
    except DuplicateKeyError:
        # created by a concurrent request
        return db[CARTS].find_one({"user": user_id})


def save_items(db: Database, cart: dict, items: List[dict]) -> dict:
    total_amount, total_items = cart_totals(items)
    db[CARTS].update_one({"_id": cart["_id"]}, {"$set": {
        "items": items,
        "total_amount": total_amount,
        "total_items": total_items,
        "updated_at": utcnow(),
    }})
    return {**cart, "items": items, "total_amount": total_amount, "total_items": total_items}


def with_products(db: Database, cart: dict) -> dict:
    """Attach a product summary to each line for display."""
    ids = [item["product"] for item in cart["items"]]
    products = {p["_id"]: p for p in db[PRODUCTS].find({"_id": {"$in": ids}}, SUMMARY_FIELDS)}
    items = []
    for item in cart["items"]:
        items.append({**item, "product": products.get(item["product"], {"_id": item["product"]})})
    return {**cart, "items": items}


def _find_item(cart: dict, item_id: str) -> dict:
    oid = parse_object_id(item_id, "Cart item")
    for item in cart["items"]:
        if item["_id"] == oid:
            return item
    raise ApiError(404, "Cart item not found")


def add_item(db: Database, user_id: ObjectId, product_id: str, quantity: int) -> dict:
    product = get_live_product(db, product_id)
    if product["stock"] < quantity:
        raise ApiError(400, "Insufficient stock")

    cart = get_or_create_cart(db, user_id)
    items = [dict(item) for item in cart["items"]]
    for item in items:
        if item["product"] == product["_id"]:
            new_quantity = item["quantity"] + quantity
            if product["stock"] < new_quantity:
                raise ApiError(400, "Insufficient stock")
            item["quantity"] = new_quantity
            item["price"] = effective_price(product)
            break
    else:
        items.append({
            "_id": ObjectId(),
            "product": product["_id"],
            "quantity": quantity,
            "price": effective_price(product),
        })
    return save_items(db, cart, items)


def update_item(db: Database, user_id: ObjectId, item_id: str, quantity: int) -> dict:
    cart = get_or_create_cart(db, user_id)
    target = _find_item(cart, item_id)

    if quantity <= 0:
        items = [item for item in cart["items"] if item["_id"] != target["_id"]]
        return save_items(db, cart, items)

    product = get_live_product(db, target["product"])
    if product["stock"] < quantity:
        raise ApiError(400, "Insufficient stock")

    items = []
    for item in cart["items"]:
        if item["_id"] == target["_id"]:
            item = {**item, "quantity": quantity, "price": effective_price(product)}
        items.append(item)
    return save_items(db, cart, items)


def remove_item(db: Database, user_id: ObjectId, item_id: str) -> dict:
    cart = get_or_create_cart(db, user_id)
    target = _find_item(cart, item_id)
    return save_items(db, cart, [item for item in cart["items"] if item["_id"] != target["_id"]])


def clear_cart(db: Database, user_id: ObjectId) -> dict:
    return save_items(db, get_or_create_cart(db, user_id), [])
