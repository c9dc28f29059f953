"""
Checkout and order lifecycle.

Order placement validates everything up front, then runs its writes inside a
``Saga``: the order insert, the per-product stock decrements, the coupon usage
increment, the cart clear and the optional address save. A failed step undoes
the completed ones in reverse order before the error reaches the client.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from ..database import ADDRESSES, CARTS, COUPONS, ORDERS, PRODUCTS, USERS, create_document, get_documents
from ..errors import ApiError
from ..pricing import (
    CANCELLABLE_STATUSES,
    effective_price,
    generate_order_number,
    history_entry,
    order_totals,
    status_update,
)
from ..saga import Saga
from ..utils import is_object_id, parse_object_id, utcnow
from .coupons import evaluate_coupon_for_cart

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
ADDRESS_FIELDS = ("full_name", "phone", "address_line1", "address_line2", "city", "state", "pincode", "country")


def _merge_lines(items: List[Dict[str, Any]]) -> "OrderedDict[ObjectId, int]":
    quantities: "OrderedDict[ObjectId, int]" = OrderedDict()
    for item in items:
        if not is_object_id(item["product_id"]):
            raise ApiError(404, "Product not found")
        oid = ObjectId(item["product_id"])
        quantities[oid] = quantities.get(oid, 0) + item["quantity"]
    return quantities


def snapshot_items(db: Database, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Resolve requested lines to live products and copy the fields an order keeps."""
    quantities = _merge_lines(items)
    products = {p["_id"]: p for p in db[PRODUCTS].find({"_id": {"$in": list(quantities)}})}

    lines = []
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if not product or not product.get("is_active", True):
            raise ApiError(404, "Product not found")
        if product["stock"] < quantity:
            raise ApiError(400, f"Insufficient stock for {product['name']}")
        price = effective_price(product)
        lines.append({
            "_id": ObjectId(),
            "product": product_id,
            "product_name": product["name"],
            "product_image": (product.get("thumbnail") or {}).get("url"),
            "price": price,
            "quantity": quantity,
            "subtotal": round(price * quantity, 2),
        })
    return lines


def _unique_order_number(db: Database) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if not db[ORDERS].find_one({"order_number": number}, {"_id": 1}):
            return number
        logger.warning("Order number %s already taken, regenerating", number)
    # unique index rejects the insert if this one collides too
    return generate_order_number()


def adjust_stock(db: Database, lines: List[Dict[str, Any]], direction: int) -> None:
    """Move stock/sold by each line's quantity: -1 consumes, +1 restores."""
    for line in lines:
        db[PRODUCTS].update_one(
            {"_id": line["product"]},
            {"$inc": {"stock": direction * line["quantity"], "sold": -direction * line["quantity"]},
             "$set": {"updated_at": utcnow()}},
        )


def _reserve_stock(db: Database, line: Dict[str, Any]) -> Dict[str, Any]:
    result = db[PRODUCTS].update_one(
        {"_id": line["product"], "stock": {"$gte": line["quantity"]}},
        {"$inc": {"stock": -line["quantity"], "sold": line["quantity"]}, "$set": {"updated_at": utcnow()}},
    )
    if result.modified_count == 0:
        raise ApiError(409, f"Insufficient stock for {line['product_name']}")
    return line


def _redeem_coupon(db: Database, coupon: dict) -> ObjectId:
    filt: Dict[str, Any] = {"_id": coupon["_id"]}
    if coupon.get("usage_limit"):
        filt["usage_count"] = {"$lt": coupon["usage_limit"]}
    result = db[COUPONS].update_one(filt, {"$inc": {"usage_count": 1}, "$set": {"updated_at": utcnow()}})
    if result.modified_count == 0:
        raise ApiError(400, "Coupon usage limit reached")
    return coupon["_id"]


def _release_coupon(db: Database, coupon_id: ObjectId) -> None:
    db[COUPONS].update_one({"_id": coupon_id, "usage_count": {"$gt": 0}}, {"$inc": {"usage_count": -1}})


def _clear_cart(db: Database, user_id: ObjectId) -> Optional[dict]:
    cart = db[CARTS].find_one({"user": user_id})
    if cart:
        db[CARTS].update_one({"_id": cart["_id"]}, {"$set": {
            "items": [], "total_amount": 0.0, "total_items": 0, "updated_at": utcnow(),
        }})
    return cart


def _restore_cart(db: Database, cart: Optional[dict]) -> None:
    if cart:
        db[CARTS].update_one({"_id": cart["_id"]}, {"$set": {
            "items": cart["items"], "total_amount": cart["total_amount"], "total_items": cart["total_items"],
        }})


def upsert_default_address(db: Database, user_id: ObjectId, address: Dict[str, Any]) -> dict:
    """Save ``address`` as the user's default, reusing an identical stored address if there is one."""
    normalized = {k: (address.get(k) or "").strip() or None for k in ADDRESS_FIELDS}
    existing = db[ADDRESSES].find_one({"user": user_id, **normalized})
    if existing:
        db[ADDRESSES].update_one({"_id": existing["_id"]}, {"$set": {"is_default": True, "updated_at": utcnow()}})
        saved = {**existing, "is_default": True}
    else:
        saved = create_document(db, ADDRESSES, {"user": user_id, **normalized, "is_default": True,
                                                "address_type": "home"})
    db[ADDRESSES].update_many({"user": user_id, "_id": {"$ne": saved["_id"]}}, {"$set": {"is_default": False}})
    return saved


def place_order(db: Database, user: dict, payload: Dict[str, Any]) -> dict:
    lines = snapshot_items(db, payload["items"])
    subtotal = round(sum(line["subtotal"] for line in lines), 2)

    coupon, discount = None, 0.0
    if payload.get("coupon_code"):
        coupon, discount = evaluate_coupon_for_cart(db, payload["coupon_code"], subtotal, user["_id"])

    totals = order_totals(subtotal, discount)
    shipping_address = payload["shipping_address"]
    doc = {
        "order_number": _unique_order_number(db),
        "user": user["_id"],
        "items": lines,
        "shipping_address": shipping_address,
        "billing_address": payload.get("billing_address") or shipping_address,
        "payment_method": payload["payment_method"],
        "payment_status": "pending",
        "payment_details": {},
        "order_status": "pending",
        "status_history": [history_entry("pending", "Order placed")],
        "coupon_code": coupon["code"] if coupon else None,
        "applied_coupon": {
            "code": coupon["code"],
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
            "discount_amount": discount,
        } if coupon else None,
        "order_notes": payload.get("order_notes"),
        **totals,
    }

    with Saga("place-order") as saga:
        order = saga.step("insert order", lambda: create_document(db, ORDERS, doc),
                          undo=lambda o: db[ORDERS].delete_one({"_id": o["_id"]}))
        for line in lines:
            saga.step(f"reserve stock {line['product']}", lambda line=line: _reserve_stock(db, line),
                      undo=lambda reserved: adjust_stock(db, [reserved], +1))
        if coupon:
            saga.step("redeem coupon", lambda: _redeem_coupon(db, coupon),
                      undo=lambda cid: _release_coupon(db, cid))
        saga.step("clear cart", lambda: _clear_cart(db, user["_id"]),
                  undo=lambda cart: _restore_cart(db, cart))
        if payload.get("save_address"):
            saga.step("save address", lambda: upsert_default_address(db, user["_id"], shipping_address))

    logger.info("Order %s placed by %s: total %s", order["order_number"], user["email"], order["total_amount"])
    return order


def get_user_order(db: Database, user_id: ObjectId, order_id: str) -> dict:
    order = db[ORDERS].find_one({"_id": parse_object_id(order_id, "Order"), "user": user_id})
    if not order:
        raise ApiError(404, "Order not found")
    return order


def list_user_orders(db: Database, user_id: ObjectId, status: Optional[str], skip: int,
                     limit: int) -> Tuple[List[dict], int]:
    filt: Dict[str, Any] = {"user": user_id}
    if status:
        filt["order_status"] = status
    total = db[ORDERS].count_documents(filt)
    orders = get_documents(db, ORDERS, filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
    return orders, total


def list_all_orders(db: Database, status: Optional[str], skip: int, limit: int) -> Tuple[List[dict], int]:
    filt: Dict[str, Any] = {}
    if status:
        filt["order_status"] = status
    total = db[ORDERS].count_documents(filt)
    orders = get_documents(db, ORDERS, filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
    customers = {u["_id"]: u for u in db[USERS].find({"_id": {"$in": list({o["user"] for o in orders})}},
                                                     {"name": 1, "email": 1})}
    for order in orders:
        order["user"] = customers.get(order["user"], {"_id": order["user"]})
    return orders, total


def _mark_cancelled(db: Database, order: dict, reason: Optional[str]) -> dict:
    update = status_update("cancelled", reason)
    update["$set"]["cancellation_reason"] = reason
    result = db[ORDERS].update_one(
        {"_id": order["_id"], "order_status": {"$in": list(CANCELLABLE_STATUSES)}}, update)
    if result.modified_count == 0:
        raise ApiError(400, "Order cannot be cancelled at this stage")
    return order


def _unmark_cancelled(db: Database, order: dict) -> None:
    db[ORDERS].update_one({"_id": order["_id"]}, {
        "$set": {"order_status": order["order_status"], "updated_at": utcnow()},
        "$unset": {"cancelled_at": "", "cancellation_reason": ""},
        "$pop": {"status_history": 1},
    })


def cancel_order(db: Database, user_id: ObjectId, order_id: str, reason: Optional[str] = None) -> dict:
    order = get_user_order(db, user_id, order_id)
    if order["order_status"] not in CANCELLABLE_STATUSES:
        raise ApiError(400, "Order cannot be cancelled at this stage")

    with Saga("cancel-order") as saga:
        saga.step("mark cancelled", lambda: _mark_cancelled(db, order, reason),
                  undo=lambda o: _unmark_cancelled(db, o))
        saga.step("restore stock", lambda: adjust_stock(db, order["items"], +1))

    logger.info("Order %s cancelled", order["order_number"])
    return db[ORDERS].find_one({"_id": order["_id"]})


def set_order_status(db: Database, order_id: str, status: str, note: Optional[str] = None) -> dict:
    oid = parse_object_id(order_id, "Order")
    result = db[ORDERS].update_one({"_id": oid}, status_update(status, note))
    if result.matched_count == 0:
        raise ApiError(404, "Order not found")
    logger.info("Order %s moved to %s", oid, status)
    return db[ORDERS].find_one({"_id": oid})
