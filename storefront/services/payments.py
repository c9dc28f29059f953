import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database

from ..config import Settings
from ..database import ORDERS
from ..errors import ApiError
from ..gateway import RazorpayGateway
from ..pricing import history_entry, status_update
from ..utils import parse_object_id, utcnow
from .orders import adjust_stock

logger = logging.getLogger(__name__)


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    return bool(received) and hmac.compare_digest(expected.encode(), received.encode())


def verify_payment_signature(secret: str, gateway_order_id: str, payment_id: str, signature: str) -> bool:
    return signatures_match(sign(secret, f"{gateway_order_id}|{payment_id}".encode()), signature)


def verify_webhook_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    return signatures_match(sign(secret, body), signature)


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


def create_gateway_order(db: Database, gateway: RazorpayGateway, user_id: ObjectId, order_id: str,
                         currency: str = "INR", receipt: Optional[str] = None) -> Dict[str, Any]:
    order = db[ORDERS].find_one({"_id": parse_object_id(order_id, "Order"), "user": user_id})
    if not order:
        raise ApiError(404, "Order not found")
    if order.get("payment_status") == "completed":
        raise ApiError(400, "Order is already paid")
    if order.get("order_status") == "cancelled":
        raise ApiError(400, "Order is cancelled")

    remote = gateway.create_order(to_paise(order["total_amount"]), currency, receipt or order["order_number"])
    db[ORDERS].update_one({"_id": order["_id"]}, {"$set": {
        "payment_details.razorpay_order_id": remote["id"],
        "updated_at": utcnow(),
    }})
    return {
        "order_id": remote["id"],
        "amount": remote.get("amount", to_paise(order["total_amount"])),
        "currency": remote.get("currency", currency),
        "key": gateway.key_id,
    }


def mark_paid(db: Database, order: dict, gateway_order_id: str, payment_id: str,
              signature: Optional[str] = None) -> dict:
    """Record a captured payment and move a pending order to processing. Repeat calls are no-ops."""
    if order.get("payment_status") == "completed":
        return order
    now = utcnow()
    fields = {
        "payment_status": "completed",
        "payment_details.razorpay_order_id": gateway_order_id,
        "payment_details.razorpay_payment_id": payment_id,
        "payment_details.paid_at": now,
        "updated_at": now,
    }
    if signature:
        fields["payment_details.razorpay_signature"] = signature
    update: Dict[str, Any] = {"$set": fields}
    if order.get("order_status") == "pending":
        moved = status_update("processing", "Payment confirmed", now)
        update["$set"].update(moved["$set"])
        update["$push"] = moved["$push"]
    db[ORDERS].update_one({"_id": order["_id"], "payment_status": {"$ne": "completed"}}, update)
    logger.info("Order %s paid (payment %s)", order["order_number"], payment_id)
    return db[ORDERS].find_one({"_id": order["_id"]})


def verify_client_payment(db: Database, settings: Settings, user_id: ObjectId, data: Dict[str, Any]) -> dict:
    if not verify_payment_signature(settings.razorpay_key_secret, data["razorpay_order_id"],
                                    data["razorpay_payment_id"], data["razorpay_signature"]):
        logger.warning("Invalid payment signature for gateway order %s", data["razorpay_order_id"])
        raise ApiError(400, "Invalid payment signature")
    order = db[ORDERS].find_one({"_id": parse_object_id(data["order_id"], "Order"), "user": user_id})
    if not order:
        raise ApiError(404, "Order not found")
    if (order.get("payment_details") or {}).get("razorpay_order_id") != data["razorpay_order_id"]:
        logger.warning("Gateway order %s does not belong to order %s", data["razorpay_order_id"],
                       order["order_number"])
        raise ApiError(400, "Payment does not match this order")
    return mark_paid(db, order, data["razorpay_order_id"], data["razorpay_payment_id"], data["razorpay_signature"])


def handle_webhook(db: Database, settings: Settings, body: bytes, signature: Optional[str]) -> None:
    if not verify_webhook_signature(settings.razorpay_webhook_secret, body, signature):
        logger.warning("Rejected webhook with invalid signature")
        raise ApiError(400, "Invalid webhook signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise ApiError(400, "Malformed webhook payload")

    kind = event.get("event")
    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    gateway_order_id = entity.get("order_id")
    if kind not in ("payment.captured", "payment.failed") or not gateway_order_id:
        logger.debug("Ignoring webhook event %s", kind)
        return

    order = db[ORDERS].find_one({"payment_details.razorpay_order_id": gateway_order_id})
    if not order:
        logger.warning("Webhook %s for unknown gateway order %s", kind, gateway_order_id)
        return

    if kind == "payment.captured":
        mark_paid(db, order, gateway_order_id, entity.get("id"))
    elif order.get("payment_status") != "completed":
        db[ORDERS].update_one({"_id": order["_id"]}, {"$set": {
            "payment_status": "failed",
            "payment_details.razorpay_payment_id": entity.get("id"),
            "updated_at": utcnow(),
        }})
        logger.info("Payment failed for order %s", order["order_number"])


def refund_order(db: Database, gateway: RazorpayGateway, order_id: str) -> dict:
    order = db[ORDERS].find_one({"_id": parse_object_id(order_id, "Order")})
    if not order:
        raise ApiError(404, "Order not found")
    payment_id = (order.get("payment_details") or {}).get("razorpay_payment_id")
    if not payment_id or order.get("payment_status") != "completed":
        raise ApiError(400, "Payment not captured")

    gateway.refund(payment_id, to_paise(order["total_amount"]))

    now = utcnow()
    update: Dict[str, Any] = {"$set": {"payment_status": "refunded", "updated_at": now}}
    restock = order["order_status"] != "cancelled"
    if restock:
        update["$set"].update({"order_status": "cancelled", "cancelled_at": now})
        update["$push"] = {"status_history": history_entry("cancelled", "Refund processed", now)}
    db[ORDERS].update_one({"_id": order["_id"]}, update)
    if restock:
        adjust_stock(db, order["items"], +1)
    logger.info("Order %s refunded", order["order_number"])
    return db[ORDERS].find_one({"_id": order["_id"]})
