"""
Pure pricing rules: cart totals, coupon evaluation, order totals and status
transitions. Nothing here touches the database; callers pass plain documents
in and apply the returned values themselves.
"""
import random
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import ApiError
from .utils import utcnow

TAX_RATE = 0.18
FREE_SHIPPING_THRESHOLD = 999
SHIPPING_CHARGE = 59

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "returned")
CANCELLABLE_STATUSES = ("pending", "processing")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

_STATUS_TIMESTAMPS = {"shipped": "shipped_at", "delivered": "delivered_at", "cancelled": "cancelled_at"}


def effective_price(product: Dict[str, Any]) -> float:
    discount = product.get("discount_price")
    return discount if discount is not None else product["price"]


def discount_percent(product: Dict[str, Any]) -> int:
    price = product.get("price") or 0
    discount = product.get("discount_price")
    if not discount or price <= 0:
        return 0
    return round((price - discount) / price * 100)


def cart_totals(items: Iterable[Dict[str, Any]]) -> Tuple[float, int]:
    """Return ``(total_amount, total_items)`` for cart line items."""
    total_amount = 0.0
    total_items = 0
    for item in items:
        total_items += item["quantity"]
        total_amount += item["quantity"] * item["price"]
    return round(total_amount, 2), total_items


def coupon_discount(coupon: Dict[str, Any], cart_total: float) -> float:
    if cart_total <= 0:
        return 0.0
    if coupon["discount_type"] == "percent":
        amount = cart_total * coupon["discount_value"] / 100
        if coupon.get("max_discount") is not None:
            amount = min(amount, coupon["max_discount"])
    else:
        amount = coupon["discount_value"]
    return round(max(0.0, min(amount, cart_total)), 2)


def check_coupon_availability(coupon: Dict[str, Any], user_redemptions: int = 0,
                              now: Optional[datetime] = None) -> None:
    """Raise ApiError(400) when the coupon cannot currently be redeemed by this user."""
    now = now or utcnow()
    if not coupon.get("is_active", True):
        raise ApiError(400, "Coupon is inactive")
    if coupon.get("start_date") and coupon["start_date"] > now:
        raise ApiError(400, "Coupon is not active yet")
    if coupon.get("expiry_date") and coupon["expiry_date"] < now:
        raise ApiError(400, "Coupon has expired")
    usage_limit = coupon.get("usage_limit")
    if usage_limit and coupon.get("usage_count", 0) >= usage_limit:
        raise ApiError(400, "Coupon usage limit reached")
    per_user_limit = coupon.get("per_user_limit")
    if per_user_limit and user_redemptions >= per_user_limit:
        raise ApiError(400, "Coupon usage limit reached for this user")


def check_coupon(coupon: Dict[str, Any], cart_total: float, user_redemptions: int = 0,
                 now: Optional[datetime] = None) -> float:
    """Full coupon evaluation; returns the discount or raises ApiError(400)."""
    check_coupon_availability(coupon, user_redemptions, now)
    min_cart_value = coupon.get("min_cart_value") or 0
    if min_cart_value and cart_total < min_cart_value:
        raise ApiError(400, f"Minimum cart value should be {min_cart_value:g} to use this coupon")
    discount = coupon_discount(coupon, cart_total)
    if discount <= 0:
        raise ApiError(400, "Coupon is not applicable on current cart value")
    return discount


def shipping_for(subtotal: float) -> int:
    return 0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_CHARGE


def order_totals(subtotal: float, discount: float = 0.0) -> Dict[str, float]:
    subtotal = round(subtotal, 2)
    discount = round(discount, 2)
    tax = round((subtotal - discount) * TAX_RATE, 2)
    shipping = shipping_for(subtotal)
    return {
        "subtotal": subtotal,
        "discount_amount": discount,
        "tax_amount": tax,
        "shipping_charges": shipping,
        "total_amount": round(subtotal - discount + tax + shipping, 2),
    }


def generate_order_number(rng: random.Random = None) -> str:
    rng = rng or random
    return "ORD-%010d" % rng.randrange(10 ** 10)


def history_entry(status: str, note: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    entry = {"status": status, "date": now or utcnow()}
    if note:
        entry["note"] = note
    return entry


def status_update(status: str, note: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Mongo update document moving an order to ``status`` and appending to its history."""
    if status not in ORDER_STATUSES:
        raise ApiError(400, f"Unknown order status: {status}")
    now = now or utcnow()
    fields = {"order_status": status, "updated_at": now}
    if status in _STATUS_TIMESTAMPS:
        fields[_STATUS_TIMESTAMPS[status]] = now
    return {"$set": fields, "$push": {"status_history": history_entry(status, note, now)}}
