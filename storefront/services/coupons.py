import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from ..database import COUPONS, ORDERS, create_document, get_documents
from ..errors import ApiError
from ..pricing import check_coupon, check_coupon_availability, coupon_discount
from ..utils import parse_object_id, utcnow

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "code", "discount_value", "min_cart_value", "start_date", "expiry_date",
                   "usage_count")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def user_redemptions(db: Database, code: str, user_id: ObjectId) -> int:
    """Orders this user placed with ``code``, cancelled ones included."""
    return db[ORDERS].count_documents({
        "user": user_id,
        "$or": [{"applied_coupon.code": code}, {"coupon_code": code}],
    })


def _redemptions_if_limited(db: Database, coupon: dict, user_id: ObjectId) -> int:
    if not coupon.get("per_user_limit"):
        return 0
    return user_redemptions(db, coupon["code"], user_id)


def evaluate_coupon_for_cart(db: Database, code: str, cart_total: float, user_id: ObjectId) -> Tuple[dict, float]:
    """Look the coupon up and evaluate it; returns ``(coupon, discount_amount)`` or raises 400."""
    normalized = normalize_code(code)
    if not normalized:
        raise ApiError(400, "Coupon code is required")
    coupon = db[COUPONS].find_one({"code": normalized})
    if not coupon:
        raise ApiError(400, "Coupon does not exist")
    discount = check_coupon(coupon, cart_total, _redemptions_if_limited(db, coupon, user_id))
    return coupon, discount


def list_applicable_coupons(db: Database, cart_total: float, user_id: ObjectId) -> List[Tuple[dict, float]]:
    now = utcnow()
    candidates = get_documents(db, COUPONS, {
        "is_active": True,
        "start_date": {"$lte": now},
        "expiry_date": {"$gte": now},
        "min_cart_value": {"$lte": cart_total},
    }, sort=[("min_cart_value", ASCENDING), ("discount_value", DESCENDING)])

    evaluations = []
    for coupon in candidates:
        try:
            check_coupon_availability(coupon, _redemptions_if_limited(db, coupon, user_id), now)
        except ApiError as exc:
            logger.debug("Coupon %s skipped: %s", coupon["code"], exc.message)
            continue
        discount = coupon_discount(coupon, cart_total)
        if discount > 0:
            evaluations.append((coupon, discount))

    evaluations.sort(key=lambda pair: (-pair[1], pair[0].get("min_cart_value") or 0))
    return evaluations


# Admin

def coupon_filter(search: Optional[str], status: Optional[str], discount_type: Optional[str]) -> Dict[str, Any]:
    now = utcnow()
    filt: Dict[str, Any] = {}
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filt["$or"] = [{"code": pattern}, {"description": pattern}]
    if discount_type:
        filt["discount_type"] = {"percentage": "percent", "fixed": "flat"}.get(discount_type, discount_type)
    if status == "active":
        filt.update({"is_active": True, "start_date": {"$lte": now}, "expiry_date": {"$gte": now}})
    elif status == "inactive":
        filt["is_active"] = False
    elif status == "upcoming":
        filt["start_date"] = {"$gt": now}
    elif status == "expired":
        filt["expiry_date"] = {"$lt": now}
    return filt


def list_coupons(db: Database, search: Optional[str] = None, status: Optional[str] = None,
                 discount_type: Optional[str] = None, sort_by: Optional[str] = None,
                 sort_order: Optional[str] = None) -> List[dict]:
    field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    sort = [(field, direction)]
    if field != "created_at":
        sort.append(("created_at", DESCENDING))
    return get_documents(db, COUPONS, coupon_filter(search, status, discount_type), sort=sort)


def _coupon_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = {k: v for k, v in data.items() if v is not None or k in ("max_discount", "usage_limit", "per_user_limit")}
    fields["applicable_categories"] = [parse_object_id(c, "Category") for c in data.get("applicable_categories") or []]
    fields["applicable_products"] = [parse_object_id(p, "Product") for p in data.get("applicable_products") or []]
    return fields


def create_coupon(db: Database, data: Dict[str, Any]) -> dict:
    fields = _coupon_fields(data)
    fields.setdefault("is_active", True)
    fields.setdefault("usage_count", 0)
    if db[COUPONS].find_one({"code": fields["code"]}, {"_id": 1}):
        raise ApiError(409, "Coupon code already exists")
    coupon = create_document(db, COUPONS, fields)
    logger.info("Coupon created: %s", coupon["code"])
    return coupon


def update_coupon(db: Database, coupon_id: str, data: Dict[str, Any]) -> dict:
    oid = parse_object_id(coupon_id, "Coupon")
    fields = _coupon_fields(data)
    fields["updated_at"] = utcnow()
    result = db[COUPONS].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise ApiError(404, "Coupon not found")
    return db[COUPONS].find_one({"_id": oid})


def toggle_coupon(db: Database, coupon_id: str, is_active: Optional[bool] = None) -> dict:
    oid = parse_object_id(coupon_id, "Coupon")
    coupon = db[COUPONS].find_one({"_id": oid})
    if not coupon:
        raise ApiError(404, "Coupon not found")
    active = is_active if is_active is not None else not coupon.get("is_active", True)
    db[COUPONS].update_one({"_id": oid}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    coupon["is_active"] = active
    return coupon


def delete_coupon(db: Database, coupon_id: str) -> None:
    result = db[COUPONS].delete_one({"_id": parse_object_id(coupon_id, "Coupon")})
    if result.deleted_count == 0:
        raise ApiError(404, "Coupon not found")
