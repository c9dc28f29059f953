from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import get_db
from ..schemas import CouponIn, CouponToggle, CouponValidateRequest
from ..security import get_current_user, require_admin
from ..services import coupons as coupon_service
from ..utils import success

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate")
def validate_coupon(payload: CouponValidateRequest, user: dict = Depends(get_current_user),
                    db: Database = Depends(get_db)):
    coupon, discount = coupon_service.evaluate_coupon_for_cart(db, payload.code, payload.cart_total, user["_id"])
    return success("Coupon is valid", {
        "coupon": coupon,
        "discount_amount": discount,
        "payable_amount": round(max(0.0, payload.cart_total - discount), 2),
    })


@router.get("/available")
def available_coupons(cart_total: Optional[str] = None, user: dict = Depends(get_current_user),
                      db: Database = Depends(get_db)):
    try:
        total = max(float(cart_total or 0), 0.0)
    except ValueError:
        total = 0.0
    evaluations = coupon_service.list_applicable_coupons(db, total, user["_id"])
    return success("Applicable coupons fetched successfully", {
        "best_coupon_code": evaluations[0][0]["code"] if evaluations else None,
        "items": [
            {**coupon, "estimated_discount": discount, "estimated_payable": round(max(0.0, total - discount), 2)}
            for coupon, discount in evaluations
        ],
    })


@router.get("")
def list_coupons(search: Optional[str] = None, status: Optional[str] = None, discount_type: Optional[str] = None,
                 sort_by: Optional[str] = None, sort_order: Optional[str] = None,
                 admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    items = coupon_service.list_coupons(db, search, status, discount_type, sort_by, sort_order)
    return success("Coupons fetched successfully", {"items": items})


@router.post("")
def create_coupon(payload: CouponIn, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    coupon = coupon_service.create_coupon(db, payload.model_dump())
    return success("Coupon created successfully", {"coupon": coupon}, 201)


@router.put("/{coupon_id}")
def update_coupon(coupon_id: str, payload: CouponIn, admin: dict = Depends(require_admin),
                  db: Database = Depends(get_db)):
    coupon = coupon_service.update_coupon(db, coupon_id, payload.model_dump())
    return success("Coupon updated successfully", {"coupon": coupon})


@router.patch("/{coupon_id}/toggle")
def toggle_coupon(coupon_id: str, payload: Optional[CouponToggle] = None, admin: dict = Depends(require_admin),
                  db: Database = Depends(get_db)):
    coupon = coupon_service.toggle_coupon(db, coupon_id, payload.is_active if payload else None)
    state = "activated" if coupon["is_active"] else "deactivated"
    return success(f"Coupon {state} successfully", {"coupon": coupon})


@router.delete("/{coupon_id}")
def delete_coupon(coupon_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    coupon_service.delete_coupon(db, coupon_id)
    return success("Coupon deleted successfully")
