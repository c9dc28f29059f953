from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import get_db
from ..schemas import CancelOrderRequest, CreateOrderRequest, OrderStatusUpdate
from ..security import get_current_user, require_admin
from ..services import orders as order_service
from ..utils import get_pagination, pagination_meta, success

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("")
def create_order(payload: CreateOrderRequest, user: dict = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    order = order_service.place_order(db, user, payload.model_dump())
    return success("Order placed successfully", {"order": order}, 201)


@router.get("")
def list_orders(status: Optional[str] = None, page: Optional[str] = None, limit: Optional[str] = None,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 10)
    items, total = order_service.list_user_orders(db, user["_id"], status, skip, page_size)
    return success("Orders fetched successfully",
                   {"items": items, "pagination": pagination_meta(page_number, page_size, total)})


@router.get("/admin/all")
def list_all_orders(status: Optional[str] = None, page: Optional[str] = None, limit: Optional[str] = None,
                    admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 20)
    items, total = order_service.list_all_orders(db, status, skip, page_size)
    return success("Orders fetched successfully",
                   {"items": items, "pagination": pagination_meta(page_number, page_size, total)})


@router.get("/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return success("Order fetched successfully", {"order": order_service.get_user_order(db, user["_id"], order_id)})


@router.put("/{order_id}/cancel")
def cancel_order(order_id: str, payload: Optional[CancelOrderRequest] = None,
                 user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    reason = payload.reason if payload else None
    order = order_service.cancel_order(db, user["_id"], order_id, reason)
    return success("Order cancelled", {"order": order})


@router.put("/{order_id}/status")
def update_status(order_id: str, payload: OrderStatusUpdate, admin: dict = Depends(require_admin),
                  db: Database = Depends(get_db)):
    order = order_service.set_order_status(db, order_id, payload.status, payload.note)
    return success("Order status updated", {"order": order})
