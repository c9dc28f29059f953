from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import get_db
from ..schemas import BlockUpdate, RoleUpdate
from ..security import require_admin
from ..seed import seed_demo_data
from ..services import admin as admin_service
from ..utils import get_pagination, pagination_meta, public_user, success

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard")
def dashboard(db: Database = Depends(get_db)):
    return success("Dashboard statistics", admin_service.dashboard(db))


@router.get("/analytics")
def analytics(db: Database = Depends(get_db)):
    return success("Analytics data", admin_service.analytics(db))


@router.get("/users")
def list_users(search: Optional[str] = None, role: Optional[str] = None, page: Optional[str] = None,
               limit: Optional[str] = None, db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 20)
    users, total = admin_service.list_users(db, search, role, skip, page_size)
    return success("Users fetched successfully", {
        "items": [public_user(u) for u in users],
        "pagination": pagination_meta(page_number, page_size, total),
    })


@router.put("/users/{user_id}/role")
def update_role(user_id: str, payload: RoleUpdate, db: Database = Depends(get_db)):
    user = admin_service.update_user(db, user_id, {"role": payload.role})
    return success("User role updated", {"user": public_user(user)})


@router.put("/users/{user_id}/block")
def block_user(user_id: str, payload: BlockUpdate, db: Database = Depends(get_db)):
    user = admin_service.update_user(db, user_id, {"is_blocked": payload.is_blocked})
    state = "blocked" if payload.is_blocked else "unblocked"
    return success(f"User {state} successfully", {"user": public_user(user)})


@router.get("/products")
def list_products(search: Optional[str] = None, status: Optional[str] = None, tag: Optional[str] = None,
                  page: Optional[str] = None, limit: Optional[str] = None, db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 20)
    items, total = admin_service.list_admin_products(db, search, status, tag, skip, page_size)
    return success("Products fetched successfully",
                   {"items": items, "pagination": pagination_meta(page_number, page_size, total)})


@router.post("/seed")
def seed(db: Database = Depends(get_db)):
    result = seed_demo_data(db)
    return success(result.pop("message", "Demo data seeded"), result)
