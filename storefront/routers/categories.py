from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import CATEGORIES, get_db, get_documents
from ..schemas import CategoryIn
from ..security import require_admin
from ..services import catalog
from ..utils import success

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
def list_categories(db: Database = Depends(get_db)):
    items = get_documents(db, CATEGORIES, {"is_active": True}, sort=[("name", 1)])
    return success("Categories fetched successfully", {"items": items})


@router.get("/{id_or_slug}")
def get_category(id_or_slug: str, db: Database = Depends(get_db)):
    return success("Category fetched successfully", {"category": catalog.get_category(db, id_or_slug)})


@router.post("")
def create_category(payload: CategoryIn, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    category = catalog.create_category(db, payload.model_dump())
    return success("Category created successfully", {"category": category}, 201)


@router.put("/{category_id}")
def update_category(category_id: str, payload: CategoryIn, admin: dict = Depends(require_admin),
                    db: Database = Depends(get_db)):
    category = catalog.update_category(db, category_id, payload.model_dump())
    return success("Category updated successfully", {"category": category})


@router.delete("/{category_id}")
def delete_category(category_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    catalog.delete_category(db, category_id)
    return success("Category deleted successfully")
