from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import get_db
from ..schemas import ProductIn, ProductUpdate, ReviewIn
from ..security import get_current_user, require_admin
from ..services import catalog
from ..utils import get_pagination, pagination_meta, success

router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
def list_products(category: Optional[str] = None, sub_category: Optional[str] = None, brand: Optional[str] = None,
                  is_featured: Optional[str] = None, is_new: Optional[str] = None,
                  is_trending: Optional[str] = None, min_price: Optional[str] = None,
                  max_price: Optional[str] = None, rating: Optional[str] = None, search: Optional[str] = None,
                  tags: Optional[str] = None, sort: Optional[str] = None, page: Optional[str] = None,
                  limit: Optional[str] = None, db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 10)
    params = {
        "category": category, "sub_category": sub_category, "brand": brand, "is_featured": is_featured,
        "is_new": is_new, "is_trending": is_trending, "min_price": min_price, "max_price": max_price,
        "rating": rating, "search": search, "tags": tags, "sort": sort,
    }
    items, total = catalog.list_products(db, params, skip, page_size)
    return success("Products fetched successfully",
                   {"items": items, "pagination": pagination_meta(page_number, page_size, total)})


@router.get("/featured")
def featured(db: Database = Depends(get_db)):
    return success("Featured products", {"items": catalog.showcase(db, "featured")})


@router.get("/trending")
def trending(db: Database = Depends(get_db)):
    return success("Trending products", {"items": catalog.showcase(db, "trending")})


@router.get("/new-arrivals")
def new_arrivals(db: Database = Depends(get_db)):
    return success("New arrivals", {"items": catalog.showcase(db, "new-arrivals")})


@router.get("/{id_or_slug}")
def get_product(id_or_slug: str, db: Database = Depends(get_db)):
    product = catalog.get_product(db, id_or_slug)
    return success("Product fetched successfully", {"product": catalog.serialize_product(product)})


@router.get("/{product_id}/related")
def related(product_id: str, db: Database = Depends(get_db)):
    return success("Related products", {"items": catalog.related_products(db, product_id)})


@router.get("/{product_id}/reviews")
def list_reviews(product_id: str, page: Optional[str] = None, limit: Optional[str] = None,
                 db: Database = Depends(get_db)):
    page_number, page_size, skip = get_pagination(page, limit, 10)
    items, total = catalog.list_reviews(db, product_id, skip, page_size)
    return success("Reviews fetched successfully",
                   {"items": items, "pagination": pagination_meta(page_number, page_size, total)})


@router.post("/{product_id}/reviews")
def add_review(product_id: str, payload: ReviewIn, user: dict = Depends(get_current_user),
               db: Database = Depends(get_db)):
    review = catalog.add_review(db, product_id, user, payload.model_dump())
    return success("Review added successfully", {"review": review}, 201)


@router.post("")
def create_product(payload: ProductIn, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    product = catalog.create_product(db, payload.model_dump())
    return success("Product created successfully", {"product": product}, 201)


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: dict = Depends(require_admin),
                   db: Database = Depends(get_db)):
    product = catalog.update_product(db, product_id, payload.model_dump(exclude_unset=True))
    return success("Product updated successfully", {"product": product})


@router.delete("/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    product = catalog.deactivate_product(db, product_id)
    return success("Product deleted successfully", {"product": product})
