from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import PRODUCTS, WISHLISTS, get_db
from ..schemas import WishlistAdd
from ..security import get_current_user
from ..services.catalog import get_live_product, serialize_product
from ..utils import parse_object_id, success, utcnow

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


def _render(db: Database, user_id) -> dict:
    wishlist = db[WISHLISTS].find_one({"user": user_id}) or {"user": user_id, "products": []}
    ids = wishlist.get("products", [])
    products = {p["_id"]: p for p in db[PRODUCTS].find({"_id": {"$in": ids}})}
    items = [serialize_product(products[pid]) for pid in ids if pid in products]
    return {"items": items, "count": len(items)}


@router.get("")
def get_wishlist(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return success("Wishlist fetched successfully", _render(db, user["_id"]))


@router.post("")
def add_to_wishlist(payload: WishlistAdd, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    product = get_live_product(db, payload.product_id)
    now = utcnow()
    db[WISHLISTS].update_one(
        {"user": user["_id"]},
        {"$addToSet": {"products": product["_id"]}, "$set": {"updated_at": now},
         "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    return success("Added to wishlist", _render(db, user["_id"]))


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    db[WISHLISTS].update_one(
        {"user": user["_id"]},
        {"$pull": {"products": parse_object_id(product_id, "Product")}, "$set": {"updated_at": utcnow()}},
    )
    return success("Removed from wishlist", _render(db, user["_id"]))
