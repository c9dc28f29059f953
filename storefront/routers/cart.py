from fastapi import APIRouter, Depends
from pymongo.database import Database

from ..database import get_db
from ..schemas import CartItemIn, CartItemUpdate
from ..security import get_current_user
from ..services import cart as cart_service
from ..utils import success

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("")
def get_cart(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = cart_service.get_or_create_cart(db, user["_id"])
    return success("Cart fetched successfully", {"cart": cart_service.with_products(db, cart)})


@router.post("/items")
def add_item(payload: CartItemIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = cart_service.add_item(db, user["_id"], payload.product_id, payload.quantity)
    return success("Cart updated successfully", {"cart": cart_service.with_products(db, cart)}, 201)


@router.put("/items/{item_id}")
def update_item(item_id: str, payload: CartItemUpdate, user: dict = Depends(get_current_user),
                db: Database = Depends(get_db)):
    cart = cart_service.update_item(db, user["_id"], item_id, payload.quantity)
    return success("Cart item updated", {"cart": cart_service.with_products(db, cart)})


@router.delete("/items/{item_id}")
def remove_item(item_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = cart_service.remove_item(db, user["_id"], item_id)
    return success("Item removed from cart", {"cart": cart_service.with_products(db, cart)})


@router.delete("/clear")
def clear_cart(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = cart_service.clear_cart(db, user["_id"])
    return success("Cart cleared successfully", {"cart": cart})
