from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from ..database import ADDRESSES, USERS, create_document, get_db, get_documents
from ..deps import get_hasher
from ..errors import ApiError
from ..schemas import AddressIn, ChangePasswordRequest, UpdateProfileRequest
from ..security import get_current_user
from ..utils import parse_object_id, public_user, success, utcnow

router = APIRouter(prefix="/users", tags=["users"])


def _own_address(db: Database, user_id, address_id: str) -> dict:
    address = db[ADDRESSES].find_one({"_id": parse_object_id(address_id, "Address"), "user": user_id})
    if not address:
        raise ApiError(404, "Address not found")
    return address


def _clear_other_defaults(db: Database, user_id, keep_id) -> None:
    db[ADDRESSES].update_many({"user": user_id, "_id": {"$ne": keep_id}, "is_default": True},
                              {"$set": {"is_default": False, "updated_at": utcnow()}})


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return success("Profile fetched", {"user": public_user(user)})


@router.put("/profile")
def update_profile(payload: UpdateProfileRequest, user: dict = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {**payload.model_dump(), "updated_at": utcnow()}})
    return success("Profile updated", {"user": public_user(db[USERS].find_one({"_id": user["_id"]}))})


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, user: dict = Depends(get_current_user),
                    db: Database = Depends(get_db), hasher=Depends(get_hasher)):
    if not hasher.verify(payload.current_password, user.get("hashed_password")):
        raise ApiError(401, "Current password is incorrect")
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {
        "hashed_password": hasher.hash(payload.new_password),
        "updated_at": utcnow(),
    }})
    return success("Password updated successfully")


@router.get("/address")
def list_addresses(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    items = get_documents(db, ADDRESSES, {"user": user["_id"]},
                          sort=[("is_default", DESCENDING), ("created_at", DESCENDING)])
    return success("Addresses fetched", {"items": items})


@router.post("/address")
def add_address(payload: AddressIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    address = create_document(db, ADDRESSES, {"user": user["_id"], **payload.model_dump()})
    if address["is_default"]:
        _clear_other_defaults(db, user["_id"], address["_id"])
    return success("Address added", {"address": address}, 201)


@router.put("/address/{address_id}")
def update_address(address_id: str, payload: AddressIn, user: dict = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    address = _own_address(db, user["_id"], address_id)
    db[ADDRESSES].update_one({"_id": address["_id"]}, {"$set": {**payload.model_dump(), "updated_at": utcnow()}})
    if payload.is_default:
        _clear_other_defaults(db, user["_id"], address["_id"])
    return success("Address updated", {"address": db[ADDRESSES].find_one({"_id": address["_id"]})})


@router.delete("/address/{address_id}")
def delete_address(address_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    address = _own_address(db, user["_id"], address_id)
    db[ADDRESSES].delete_one({"_id": address["_id"]})
    return success("Address deleted")


@router.put("/address/{address_id}/default")
def set_default_address(address_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    address = _own_address(db, user["_id"], address_id)
    db[ADDRESSES].update_one({"_id": address["_id"]}, {"$set": {"is_default": True, "updated_at": utcnow()}})
    _clear_other_defaults(db, user["_id"], address["_id"])
    return success("Default address updated", {"address": db[ADDRESSES].find_one({"_id": address["_id"]})})
