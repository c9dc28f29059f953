import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import ApiError

PRIVATE_USER_FIELDS = (
    "hashed_password",
    "refresh_token",
    "verification_token",
    "reset_password_token",
    "reset_password_expire",
)


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes; keep everything on that footing.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_object_id(value: Any) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and ObjectId.is_valid(value))


def parse_object_id(value: Any, what: str = "Resource") -> ObjectId:
    """Convert a path/body id to ObjectId; malformed ids are reported as not found."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ApiError(404, f"{what} not found")
    return ObjectId(value)


def to_public(value: Any) -> Any:
    """Render a Mongo document for the API: ``_id`` -> ``id``, ObjectId -> str."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [to_public(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            out["id" if key == "_id" else key] = to_public(item)
        return out
    return value


def public_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return to_public({k: v for k, v in user.items() if k not in PRIVATE_USER_FIELDS})


def success(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = to_public(data)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_pagination(page: Any = None, limit: Any = None, default_limit: int = 10) -> Tuple[int, int, int]:
    """Lenient page/limit parsing: page >= 1, 1 <= limit <= 100. Returns (page, limit, skip)."""
    page_number = max(_to_int(page, 1) or 1, 1)
    limit_number = _to_int(limit, default_limit) or default_limit
    limit_number = min(max(limit_number, 1), 100)
    return page_number, limit_number, (page_number - 1) * limit_number


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) or 1}
