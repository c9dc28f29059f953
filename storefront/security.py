import hashlib
import logging
import secrets
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pymongo.database import Database

from .config import Settings
from .database import USERS, get_db
from .deps import get_tokens
from .errors import ApiError
from .utils import is_object_id, parse_object_id, utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
REFRESH_TOKEN_TYPE = "refresh"

bearer = HTTPBearer(auto_error=False)


class PasswordHasher:
    def __init__(self, rounds: int = 10):
        self._ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._ctx.hash(password)

    def verify(self, password: str, hashed: Optional[str]) -> bool:
        if not hashed:
            return False
        return self._ctx.verify(password, hashed)


class TokenService:
    """Issues and verifies the access/refresh JWT pair carrying ``{sub, role}``."""

    def __init__(self, settings: Settings):
        self._access_secret = settings.jwt_access_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._access_ttl = settings.jwt_access_expire
        self._refresh_ttl = settings.jwt_refresh_expire

    @staticmethod
    def _claims(user: Dict[str, Any]) -> Dict[str, Any]:
        return {"sub": str(user["_id"]), "role": user.get("role", "user")}

    def issue_access(self, user: Dict[str, Any]) -> str:
        now = utcnow()
        payload = {**self._claims(user), "iat": now, "exp": now + self._access_ttl}
        return jwt.encode(payload, self._access_secret, algorithm=ALGORITHM)

    def issue_refresh(self, user: Dict[str, Any]) -> str:
        now = utcnow()
        payload = {
            **self._claims(user),
            "token_type": REFRESH_TOKEN_TYPE,
            # jti keeps two refresh tokens minted in the same second distinct
            "jti": secrets.token_hex(8),
            "iat": now,
            "exp": now + self._refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=ALGORITHM)

    def verify_access(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self._access_secret, algorithms=[ALGORITHM])
        except jwt.InvalidTokenError:
            raise ApiError(401, "Invalid or expired access token")

    def verify_refresh(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self._refresh_secret, algorithms=[ALGORITHM])
        except jwt.InvalidTokenError:
            raise ApiError(401, "Invalid or expired refresh token")
        if payload.get("token_type") != REFRESH_TOKEN_TYPE:
            raise ApiError(401, "Invalid refresh token")
        return payload


def new_token() -> str:
    return secrets.token_hex(32)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                           db: Database = Depends(get_db),
                           tokens: TokenService = Depends(get_tokens)) -> dict:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(401, "Authorization token missing")
    payload = tokens.verify_access(credentials.credentials)
    uid = payload.get("sub")
    if not is_object_id(uid):
        raise ApiError(401, "Invalid or expired access token")
    user = db[USERS].find_one({"_id": parse_object_id(uid)})
    if not user:
        raise ApiError(401, "User not found")
    if user.get("is_blocked"):
        raise ApiError(403, "Account is blocked. Contact support.")
    return user


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise ApiError(403, "Access denied")
    return user
