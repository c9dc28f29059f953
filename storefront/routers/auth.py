from typing import Optional

from fastapi import APIRouter, Cookie, Depends
from fastapi.responses import JSONResponse
from pymongo.database import Database

from ..config import Settings
from ..database import get_db
from ..deps import get_hasher, get_mailer, get_settings, get_tokens
from ..errors import ApiError
from ..schemas import ForgotPasswordRequest, LoginRequest, RegisterRequest, ResetPasswordRequest
from ..security import get_current_user
from ..services import auth as auth_service
from ..utils import public_user, success

REFRESH_COOKIE = "storefront_refresh"

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: JSONResponse, token: str, settings: Settings) -> JSONResponse:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=int(settings.jwt_refresh_expire.total_seconds()),
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "strict",
        path="/",
    )
    return response


@router.post("/register")
def register(payload: RegisterRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings),
             hasher=Depends(get_hasher), tokens=Depends(get_tokens), mailer=Depends(get_mailer)):
    user, access, refresh = auth_service.register(db, payload.model_dump(), hasher, tokens, mailer, settings)
    response = success("Registration successful", {"user": public_user(user), "access_token": access}, 201)
    return _set_refresh_cookie(response, refresh, settings)


@router.post("/login")
def login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings),
          hasher=Depends(get_hasher), tokens=Depends(get_tokens)):
    user, access, refresh = auth_service.login(db, payload.email, payload.password, hasher, tokens)
    response = success("Login successful", {"user": public_user(user), "access_token": access})
    return _set_refresh_cookie(response, refresh, settings)


@router.post("/logout")
def logout(user: dict = Depends(get_current_user), db: Database = Depends(get_db),
           settings: Settings = Depends(get_settings)):
    auth_service.logout(db, user["_id"])
    response = success("Logged out successfully")
    response.delete_cookie(REFRESH_COOKIE, path="/", httponly=True, secure=settings.is_production,
                           samesite="none" if settings.is_production else "strict")
    return response


@router.post("/refresh-token")
def refresh_token(storefront_refresh: Optional[str] = Cookie(None), db: Database = Depends(get_db),
                  settings: Settings = Depends(get_settings), tokens=Depends(get_tokens)):
    if not storefront_refresh:
        raise ApiError(401, "Refresh token missing")
    user, access, refresh = auth_service.refresh_tokens(db, storefront_refresh, tokens)
    response = success("Token refreshed", {"user": public_user(user), "access_token": access})
    return _set_refresh_cookie(response, refresh, settings)


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Database = Depends(get_db),
                    settings: Settings = Depends(get_settings), mailer=Depends(get_mailer)):
    _, token = auth_service.forgot_password(db, payload.email, mailer, settings)
    data = None
    if not settings.is_production:
        data = {"reset_token": token, "reset_url": f"{settings.client_url}/reset-password/{token}"}
    return success("Password reset email sent", data)


@router.post("/reset-password/{token}")
def reset_password(token: str, payload: ResetPasswordRequest, db: Database = Depends(get_db),
                   hasher=Depends(get_hasher)):
    auth_service.reset_password(db, token, payload.password, hasher)
    return success("Password reset successful")


@router.get("/verify-email/{token}")
def verify_email(token: str, db: Database = Depends(get_db)):
    auth_service.verify_email(db, token)
    return success("Email verified successfully")


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return success("Profile fetched", {"user": public_user(user)})
