import hmac
import logging
from datetime import timedelta
from typing import Any, Dict, Tuple

from pymongo.database import Database

from ..config import Settings
from ..database import USERS, create_document
from ..errors import ApiError
from ..mailer import Mailer
from ..security import PasswordHasher, TokenService, new_token, sha256_hex
from ..utils import parse_object_id, utcnow

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)


def _issue_pair(db: Database, user: dict, tokens: TokenService) -> Tuple[str, str]:
    access = tokens.issue_access(user)
    refresh = tokens.issue_refresh(user)
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {"refresh_token": refresh, "updated_at": utcnow()}})
    user["refresh_token"] = refresh
    return access, refresh


def register(db: Database, payload: Dict[str, Any], hasher: PasswordHasher, tokens: TokenService,
             mailer: Mailer, settings: Settings) -> Tuple[dict, str, str]:
    email = payload["email"].strip().lower()
    if db[USERS].find_one({"email": email}):
        raise ApiError(409, "Email already registered")

    verification_token = new_token()
    user = create_document(db, USERS, {
        "name": payload["name"].strip(),
        "email": email,
        "hashed_password": hasher.hash(payload["password"]),
        "phone": payload["phone"],
        "role": "user",
        "is_verified": False,
        "is_blocked": False,
        "verification_token": verification_token,
    })
    access, refresh = _issue_pair(db, user, tokens)
    logger.info("User registered: %s", email)

    verify_url = f"{settings.client_url}/verify-email/{verification_token}"
    mailer.send(
        to=email,
        subject="Verify your Storefront account",
        html=(f"<p>Hello {user['name']},</p><p>Thanks for registering. Please verify your email "
              f'by clicking the link below:</p><p><a href="{verify_url}">{verify_url}</a></p>'),
        text=f"Verify your email: {verify_url}",
    )
    return user, access, refresh


def login(db: Database, email: str, password: str, hasher: PasswordHasher,
          tokens: TokenService) -> Tuple[dict, str, str]:
    user = db[USERS].find_one({"email": email.strip().lower()})
    if not user or not hasher.verify(password, user.get("hashed_password")):
        raise ApiError(401, "Invalid credentials")
    if user.get("is_blocked"):
        raise ApiError(403, "Account is blocked. Contact support.")
    access, refresh = _issue_pair(db, user, tokens)
    return user, access, refresh


def logout(db: Database, user_id) -> None:
    db[USERS].update_one({"_id": user_id}, {"$unset": {"refresh_token": ""}, "$set": {"updated_at": utcnow()}})


def refresh_tokens(db: Database, refresh_token: str, tokens: TokenService) -> Tuple[dict, str, str]:
    payload = tokens.verify_refresh(refresh_token)
    user = db[USERS].find_one({"_id": parse_object_id(payload.get("sub"), "User")})
    stored = (user or {}).get("refresh_token")
    if not stored or not hmac.compare_digest(stored, refresh_token):
        raise ApiError(401, "Invalid refresh token")
    if user.get("is_blocked"):
        raise ApiError(403, "Account is blocked. Contact support.")
    access, refresh = _issue_pair(db, user, tokens)
    return user, access, refresh


def forgot_password(db: Database, email: str, mailer: Mailer, settings: Settings) -> Tuple[dict, str]:
    user = db[USERS].find_one({"email": email.strip().lower()})
    if not user:
        raise ApiError(404, "User not found")

    reset_token = new_token()
    db[USERS].update_one({"_id": user["_id"]}, {"$set": {
        "reset_password_token": sha256_hex(reset_token),
        "reset_password_expire": utcnow() + RESET_TOKEN_TTL,
        "updated_at": utcnow(),
    }})

    reset_url = f"{settings.client_url}/reset-password/{reset_token}"
    mailer.send(
        to=user["email"],
        subject="Reset your Storefront password",
        html=(f"<p>Hello {user['name']},</p><p>You requested to reset your password. Click the link "
              f'below to proceed:</p><p><a href="{reset_url}">{reset_url}</a></p>'
              "<p>If you did not request this, ignore this email.</p>"),
        text=f"Reset your password: {reset_url}",
    )
    return user, reset_token


def reset_password(db: Database, token: str, new_password: str, hasher: PasswordHasher) -> None:
    user = db[USERS].find_one({
        "reset_password_token": sha256_hex(token),
        "reset_password_expire": {"$gt": utcnow()},
    })
    if not user:
        raise ApiError(400, "Invalid or expired reset token")
    db[USERS].update_one({"_id": user["_id"]}, {
        "$set": {"hashed_password": hasher.hash(new_password), "updated_at": utcnow()},
        "$unset": {"reset_password_token": "", "reset_password_expire": "", "refresh_token": ""},
    })
    logger.info("Password reset for %s", user["email"])


def verify_email(db: Database, token: str) -> None:
    user = db[USERS].find_one({"verification_token": token})
    if not user:
        raise ApiError(400, "Invalid verification token")
    db[USERS].update_one({"_id": user["_id"]}, {
        "$set": {"is_verified": True, "updated_at": utcnow()},
        "$unset": {"verification_token": ""},
    })


def ensure_initial_admin(db: Database, settings: Settings, hasher: PasswordHasher) -> None:
    """Create or refresh the admin named by ADMIN_EMAIL / ADMIN_PASSWORD."""
    if not settings.admin_email or not settings.admin_password:
        logger.debug("Skipping admin bootstrap: ADMIN_EMAIL or ADMIN_PASSWORD not provided")
        return

    email = settings.admin_email.lower()
    existing = db[USERS].find_one({"email": email})
    if not existing:
        create_document(db, USERS, {
            "name": settings.admin_name or "Storefront Admin",
            "email": email,
            "hashed_password": hasher.hash(settings.admin_password),
            "phone": settings.admin_phone or "9999999999",
            "role": "admin",
            "is_verified": True,
            "is_blocked": False,
        })
        logger.info("Admin user bootstrapped at %s", email)
        return

    changes = {}
    if existing.get("role") != "admin":
        changes["role"] = "admin"
    if settings.admin_name and existing.get("name") != settings.admin_name:
        changes["name"] = settings.admin_name
    if settings.admin_phone and existing.get("phone") != settings.admin_phone:
        changes["phone"] = settings.admin_phone
    if not hasher.verify(settings.admin_password, existing.get("hashed_password")):
        changes["hashed_password"] = hasher.hash(settings.admin_password)
    if existing.get("is_blocked"):
        changes["is_blocked"] = False
    if not existing.get("is_verified"):
        changes["is_verified"] = True

    if changes:
        changes["updated_at"] = utcnow()
        db[USERS].update_one({"_id": existing["_id"]}, {"$set": changes})
        logger.info("Admin user at %s refreshed from environment config", email)
    else:
        logger.debug("Admin user at %s already up to date", email)
