import logging
import re
from datetime import timedelta
from typing import Literal, Optional

from pydantic import EmailStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
APP_VERSION = "0.1.0"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value) -> timedelta:
    """Parse ``15m`` / ``7d`` / ``3600`` style durations."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int):
        return timedelta(seconds=value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    """Process configuration, read once at startup and passed around explicitly."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    app_env: Literal["development", "test", "production"] = "development"
    port: int = 5000

    database_url: str
    database_name: str = "storefront"

    jwt_access_secret: str
    jwt_refresh_secret: str
    jwt_access_expire: timedelta = timedelta(minutes=15)
    jwt_refresh_expire: timedelta = timedelta(days=7)
    bcrypt_rounds: int = 10

    razorpay_key_id: str
    razorpay_key_secret: str
    razorpay_webhook_secret: str

    email_host: str
    email_port: int = 587
    email_user: str
    email_password: str
    email_from: EmailStr
    resend_api_key: Optional[str] = None

    client_url: str

    admin_email: Optional[EmailStr] = None
    admin_password: Optional[str] = None
    admin_name: Optional[str] = None
    admin_phone: Optional[str] = None

    log_dir: Optional[str] = None

    @field_validator("jwt_access_expire", "jwt_refresh_expire", mode="before")
    @classmethod
    def _duration(cls, v):
        return parse_duration(v)

    @field_validator(
        "database_url", "jwt_access_secret", "jwt_refresh_secret", "razorpay_key_id",
        "razorpay_key_secret", "razorpay_webhook_secret", "email_host", "email_user", "email_password",
    )
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("client_url")
    @classmethod
    def _client_url(cls, v: str) -> str:
        if not re.match(r"^https?://[^\s/]+", v or ""):
            raise ValueError("must be a valid http(s) URL")
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


def load_settings(**overrides) -> Settings:
    """Build the settings from the environment, exiting the process when invalid."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = {".".join(str(p) for p in err["loc"]): err["msg"] for err in exc.errors()}
        logger.error("Invalid or missing environment variables: %s", fields)
        raise SystemExit(1) from exc
