import logging
from typing import Any, Dict, Optional

import requests
import resend
from resend.exceptions import ResendError

from .config import Settings
from .errors import ApiError

logger = logging.getLogger(__name__)


class Mailer:
    """Transactional email through Resend. Outside production, messages are only logged."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def api_key(self) -> str:
        # Resend's SMTP relay takes the API key as the password
        return (self.settings.resend_api_key or self.settings.email_password).strip()

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        s = self.settings
        if not s.is_production:
            logger.info("Email sending skipped (%s). Subject: %s, To: %s", s.app_env, subject, to)
            return

        payload: Dict[str, Any] = {"from": s.email_from, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except (ResendError, requests.RequestException) as exc:
            logger.error("Email delivery failed. Subject: %s, To: %s: %s", subject, to, exc)
            raise ApiError(502, "Email delivery failed") from exc

        if not isinstance(response, dict) or not response.get("id"):
            logger.error("Email delivery failed. Subject: %s, To: %s: %s", subject, to, response)
            raise ApiError(502, "Email delivery failed")
        logger.info("Email sent (%s). Subject: %s, To: %s", response["id"], subject, to)
