import logging
from typing import Any, Dict, Optional

import requests

from .config import Settings
from .errors import ApiError

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Thin client over the Razorpay REST API (orders and refunds)."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self, settings: Settings, timeout: float = 10.0):
        self.key_id = settings.razorpay_key_id
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = (settings.razorpay_key_id, settings.razorpay_key_secret)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.BASE_URL}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Razorpay request to %s failed: %s", path, exc)
            raise ApiError(502, "Payment gateway unavailable") from exc
        if response.status_code >= 400:
            logger.error("Razorpay %s returned %s: %s", path, response.status_code, response.text[:200])
            raise ApiError(502, "Payment gateway rejected the request")
        return response.json()

    def create_order(self, amount_paise: int, currency: str = "INR", receipt: Optional[str] = None) -> Dict[str, Any]:
        payload = {"amount": amount_paise, "currency": currency, "payment_capture": 1}
        if receipt:
            payload["receipt"] = receipt
        order = self._post("/orders", payload)
        logger.info("Razorpay order %s created for %s %s", order.get("id"), amount_paise, currency)
        return order

    def refund(self, payment_id: str, amount_paise: int) -> Dict[str, Any]:
        refund = self._post(f"/payments/{payment_id}/refund", {"amount": amount_paise})
        logger.info("Razorpay refund %s issued for payment %s", refund.get("id"), payment_id)
        return refund
