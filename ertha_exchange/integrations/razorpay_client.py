# ertha_exchange/integrations/razorpay_client.py
"""
Thin Razorpay REST client (orders, payments, refunds) plus signature checks.

Without a key id/secret the client runs in demo mode: orders and refunds are
fabricated locally so the purchase flow can be exercised end to end.
"""

import logging
import uuid
from functools import lru_cache
from typing import Any, Dict, Optional

import requests

from ertha_exchange.config import Settings, get_settings
from ertha_exchange.errors import PaymentGatewayError
from ertha_exchange.utils.security import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"
DEMO_KEY_ID = "rzp_test_demo"
DEMO_KEY_SECRET = "ertha-demo-secret"


class RazorpayClient:
    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        timeout_seconds: int = 15,
        base_url: str = RAZORPAY_API_BASE,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.demo_mode = not (key_id and key_secret)
        self.key_id = key_id or DEMO_KEY_ID
        self.key_secret = key_secret or DEMO_KEY_SECRET
        self.webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = (self.key_id, self.key_secret)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayClient":
        client = cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            timeout_seconds=settings.gateway_timeout_seconds,
        )
        if client.demo_mode:
            logger.warning("Razorpay credentials missing; payment gateway running in demo mode")
        return client

    @property
    def mode(self) -> str:
        return "demo" if self.demo_mode else "live"

    # --------------------------
    # REST calls
    # --------------------------
    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            logger.error("Razorpay %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError("Payment gateway unavailable") from exc

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            logger.error("Razorpay %s %s returned %s: %s", method, path,
                         response.status_code, error.get("description"))
            raise PaymentGatewayError(error.get("description") or "Payment gateway request failed")
        return response.json()

    def create_order(self, *, amount_paise: int, currency: str, receipt: str,
                     notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.demo_mode:
            return {
                "id": f"order_demo_{uuid.uuid4().hex[:14]}",
                "entity": "order",
                "amount": amount_paise,
                "currency": currency,
                "receipt": receipt,
                "status": "created",
                "notes": notes or {},
            }
        return self._request("POST", "/orders", {
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        })

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        if self.demo_mode:
            return {"id": payment_id, "entity": "payment", "status": "captured", "method": "demo"}
        return self._request("GET", f"/payments/{payment_id}")

    def refund(self, payment_id: str, *, amount_paise: Optional[int] = None,
               notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.demo_mode:
            return {
                "id": f"rfnd_demo_{uuid.uuid4().hex[:14]}",
                "entity": "refund",
                "payment_id": payment_id,
                "amount": amount_paise,
                "status": "processed",
            }
        payload: Dict[str, Any] = {"notes": notes or {}}
        if amount_paise is not None:
            payload["amount"] = amount_paise
        return self._request("POST", f"/payments/{payment_id}/refund", payload)

    # --------------------------
    # Signatures
    # --------------------------
    def payment_signature(self, order_id: str, payment_id: str) -> str:
        return hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}")

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signatures_match(self.payment_signature(order_id, payment_id), signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret:
            return False
        return signatures_match(hmac_sha256_hex(self.webhook_secret, body), signature)


@lru_cache(maxsize=1)
def get_razorpay_client() -> RazorpayClient:
    return RazorpayClient.from_settings(get_settings())
