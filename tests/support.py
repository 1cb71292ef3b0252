"""
Helpers shared by the API tests: auth headers and gateway signatures.
Kept out of conftest so test modules can import them directly.
"""

import json

from ertha_exchange.models import User
from ertha_exchange.services.auth_service import issue_token
from ertha_exchange.utils.security import hmac_sha256_hex

API = "/api/v1"
PASSWORD = "correct-horse-1"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token(user)}"}


def payment_signature(order_id: str, payment_id: str) -> str:
    return hmac_sha256_hex(KEY_SECRET, f"{order_id}|{payment_id}")


def webhook_request(event: str, entity: dict, key: str = "payment"):
    """Serialized webhook body plus the headers Razorpay would send with it."""
    body = json.dumps({"event": event, "payload": {key: {"entity": entity}}}).encode("utf-8")
    signature = hmac_sha256_hex(WEBHOOK_SECRET, body)
    return body, {"x-razorpay-signature": signature, "content-type": "application/json"}
