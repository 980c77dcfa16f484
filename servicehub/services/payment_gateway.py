"""
Payment gateway client
Talks to the Stripe REST API (payment intents) and verifies webhook signatures
"""
import hashlib
import hmac
import json
import time
from typing import Optional, Dict, Any

import httpx

from ..config import settings


class WebhookSignatureError(Exception):
    pass


class PaymentGatewayClient:
    """Client for the payment intents API"""

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.base_url = (base_url or settings.stripe_api_base).rstrip("/")

        if not self.secret_key:
            raise ValueError("Payment gateway secret key is required")

    def _request(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        with httpx.Client(timeout=30.0, auth=(self.secret_key, "")) as client:
            response = client.request(method, url, data=data)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _flatten(prefix: str, values: Dict[str, Any]) -> Dict[str, str]:
        # Form encoding for nested params: metadata[bookingId]=...
        return {f"{prefix}[{k}]": str(v) for k, v in values.items()}

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "amount": int(round(amount * 100)),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        if description:
            data["description"] = description
        if metadata:
            data.update(self._flatten("metadata", metadata))
        return self._request("POST", "/payment_intents", data=data)

    def retrieve_payment_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/payment_intents/{intent_id}")


def get_gateway() -> Optional[PaymentGatewayClient]:
    if not settings.stripe_secret_key:
        return None
    return PaymentGatewayClient()


def construct_webhook_event(payload: bytes, sig_header: Optional[str], secret: Optional[str], tolerance: Optional[int] = None) -> Dict[str, Any]:
    """
    Verify a ``Stripe-Signature`` header (``t=<ts>,v1=<hex>``) and parse the event.

    Raises:
        WebhookSignatureError: missing secret/header, stale timestamp or digest mismatch
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")
    if not sig_header:
        raise WebhookSignatureError("Missing signature header")
    parts: Dict[str, list] = {}
    for item in sig_header.split(","):
        key, _, value = item.strip().partition("=")
        parts.setdefault(key, []).append(value)
    try:
        timestamp = int(parts.get("t", [""])[0])
    except ValueError:
        raise WebhookSignatureError("Invalid timestamp in signature header")
    tolerance = settings.webhook_tolerance_seconds if tolerance is None else tolerance
    if tolerance and abs(time.time() - timestamp) > tolerance:
        raise WebhookSignatureError("Timestamp outside the tolerance zone")
    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in parts.get("v1", [])):
        raise WebhookSignatureError("No signatures found matching the expected signature")
    try:
        return json.loads(payload.decode("utf-8"))
    except ValueError:
        raise WebhookSignatureError("Invalid payload")
