"""Thin Stripe REST client.

Only the endpoints the portal uses are wrapped. Objects are returned as the
plain dicts Stripe sends back.
"""
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """Error returned by the Stripe API or raised while talking to it."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class WebhookSignatureError(StripeError):
    """Stripe-Signature header missing, malformed or not matching the payload."""


def encode_params(params: dict, prefix: Optional[str] = None) -> dict:
    """Flatten nested params into Stripe's bracket form encoding.

    {"items": [{"id": "si_1", "price": "p"}]} -> {"items[0][id]": "si_1", "items[0][price]": "p"}
    Lists of scalars use the `key[]` form, e.g. expand[].
    """
    flat: dict = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else key
        if value is None:
            continue
        if isinstance(value, dict):
            flat.update(encode_params(value, name))
        elif isinstance(value, (list, tuple)):
            if value and all(isinstance(item, dict) for item in value):
                for index, item in enumerate(value):
                    flat.update(encode_params(item, f"{name}[{index}]"))
            else:
                flat[f"{name}[]"] = [_scalar(item) for item in value]
        else:
            flat[name] = _scalar(value)
    return flat


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def timestamp_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to a naive UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc).replace(tzinfo=None)


def subscription_period(subscription: dict) -> tuple:
    """Return (current_period_start, current_period_end) as datetimes.

    Newer API versions carry the period on the subscription items instead of
    the subscription itself.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return timestamp_to_datetime(start), timestamp_to_datetime(end)


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> dict:
    """Verify a Stripe-Signature header and return the parsed event.

    The header looks like `t=1614556800,v1=<hex>[,v1=<hex>]`; the signed
    content is `"{t}.{payload}"` under HMAC-SHA256 with the endpoint secret.

    Raises:
        WebhookSignatureError: If the header is missing, stale or does not match
    """
    if not signature_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")

    timestamp = None
    signatures = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header")

    signed_payload = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()

    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("No signatures found matching the expected signature")

    current = time.time() if now is None else now
    try:
        age = current - int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Malformed Stripe-Signature timestamp")
    if tolerance_seconds and age > tolerance_seconds:
        raise WebhookSignatureError("Timestamp outside the tolerance zone")

    try:
        return json.loads(payload)
    except ValueError as e:
        raise WebhookSignatureError(f"Invalid webhook payload: {e}")


def sign_webhook_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for a payload (used by tests and tooling)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class StripeClient:
    """Minimal Stripe API client over httpx."""

    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com", timeout: float = 10.0):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, params: Optional[dict] = None) -> dict:
        if not self.secret_key:
            raise StripeError("Stripe secret key is not configured")

        url = f"{self.api_base}/v1/{path}"
        encoded = encode_params(params or {})
        try:
            if method == "GET":
                response = httpx.get(url, params=encoded, auth=(self.secret_key, ""), timeout=self.timeout)
            else:
                response = httpx.request(
                    method, url, data=encoded, auth=(self.secret_key, ""), timeout=self.timeout
                )
        except httpx.HTTPError as e:
            logger.error(f"Stripe request {method} {path} failed: {e}")
            raise StripeError(f"Stripe request failed: {e}")

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            message = error.get("message") or response.text
            logger.warning(f"Stripe {method} {path} returned {response.status_code}: {message}")
            raise StripeError(message, status_code=response.status_code, code=error.get("code"))

        return response.json()

    def find_customer_by_email(self, email: str) -> Optional[dict]:
        """Return the first customer registered with the email, if any."""
        result = self._request("GET", "customers", {"email": email, "limit": 1})
        customers = result.get("data") or []
        return customers[0] if customers else None

    def retrieve_customer(self, customer_id: str) -> dict:
        return self._request("GET", f"customers/{customer_id}")

    def list_subscriptions(self, customer_id: str, status: str = "all", limit: int = 100) -> list:
        result = self._request(
            "GET", "subscriptions", {"customer": customer_id, "status": status, "limit": limit}
        )
        return result.get("data") or []

    def retrieve_subscription(self, subscription_id: str, expand: Optional[list] = None) -> dict:
        return self._request("GET", f"subscriptions/{subscription_id}", {"expand": expand})

    def update_subscription(self, subscription_id: str, params: dict) -> dict:
        return self._request("POST", f"subscriptions/{subscription_id}", params)

    def cancel_subscription(self, subscription_id: str) -> dict:
        """Cancel immediately."""
        return self._request("DELETE", f"subscriptions/{subscription_id}")

    def list_prices(self) -> list:
        """Active recurring prices with their product expanded."""
        result = self._request(
            "GET",
            "prices",
            {"active": True, "type": "recurring", "limit": 100, "expand": ["data.product"]},
        )
        return result.get("data") or []

    def retrieve_invoice(self, invoice_id: str) -> dict:
        return self._request("GET", f"invoices/{invoice_id}")

    def create_refund(self, amount: int, charge: Optional[str] = None, payment_intent: Optional[str] = None,
                      reason: str = "requested_by_customer") -> dict:
        if not charge and not payment_intent:
            raise StripeError("A charge or payment intent is required for a refund")
        return self._request(
            "POST",
            "refunds",
            {"amount": amount, "charge": charge, "payment_intent": payment_intent, "reason": reason},
        )
