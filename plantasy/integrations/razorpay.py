from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Protocol
from uuid import uuid4

import httpx

from plantasy.core.config import Settings, get_settings
from plantasy.core.timeutil import epoch_millis

logger = logging.getLogger(__name__)


class PaymentGatewayError(RuntimeError):
    pass


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"


class GatewayOrdersClient(Protocol):
    backend_name: str

    def create_order(self, amount: int, currency: str = "INR", receipt: str | None = None) -> GatewayOrder:
        ...


def _receipt(receipt: str | None) -> str:
    return receipt or f"receipt_{epoch_millis()}"


class RazorpayOrdersClient:
    """Server-side Razorpay Orders API client; holds the key secret."""

    backend_name = "razorpay"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.razorpay_api_base_url.rstrip("/")
        self.timeout = max(1, self.settings.razorpay_timeout_seconds)

    def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> dict[str, Any]:
        key_id = self.settings.razorpay_key_id
        key_secret = self.settings.razorpay_key_secret
        if not key_id or not key_secret:
            raise PaymentGatewayError("razorpay credentials are not configured")

        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, auth=(key_id, key_secret)) as client:
                response = client.request(method, url, json=json_body)
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"razorpay request failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                detail = response.json().get("error", {}).get("description")
            except ValueError:
                detail = None
            raise PaymentGatewayError(detail or f"razorpay returned {response.status_code}")
        return response.json()

    def create_order(self, amount: int, currency: str = "INR", receipt: str | None = None) -> GatewayOrder:
        payload = self._request(
            "POST",
            "/v1/orders",
            json_body={
                "amount": amount,
                "currency": currency,
                "receipt": _receipt(receipt),
                "payment_capture": 1,
            },
        )
        order = GatewayOrder(
            id=str(payload["id"]),
            amount=int(payload.get("amount", amount)),
            currency=str(payload.get("currency", currency)),
            receipt=str(payload.get("receipt", "")),
            status=str(payload.get("status", "created")),
        )
        logger.info("razorpay order created: id=%s amount=%s", order.id, order.amount)
        return order


class FakeRazorpayOrdersClient:
    """Issues local gateway order ids; used for development and tests."""

    backend_name = "fake"

    def __init__(self) -> None:
        self.created: list[GatewayOrder] = []

    def create_order(self, amount: int, currency: str = "INR", receipt: str | None = None) -> GatewayOrder:
        order = GatewayOrder(id=f"order_{uuid4().hex[:14]}", amount=amount, currency=currency, receipt=_receipt(receipt))
        self.created.append(order)
        return order


def build_gateway_client(settings: Settings | None = None) -> GatewayOrdersClient:
    cfg = settings or get_settings()
    if cfg.razorpay_mode == "fake":
        return FakeRazorpayOrdersClient()
    return RazorpayOrdersClient(cfg)


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    return hmac.compare_digest(payment_signature(order_id, payment_id, secret), signature or "")
