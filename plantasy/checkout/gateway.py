from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from plantasy.core.config import Settings, get_settings
from plantasy.integrations.razorpay import (
    GatewayOrder,
    GatewayOrdersClient,
    PaymentGatewayError,
    build_gateway_client,
)

logger = logging.getLogger(__name__)


class InvalidAmountError(ValueError):
    pass


def create_gateway_order(client: GatewayOrdersClient, amount: Any, currency: str = "INR") -> GatewayOrder:
    """Create a gateway order for an amount in minor units (paisa)."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise InvalidAmountError("Invalid amount")
    return client.create_order(amount=amount, currency=currency)


class PaymentProxy(Protocol):
    def create_remote_order(self, amount_minor: int) -> str:
        ...


class HTTPPaymentProxy:
    """Calls the backend proxy, which holds the gateway secret."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.backend_api_base_url.rstrip("/")
        self.timeout = max(1, self.settings.razorpay_timeout_seconds)

    def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        with httpx.Client(timeout=self.timeout) as client:
            return client.request(method, url, headers={"Content-Type": "application/json"}, json=json_body)

    def create_remote_order(self, amount_minor: int) -> str:
        try:
            response = self._request("POST", "/api/razorpay/create-order", json_body={"amount": amount_minor})
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"payment proxy unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error("payment proxy error %s: %s", response.status_code, response.text[:500])
            raise PaymentGatewayError("Failed to create order")

        order_id = response.json().get("orderId")
        if not order_id:
            raise PaymentGatewayError("payment proxy response missing orderId")
        return str(order_id)


class InProcessPaymentProxy:
    """Creates gateway orders directly when proxy and storefront share a process."""

    def __init__(self, client: GatewayOrdersClient, currency: str = "INR"):
        self.client = client
        self.currency = currency

    def create_remote_order(self, amount_minor: int) -> str:
        return create_gateway_order(self.client, amount_minor, self.currency).id


def build_payment_proxy(settings: Settings | None = None) -> PaymentProxy:
    cfg = settings or get_settings()
    if cfg.payment_proxy_mode == "inprocess":
        return InProcessPaymentProxy(build_gateway_client(cfg), currency=cfg.currency)
    return HTTPPaymentProxy(cfg)
