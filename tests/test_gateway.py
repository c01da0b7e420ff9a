from __future__ import annotations

import httpx
import pytest

from plantasy.api.routes_razorpay import get_gateway_client
from plantasy.checkout.gateway import (
    HTTPPaymentProxy,
    InProcessPaymentProxy,
    InvalidAmountError,
    build_payment_proxy,
    create_gateway_order,
)
from plantasy.core.config import get_settings
from plantasy.integrations.razorpay import (
    FakeRazorpayOrdersClient,
    PaymentGatewayError,
    RazorpayOrdersClient,
    payment_signature,
    verify_payment_signature,
)


@pytest.mark.parametrize("amount", [0, -100, 10.5, "1000", None, True])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(InvalidAmountError):
        create_gateway_order(FakeRazorpayOrdersClient(), amount)


def test_razorpay_client_sends_orders_api_payload(monkeypatch):
    client = RazorpayOrdersClient(get_settings())
    sent = {}

    def fake_request(method: str, path: str, **kwargs):
        sent.update(method=method, path=path, body=kwargs["json_body"])
        return {"id": "order_live_1", "amount": 110000, "currency": "INR", "receipt": kwargs["json_body"]["receipt"]}

    monkeypatch.setattr(client, "_request", fake_request)
    order = create_gateway_order(client, 110000)

    assert order.id == "order_live_1"
    assert sent["method"] == "POST"
    assert sent["path"] == "/v1/orders"
    assert sent["body"]["amount"] == 110000
    assert sent["body"]["currency"] == "INR"
    assert sent["body"]["payment_capture"] == 1
    assert sent["body"]["receipt"].startswith("receipt_")


def test_razorpay_client_requires_credentials():
    client = RazorpayOrdersClient(get_settings().model_copy(update={"razorpay_key_secret": None}))
    with pytest.raises(PaymentGatewayError):
        client.create_order(100)


def test_http_proxy_returns_gateway_order_id(monkeypatch):
    proxy = HTTPPaymentProxy(get_settings())
    calls = []

    def fake_request(method: str, path: str, **kwargs):
        calls.append((method, path, kwargs["json_body"]))
        return httpx.Response(200, json={"orderId": "order_proxy_1", "amount": 110000, "currency": "INR"})

    monkeypatch.setattr(proxy, "_request", fake_request)

    assert proxy.create_remote_order(110000) == "order_proxy_1"
    assert calls == [("POST", "/api/razorpay/create-order", {"amount": 110000})]


def test_http_proxy_raises_on_error_status(monkeypatch):
    proxy = HTTPPaymentProxy(get_settings())
    monkeypatch.setattr(
        proxy,
        "_request",
        lambda method, path, **kwargs: httpx.Response(500, json={"error": "Failed to create order"}),
    )
    with pytest.raises(PaymentGatewayError):
        proxy.create_remote_order(110000)


def test_proxy_mode_selection():
    assert isinstance(build_payment_proxy(get_settings()), InProcessPaymentProxy)
    http_settings = get_settings().model_copy(update={"payment_proxy_mode": "http"})
    assert isinstance(build_payment_proxy(http_settings), HTTPPaymentProxy)


def test_signature_helpers():
    signature = payment_signature("order_1", "pay_1", "secret")
    assert verify_payment_signature("order_1", "pay_1", signature, "secret")
    assert not verify_payment_signature("order_1", "pay_2", signature, "secret")
    assert not verify_payment_signature("order_1", "pay_1", "", "secret")


def test_create_order_route(client):
    response = client.post("/api/razorpay/create-order", json={"amount": 110000})
    assert response.status_code == 200
    payload = response.json()
    assert payload["orderId"].startswith("order_")
    assert payload["amount"] == 110000
    assert payload["currency"] == "INR"

    again = client.post("/api/razorpay/create-order", json={"amount": 110000})
    assert again.json()["orderId"] != payload["orderId"]


def test_create_order_route_validates_amount(client):
    for body in ({}, {"amount": 0}, {"amount": "100"}, {"amount": 99.5}):
        response = client.post("/api/razorpay/create-order", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid amount"}


def test_create_order_route_reports_gateway_failure(client):
    class BrokenClient:
        backend_name = "broken"

        def create_order(self, amount, currency="INR", receipt=None):
            raise PaymentGatewayError("Authentication failed")

    client.app.dependency_overrides[get_gateway_client] = lambda: BrokenClient()
    try:
        response = client.post("/api/razorpay/create-order", json={"amount": 500})
    finally:
        client.app.dependency_overrides.pop(get_gateway_client, None)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create order", "details": "Authentication failed"}
