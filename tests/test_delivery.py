from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from plantasy.core.config import get_settings
from plantasy.integrations.delhivery import DelhiveryService, DeliveryServiceError


def _live_service() -> DelhiveryService:
    settings = get_settings().model_copy(update={"delhivery_use_mock": False, "delhivery_api_key": "dlv-test"})
    return DelhiveryService(settings)


def test_mock_mode_accepts_only_six_digit_pin_codes():
    service = DelhiveryService(get_settings())
    assert service.mock_mode is True

    assert service.verify_serviceability("682001") is True
    assert service.verify_serviceability("68200") is False
    assert service.verify_serviceability("6820011") is False
    assert service.verify_serviceability("68A001") is False
    assert service.verify_serviceability("") is False


def test_quote_charge_is_flat_when_serviceable_and_zero_otherwise():
    service = DelhiveryService(get_settings())
    assert service.quote_charge("560001") == Decimal("50.00")
    assert service.quote_charge("5600") == Decimal("0.00")


def test_live_mode_reads_carrier_response(monkeypatch):
    service = _live_service()
    calls = []

    def fake_request(method: str, path: str, **kwargs):
        calls.append((method, path, kwargs.get("params")))
        pin = path.rsplit("/", 1)[-1]
        if pin == "110001":
            return httpx.Response(200, json={"delivery_codes": [{"postal_code": {"pin": "110001"}}]})
        return httpx.Response(200, json={"delivery_codes": []})

    monkeypatch.setattr(service, "_request", fake_request)

    assert service.verify_serviceability("110001") is True
    # A well-formed code the carrier does not serve is rejected.
    assert service.verify_serviceability("999999") is False
    assert calls[0] == ("GET", "/pincode-service/110001", {"weight": 1})


def test_live_mode_falls_back_to_pattern_when_carrier_unreachable(monkeypatch):
    service = _live_service()

    def broken_request(method: str, path: str, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(service, "_request", broken_request)

    assert service.verify_serviceability("682001") is True
    assert service.verify_serviceability("6820") is False


def test_live_mode_falls_back_to_pattern_on_error_status(monkeypatch):
    service = _live_service()
    monkeypatch.setattr(service, "_request", lambda method, path, **kwargs: httpx.Response(503, text="unavailable"))

    assert service.verify_serviceability("400001") is True
    assert service.verify_serviceability("40000") is False


def test_pickup_requests_are_simulated_in_mock_mode():
    service = DelhiveryService(get_settings())

    created = service.create_pickup_request("OD12345678", "Plantasy Warehouse")
    assert created == {"mock": True, "request_id": "mock_pur_OD12345678", "status": "created"}

    cancelled = service.cancel_pickup_request("mock_pur_OD12345678")
    assert cancelled["status"] == "cancelled"


def test_live_pickup_errors_are_raised(monkeypatch):
    service = _live_service()
    sent = []

    def fake_request(method: str, path: str, **kwargs):
        sent.append((method, path, kwargs.get("json_body")))
        return httpx.Response(400, text="bad warehouse")

    monkeypatch.setattr(service, "_request", fake_request)

    with pytest.raises(DeliveryServiceError):
        service.create_pickup_request("OD12345678", "Nowhere", pickup_date="2026-01-02")

    method, path, body = sent[0]
    assert (method, path) == ("POST", "/pickup_requests")
    assert body["pickup_date"] == "2026-01-02"
    assert body["shipments"] == [{"awb": "OD12345678", "order_id": "OD12345678"}]


def test_live_pickup_with_non_json_body_is_a_service_error(monkeypatch):
    service = _live_service()
    monkeypatch.setattr(service, "_request", lambda method, path, **kwargs: httpx.Response(200, text="<html>ok</html>"))

    with pytest.raises(DeliveryServiceError):
        service.create_pickup_request("OD12345678", "Plantasy Kochi")
    with pytest.raises(DeliveryServiceError):
        service.cancel_pickup_request("pur_1")
