"""Delhivery logistics client.

Checkout availability wins over strict carrier validation: when the carrier
API cannot be reached, or answers with an error, serviceability is decided by
the local PIN code pattern instead. Pickup management is an admin action and
has no such fallback.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import httpx

from plantasy.core.config import Settings, get_settings
from plantasy.domain.base import money

logger = logging.getLogger(__name__)

PIN_CODE_PATTERN = re.compile(r"^\d{6}$")


class DeliveryServiceError(RuntimeError):
    pass


def is_valid_pin_code(pin_code: str) -> bool:
    return bool(PIN_CODE_PATTERN.fullmatch(pin_code or ""))


class DelhiveryService:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.delhivery_base_url.rstrip("/")
        self.timeout = max(1, self.settings.delhivery_timeout_seconds)

    @property
    def mock_mode(self) -> bool:
        return self.settings.delhivery_use_mock or not self.settings.delhivery_api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.delhivery_api_key}",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        with httpx.Client(timeout=self.timeout) as client:
            return client.request(method, url, headers=self._headers(), params=params, json=json_body)

    def verify_serviceability(self, pin_code: str) -> bool:
        if self.mock_mode:
            return is_valid_pin_code(pin_code)

        try:
            response = self._request("GET", f"/pincode-service/{pin_code}", params={"weight": 1})
        except httpx.HTTPError as exc:
            logger.warning("delhivery unreachable, using local pin check: pin=%s error=%s", pin_code, exc)
            return is_valid_pin_code(pin_code)

        if response.status_code >= 400:
            logger.warning(
                "delhivery error %s, using local pin check: pin=%s body=%s",
                response.status_code,
                pin_code,
                response.text[:200],
            )
            return is_valid_pin_code(pin_code)

        try:
            data = response.json()
        except ValueError:
            logger.warning("delhivery returned non-json payload, using local pin check: pin=%s", pin_code)
            return is_valid_pin_code(pin_code)

        return _is_serviceable(data, pin_code)

    def quote_charge(self, pin_code: str, weight: float = 0.5) -> Decimal:
        # Flat rate; weight is accepted for a future rated quote.
        if not self.verify_serviceability(pin_code):
            return money(0)
        return money(self.settings.delhivery_flat_charge)

    def create_pickup_request(
        self,
        order_id: str,
        client_warehouse: str,
        expected_package_count: int = 1,
        pickup_date: str | None = None,
        start_time: str = "09:00:00",
    ) -> dict[str, Any]:
        if self.mock_mode:
            logger.info("mock pickup created for order_id=%s", order_id)
            return {"mock": True, "request_id": f"mock_pur_{order_id}", "status": "created"}

        body = {
            "client_warehouse": client_warehouse,
            "pickup_date": pickup_date or (date.today() + timedelta(days=1)).isoformat(),
            "start_time": start_time,
            "expected_package_count": expected_package_count,
            "shipments": [{"awb": order_id, "order_id": order_id}],
        }
        response = self._send("POST", "/pickup_requests", body)
        logger.info("delhivery pickup created for order_id=%s", order_id)
        return response

    def cancel_pickup_request(self, pickup_request_id: str) -> dict[str, Any]:
        if self.mock_mode:
            logger.info("mock pickup cancelled: request_id=%s", pickup_request_id)
            return {"mock": True, "request_id": pickup_request_id, "status": "cancelled"}
        return self._send("DELETE", f"/pickup_requests/{pickup_request_id}", None)

    def _send(self, method: str, path: str, body: dict[str, Any] | None) -> dict[str, Any]:
        try:
            response = self._request(method, path, json_body=body)
        except httpx.HTTPError as exc:
            raise DeliveryServiceError(f"delhivery {method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise DeliveryServiceError(f"delhivery {method} {path} failed: {response.status_code} {response.text[:200]}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise DeliveryServiceError(f"delhivery {method} {path} returned a non-json body") from exc
        return payload if isinstance(payload, dict) else {"result": payload}


def _is_serviceable(data: Any, pin_code: str) -> bool:
    if not isinstance(data, dict):
        return False
    if data.get("serviceable") is True:
        return True
    codes = data.get("delivery_codes")
    if isinstance(codes, list) and codes and isinstance(codes[0], dict):
        postal = codes[0].get("postal_code") or {}
        return str(postal.get("pin", "")) == pin_code
    return False
