"""Bridge to the gateway's in-browser checkout widget.

The widget reports completion through callbacks. Each opened widget gets a
``PaymentHandle`` whose future is settled by whichever callback arrives first;
a dismissed widget settles it as a failure. Later deliveries are ignored.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from plantasy.core.config import Settings, get_settings
from plantasy.integrations.razorpay import verify_payment_signature

logger = logging.getLogger(__name__)

PAYMENT_CANCELLED = "Payment cancelled by user"


@dataclass(frozen=True)
class PaymentContact:
    email: str = ""
    phone: str = ""


@dataclass(frozen=True)
class PaymentSuccess:
    payment_id: str
    gateway_order_id: str
    signature: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentFailure(Exception):
    def __init__(self, message: str, code: str | None = None, dismissed: bool = False, raw: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.dismissed = dismissed
        self.raw = raw or {}


SuccessCallback = Callable[[PaymentSuccess], None]
FailureCallback = Callable[[PaymentFailure], None]


class CheckoutScriptLoader:
    """Loads the gateway checkout script once per process."""

    def __init__(self, script_url: str, probe: bool = True, timeout: int = 10):
        self.script_url = script_url
        self.probe = probe
        self.timeout = timeout
        self._loaded = False
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def script_tag(self) -> str:
        return f'<script src="{self.script_url}" async></script>'

    def _fetch(self) -> bool:
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            response = client.get(self.script_url)
        return response.status_code < 400

    def load(self) -> bool:
        with self._lock:
            if self._loaded:
                return True
            if not self.probe:
                self._loaded = True
                return True
            try:
                ok = self._fetch()
            except httpx.HTTPError as exc:
                logger.error("failed to load checkout script %s: %s", self.script_url, exc)
                return False
            if not ok:
                logger.error("checkout script %s not available", self.script_url)
                return False
            self._loaded = True
            return True


class PaymentHandle:
    def __init__(
        self,
        gateway_order_id: str,
        amount_minor: int,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ):
        self.gateway_order_id = gateway_order_id
        self.amount_minor = amount_minor
        self.options: dict[str, Any] = {}
        self.future: Future[PaymentSuccess] = Future()
        self._on_success = on_success
        self._on_failure = on_failure
        self._lock = threading.Lock()

    @property
    def settled(self) -> bool:
        return self.future.done()

    def resolve_success(self, success: PaymentSuccess) -> bool:
        with self._lock:
            if self.future.done():
                logger.warning("ignoring late success for gateway_order_id=%s", self.gateway_order_id)
                return False
            self.future.set_result(success)
        self._invoke(self._on_success, success)
        return True

    def resolve_failure(self, failure: PaymentFailure) -> bool:
        with self._lock:
            if self.future.done():
                logger.warning("ignoring late failure for gateway_order_id=%s", self.gateway_order_id)
                return False
            self.future.set_exception(failure)
        self._invoke(self._on_failure, failure)
        return True

    def cancel(self) -> bool:
        with self._lock:
            return self.future.cancel()

    def _invoke(self, callback: Callable[[Any], None], outcome: Any) -> None:
        try:
            callback(outcome)
        except Exception:
            logger.exception("payment callback raised for gateway_order_id=%s", self.gateway_order_id)


class PaymentWidget:
    def __init__(self, settings: Settings | None = None, loader: CheckoutScriptLoader | None = None):
        self.settings = settings or get_settings()
        self.loader = loader or CheckoutScriptLoader(
            self.settings.razorpay_script_url,
            probe=self.settings.razorpay_probe_script,
        )
        self._handles: dict[str, PaymentHandle] = {}
        self._lock = threading.Lock()

    def open(
        self,
        gateway_order_id: str,
        amount_minor: int,
        contact: PaymentContact,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> PaymentHandle:
        handle = PaymentHandle(gateway_order_id, amount_minor, on_success, on_failure)

        if not self.loader.load():
            handle.resolve_failure(PaymentFailure("Failed to load Razorpay", code="SCRIPT_LOAD_FAILED"))
            return handle

        key_id = self.settings.razorpay_key_id
        if not key_id:
            logger.error("razorpay key id is not configured")
            handle.resolve_failure(PaymentFailure("Razorpay key not configured", code="KEY_MISSING"))
            return handle

        handle.options = {
            "key": key_id,
            "amount": amount_minor,
            "currency": self.settings.currency,
            "name": self.settings.checkout_display_name,
            "description": "Order Payment",
            "order_id": gateway_order_id,
            "prefill": {"email": contact.email, "contact": contact.phone},
            "theme": {"color": self.settings.checkout_theme_color},
            "script": self.loader.script_tag,
        }
        with self._lock:
            self._handles[gateway_order_id] = handle
        logger.info("payment widget opened: gateway_order_id=%s amount=%s paisa", gateway_order_id, amount_minor)
        return handle

    def get_handle(self, gateway_order_id: str) -> PaymentHandle | None:
        with self._lock:
            return self._handles.get(gateway_order_id)

    def _take(self, gateway_order_id: str) -> PaymentHandle | None:
        with self._lock:
            return self._handles.pop(gateway_order_id, None)

    def discard(self, gateway_order_id: str) -> None:
        """Forget an open widget; later deliveries for it are ignored."""
        handle = self._take(gateway_order_id)
        if handle is not None:
            handle.cancel()

    @property
    def open_handles(self) -> int:
        with self._lock:
            return len(self._handles)

    def deliver_success(self, gateway_order_id: str, response: dict[str, Any]) -> bool:
        handle = self._take(gateway_order_id)
        if handle is None:
            logger.warning("no open payment widget for gateway_order_id=%s", gateway_order_id)
            return False

        payment_id = str(response.get("razorpay_payment_id") or "")
        signature = str(response.get("razorpay_signature") or "")
        secret = self.settings.razorpay_key_secret
        if not payment_id:
            return handle.resolve_failure(PaymentFailure("Payment response missing payment id", code="BAD_RESPONSE", raw=response))
        if secret and not verify_payment_signature(gateway_order_id, payment_id, signature, secret):
            return handle.resolve_failure(
                PaymentFailure("Payment signature verification failed", code="BAD_SIGNATURE", raw=response)
            )
        return handle.resolve_success(
            PaymentSuccess(payment_id=payment_id, gateway_order_id=gateway_order_id, signature=signature, raw=response)
        )

    def deliver_failure(self, gateway_order_id: str, error: dict[str, Any] | None = None, dismissed: bool = False) -> bool:
        handle = self._take(gateway_order_id)
        if handle is None:
            logger.warning("no open payment widget for gateway_order_id=%s", gateway_order_id)
            return False
        if dismissed:
            failure = PaymentFailure(PAYMENT_CANCELLED, code="DISMISSED", dismissed=True)
        else:
            error = error or {}
            failure = PaymentFailure(
                str(error.get("description") or "Payment failed. Please try again."),
                code=error.get("code"),
                raw=error,
            )
        return handle.resolve_failure(failure)
