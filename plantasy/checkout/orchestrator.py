"""Checkout workflow: delivery check, gateway order, payment widget, order write.

An attempt moves ``idle -> pending -> success`` or ``idle -> pending ->
failed``. The pending steps run strictly in order because each consumes the
previous step's output. Payment completion arrives later through the widget
callbacks. This class is the only place that turns errors into customer-facing
messages; nothing raised inside the flow escapes to the caller.

Each persistence step opens its own unit of work, like the document store it
models: a payment record can exist without its order. A submitted attempt is
never deduplicated; every submission creates a fresh order id and gateway
order, and an abandoned widget leaves its gateway order behind.

Attempts live in process memory. Settled attempts are dropped once they are
older than ``checkout_attempt_ttl_seconds``; unsettled ones older than
``checkout_pending_ttl_seconds`` are failed as expired and their widget handle
is discarded.
"""

from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache, partial
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from plantasy.checkout.gateway import PaymentProxy, build_payment_proxy
from plantasy.checkout.session import SessionContext
from plantasy.checkout.widget import PaymentContact, PaymentFailure, PaymentSuccess, PaymentWidget
from plantasy.core.config import Settings, get_settings
from plantasy.core.timeutil import now_utc, to_iso
from plantasy.domain.base import money, money_number
from plantasy.domain.cart import CartLine, CartStore
from plantasy.domain.coupons import Coupon, CouponRejected, CouponService
from plantasy.domain.invoices import InvoiceService
from plantasy.domain.orders import (
    PAYMENT_METHOD_RAZORPAY,
    PAYMENT_STATUS_PAID,
    DeliveryAddress,
    Order,
    OrderItem,
    OrderPayment,
    OrderService,
    OrderStatus,
    OrderTimestamps,
    generate_failed_payment_id,
    generate_invoice_id,
    generate_order_id,
)
from plantasy.domain.payments import PaymentRecord, PaymentRecordStatus, PaymentService
from plantasy.domain.pricing import PricingBreakdown, price_cart
from plantasy.integrations.delhivery import DelhiveryService
from plantasy.persistence import pg
from plantasy.persistence.documents import DocumentStore
from plantasy.storage.objects import ObjectStore, build_object_store

logger = logging.getLogger(__name__)

SUPPORT_TICKETS = "support_tickets"

MSG_LOGIN_REQUIRED = "Please login to continue"
MSG_EMPTY_CART = "Your cart is empty"
MSG_ADDRESS_REQUIRED = "Please provide a delivery address"
MSG_NOT_SERVICEABLE = "Delivery not available for this location"
MSG_CHECKOUT_ERROR = "Error initiating checkout. Please try again."
MSG_PAYMENT_FAILED = "Payment failed. Please try again."
MSG_PAYMENT_EXPIRED = "Payment session expired. Please try again."
MSG_ORDER_WRITE_FAILED = "Error creating order. Please contact support."
MSG_ORDER_PLACED = "Order placed successfully!"


class CheckoutStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class CheckoutValidationError(ValueError):
    pass


class CheckoutStepError(RuntimeError):
    pass


class AttemptNotFoundError(LookupError):
    pass


@dataclass
class CheckoutAttempt:
    attempt_id: str
    uid: str | None
    status: CheckoutStatus = CheckoutStatus.IDLE
    message: str = ""
    order_id: str | None = None
    gateway_order_id: str | None = None
    amount_minor: int | None = None
    payment_id: str | None = None
    pricing: PricingBreakdown | None = None
    address: DeliveryAddress | None = None
    items: list[CartLine] = field(default_factory=list)
    coupon: Coupon | None = None
    widget_options: dict[str, Any] = field(default_factory=dict)
    email: str = ""
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    @property
    def is_terminal(self) -> bool:
        return self.status in {CheckoutStatus.SUCCESS, CheckoutStatus.FAILED}

    def to_dict(self) -> dict[str, Any]:
        return {
            "attemptId": self.attempt_id,
            "status": self.status.value,
            "message": self.message,
            "orderId": self.order_id,
            "gatewayOrderId": self.gateway_order_id,
            "amountMinor": self.amount_minor,
            "paymentId": self.payment_id,
            "pricing": self.pricing.to_document() if self.pricing else None,
            "widget": self.widget_options or None,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }


SessionFactory = Callable[[], AbstractContextManager[Session]]


class CheckoutOrchestrator:
    def __init__(
        self,
        delivery: DelhiveryService,
        proxy: PaymentProxy,
        widget: PaymentWidget,
        settings: Settings | None = None,
        session_factory: SessionFactory | None = None,
        object_store: ObjectStore | None = None,
    ):
        self.settings = settings or get_settings()
        self.delivery = delivery
        self.proxy = proxy
        self.widget = widget
        # Resolved on use so tests can swap the engine behind pg.session_scope.
        self.session_factory = session_factory or (lambda: pg.session_scope())
        self._object_store = object_store
        self._attempts: dict[str, CheckoutAttempt] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CheckoutOrchestrator":
        cfg = settings or get_settings()
        return cls(
            delivery=DelhiveryService(cfg),
            proxy=build_payment_proxy(cfg),
            widget=PaymentWidget(cfg),
            settings=cfg,
        )

    @property
    def object_store(self) -> ObjectStore:
        if self._object_store is None:
            self._object_store = build_object_store(self.settings)
        return self._object_store

    # attempts -------------------------------------------------------------

    def get_attempt(self, attempt_id: str) -> CheckoutAttempt:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"checkout attempt {attempt_id} not found")
        return attempt

    def _register(self, attempt: CheckoutAttempt) -> None:
        self._prune()
        with self._lock:
            self._attempts[attempt.attempt_id] = attempt

    def _prune(self, now: datetime | None = None) -> None:
        now = now or now_utc()
        settled_cutoff = now - timedelta(seconds=self.settings.checkout_attempt_ttl_seconds)
        pending_cutoff = now - timedelta(seconds=self.settings.checkout_pending_ttl_seconds)
        with self._lock:
            for attempt_id, attempt in list(self._attempts.items()):
                if attempt.is_terminal and attempt.updated_at < settled_cutoff:
                    del self._attempts[attempt_id]
            stale = [a for a in self._attempts.values() if not a.is_terminal and a.updated_at < pending_cutoff]

        for attempt in stale:
            logger.warning(
                "expiring unsettled checkout attempt=%s gateway_order_id=%s",
                attempt.attempt_id,
                attempt.gateway_order_id,
            )
            self._fail(attempt, MSG_PAYMENT_EXPIRED)
            with self._lock:
                self._attempts.pop(attempt.attempt_id, None)

    def _transition(self, attempt: CheckoutAttempt, status: CheckoutStatus, message: str = "") -> bool:
        with self._lock:
            if attempt.is_terminal:
                logger.warning(
                    "attempt %s already %s; ignoring move to %s",
                    attempt.attempt_id,
                    attempt.status.value,
                    status.value,
                )
                return False
            attempt.status = status
            attempt.message = message
            attempt.updated_at = now_utc()
        return True

    # submission -----------------------------------------------------------

    def handle_checkout(
        self,
        context: SessionContext,
        address: DeliveryAddress | None,
        coupon_code: str = "",
    ) -> CheckoutAttempt:
        attempt = CheckoutAttempt(
            attempt_id=uuid4().hex,
            uid=context.identity.uid if context.is_authenticated else None,
        )
        self._register(attempt)

        try:
            self._check_guards(context, address)
        except CheckoutValidationError as exc:
            # Rejected before any network call; nothing is persisted.
            self._transition(attempt, CheckoutStatus.FAILED, str(exc))
            return attempt

        attempt.address = address
        attempt.email = context.email
        attempt.items = context.cart.snapshot()
        attempt.order_id = generate_order_id()
        self._transition(attempt, CheckoutStatus.PENDING)
        logger.info("checkout started: attempt=%s order_id=%s uid=%s", attempt.attempt_id, attempt.order_id, attempt.uid)

        try:
            self._run_pending_steps(attempt, context, coupon_code)
        except CheckoutStepError as exc:
            logger.warning("checkout step failed: attempt=%s reason=%s", attempt.attempt_id, exc)
            self._fail(attempt, str(exc))
        except Exception:
            logger.exception("checkout error: attempt=%s", attempt.attempt_id)
            self._fail(attempt, MSG_CHECKOUT_ERROR)
        return attempt

    def _check_guards(self, context: SessionContext, address: DeliveryAddress | None) -> None:
        if not context.is_authenticated:
            raise CheckoutValidationError(MSG_LOGIN_REQUIRED)
        if context.cart.is_empty:
            raise CheckoutValidationError(MSG_EMPTY_CART)
        if address is None:
            raise CheckoutValidationError(MSG_ADDRESS_REQUIRED)

    def _run_pending_steps(self, attempt: CheckoutAttempt, context: SessionContext, coupon_code: str) -> None:
        address = attempt.address
        assert address is not None

        # Earlier address-step checks are advisory; serviceability is re-checked here.
        if not self.delivery.verify_serviceability(address.zip):
            raise CheckoutStepError(MSG_NOT_SERVICEABLE)
        shipping = self.delivery.quote_charge(address.zip)

        discount, coupon = self._coupon_discount(context, coupon_code)
        attempt.coupon = coupon
        attempt.pricing = price_cart(
            subtotal=context.cart.subtotal,
            tax_rate=self.settings.tax_rate,
            shipping_charge=shipping,
            discount=discount,
            coupon_code=coupon.code if coupon else "",
        )
        attempt.amount_minor = attempt.pricing.amount_minor
        logger.info(
            "checkout priced: attempt=%s grand_total=%s amount_minor=%s",
            attempt.attempt_id,
            attempt.pricing.grand_total,
            attempt.amount_minor,
        )

        attempt.gateway_order_id = self.proxy.create_remote_order(attempt.amount_minor)

        handle = self.widget.open(
            attempt.gateway_order_id,
            attempt.amount_minor,
            PaymentContact(email=attempt.email, phone=address.phone),
            on_success=partial(self._handle_payment_success, attempt.attempt_id),
            on_failure=partial(self._handle_payment_error, attempt.attempt_id),
        )
        attempt.widget_options = dict(handle.options)

    def _coupon_discount(self, context: SessionContext, coupon_code: str) -> tuple[Decimal, Coupon | None]:
        if not coupon_code or not coupon_code.strip():
            return Decimal("0"), None
        with self.session_factory() as session:
            coupons = CouponService(DocumentStore(session))
            coupon = coupons.find_by_code(coupon_code)
            if coupon is None:
                raise CheckoutStepError(f"Coupon {coupon_code.strip().upper()} is not valid")
            try:
                return coupons.discount_for(coupon, context.cart), coupon
            except CouponRejected as exc:
                raise CheckoutStepError(str(exc)) from exc

    # payment completion ---------------------------------------------------

    def complete_payment(self, attempt_id: str, response: dict[str, Any]) -> CheckoutAttempt:
        attempt = self.get_attempt(attempt_id)
        if attempt.gateway_order_id:
            self.widget.deliver_success(attempt.gateway_order_id, response)
        return attempt

    def fail_payment(
        self,
        attempt_id: str,
        error: dict[str, Any] | None = None,
        dismissed: bool = False,
    ) -> CheckoutAttempt:
        attempt = self.get_attempt(attempt_id)
        if attempt.gateway_order_id:
            self.widget.deliver_failure(attempt.gateway_order_id, error=error, dismissed=dismissed)
        return attempt

    def _handle_payment_success(self, attempt_id: str, success: PaymentSuccess) -> None:
        attempt = self.get_attempt(attempt_id)
        attempt.payment_id = success.payment_id
        try:
            self._store_success_payment(attempt, success)
            order = self._build_order(attempt, success)
            with self.session_factory() as session:
                OrderService(DocumentStore(session)).create_order(order)
        except Exception:
            # Money has moved but the order did not record.
            logger.exception(
                "order write failed after payment: attempt=%s order_id=%s payment_id=%s",
                attempt.attempt_id,
                attempt.order_id,
                success.payment_id,
            )
            self._escalate(attempt, success)
            self._transition(attempt, CheckoutStatus.FAILED, MSG_ORDER_WRITE_FAILED)
            return

        self._after_order(attempt, order)
        self._transition(attempt, CheckoutStatus.SUCCESS, MSG_ORDER_PLACED)
        logger.info("checkout succeeded: attempt=%s order_id=%s", attempt.attempt_id, attempt.order_id)

    def _handle_payment_error(self, attempt_id: str, failure: PaymentFailure) -> None:
        attempt = self.get_attempt(attempt_id)
        logger.warning(
            "payment failed: attempt=%s code=%s dismissed=%s message=%s",
            attempt.attempt_id,
            failure.code,
            failure.dismissed,
            failure.message,
        )
        self._fail(attempt, failure.message or MSG_PAYMENT_FAILED)

    # persistence steps ----------------------------------------------------

    def _store_success_payment(self, attempt: CheckoutAttempt, success: PaymentSuccess) -> None:
        assert attempt.pricing is not None
        record = PaymentRecord(
            uid=attempt.uid or "",
            payment_id=success.payment_id,
            transaction_id=success.payment_id,
            order_id=attempt.order_id or "",
            amount=attempt.pricing.grand_total,
            payment_method="Razorpay",
            transaction_ref=success.gateway_order_id,
            status=PaymentRecordStatus.SUCCESS,
        )
        try:
            receipt = self.object_store.put_json(f"payments/{success.payment_id}.json", success.raw)
            record = record.model_copy(
                update={"receipt_object_key": receipt.object_key, "receipt_hash": receipt.content_hash}
            )
        except Exception:
            logger.exception("failed to archive gateway receipt for payment_id=%s", success.payment_id)

        with self.session_factory() as session:
            PaymentService(DocumentStore(session)).store_payment_details(record)

    def _build_order(self, attempt: CheckoutAttempt, success: PaymentSuccess) -> Order:
        assert attempt.pricing is not None and attempt.address is not None
        now = now_utc()
        return Order(
            order_id=attempt.order_id or "",
            uid=attempt.uid or "",
            invoice_id=generate_invoice_id(),
            order_status=OrderStatus.PENDING,
            is_cancelable=True,
            is_return_eligible=True,
            delivery_address=attempt.address,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    product_name=line.name,
                    product_image=line.cover_image,
                    price=line.price,
                    quantity=line.quantity,
                    total_price=line.line_total,
                    type=line.item_type,
                )
                for line in attempt.items
            ],
            payment=OrderPayment(
                payment_id=success.payment_id,
                payment_method=PAYMENT_METHOD_RAZORPAY,
                payment_status=PAYMENT_STATUS_PAID,
                transaction_ref=success.gateway_order_id,
            ),
            pricing=attempt.pricing,
            timestamps=OrderTimestamps(ordered_at=now, updated_at=now),
        )

    def _after_order(self, attempt: CheckoutAttempt, order: Order) -> None:
        """Follow-up writes once the order exists; none of them can undo it."""
        purchased = [line.product_id for line in attempt.items]
        try:
            with self.session_factory() as session:
                store = DocumentStore(session)
                carts = CartStore(store)
                cart = carts.load(order.uid)
                cart.remove_many(purchased)
                carts.save(order.uid, cart)
                if attempt.coupon is not None:
                    CouponService(store).record_redemption(attempt.coupon)
        except Exception:
            logger.exception("failed to clear cart after order_id=%s", order.order_id)

        try:
            InvoiceService(self.object_store).archive(order)
        except Exception:
            logger.exception("failed to archive invoice for order_id=%s", order.order_id)

    def _fail(self, attempt: CheckoutAttempt, message: str) -> None:
        if not self._transition(attempt, CheckoutStatus.FAILED, message):
            return
        if attempt.gateway_order_id:
            self.widget.discard(attempt.gateway_order_id)
        record = PaymentRecord(
            uid=attempt.uid or "",
            payment_id=generate_failed_payment_id(),
            transaction_id="",
            order_id=attempt.order_id or "",
            amount=attempt.pricing.grand_total if attempt.pricing else money(0),
            payment_method=PAYMENT_METHOD_RAZORPAY,
            transaction_ref=attempt.gateway_order_id or "FAILED",
            status=PaymentRecordStatus.FAILED,
            failure_reason=message,
        )
        record = record.model_copy(update={"transaction_id": record.payment_id})
        try:
            with self.session_factory() as session:
                PaymentService(DocumentStore(session)).store_payment_details(record)
        except Exception:
            logger.exception("error storing failed payment for attempt=%s", attempt.attempt_id)

    def _escalate(self, attempt: CheckoutAttempt, success: PaymentSuccess) -> None:
        ticket_id = f"TKT-{uuid4().hex[:10].upper()}"
        payload: dict[str, Any] = {
            "ticketId": ticket_id,
            "category": "ORDER_WRITE_FAILED",
            "status": "OPEN",
            "uid": attempt.uid,
            "orderId": attempt.order_id,
            "paymentId": success.payment_id,
            "gatewayOrderId": success.gateway_order_id,
            "amount": money_number(attempt.pricing.grand_total) if attempt.pricing else None,
            "createdAt": to_iso(now_utc()),
        }
        try:
            payload["order"] = self._build_order(attempt, success).to_document()
        except Exception:
            logger.exception("could not rebuild order payload for order_id=%s", attempt.order_id)
            payload["order"] = None
        try:
            with self.session_factory() as session:
                DocumentStore(session).set(SUPPORT_TICKETS, ticket_id, payload)
            logger.error("escalated unrecorded paid order: ticket=%s order_id=%s", ticket_id, attempt.order_id)
        except Exception:
            logger.exception("failed to escalate unrecorded paid order_id=%s", attempt.order_id)


@lru_cache(maxsize=1)
def get_checkout_orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator.from_settings(get_settings())
