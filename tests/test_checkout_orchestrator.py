from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from plantasy.checkout.orchestrator import (
    MSG_ADDRESS_REQUIRED,
    MSG_CHECKOUT_ERROR,
    MSG_EMPTY_CART,
    MSG_LOGIN_REQUIRED,
    MSG_NOT_SERVICEABLE,
    MSG_ORDER_PLACED,
    MSG_ORDER_WRITE_FAILED,
    MSG_PAYMENT_EXPIRED,
    AttemptNotFoundError,
    CheckoutStatus,
)
from plantasy.checkout.session import SessionContext
from plantasy.checkout.widget import PAYMENT_CANCELLED
from plantasy.core.config import get_settings
from plantasy.core.security import Identity
from plantasy.core.timeutil import now_utc
from plantasy.domain.cart import CartStore
from plantasy.domain.orders import DeliveryAddress, OrderService
from plantasy.domain.payments import PaymentService
from plantasy.integrations.razorpay import PaymentGatewayError, payment_signature
from plantasy.persistence import pg
from plantasy.persistence.documents import DocumentStore


def _address(zip_code: str = "682001") -> DeliveryAddress:
    return DeliveryAddress(
        first_name="Asha",
        last_name="Menon",
        phone="9876543210",
        address_line1="12 Palm Grove",
        city="Kochi",
        region="Kerala",
        zip=zip_code,
    )


def _context(uid: str | None = "user-001", items=(("monstera-deliciosa", 1),)) -> SessionContext:
    identity = Identity(uid=uid, email="asha@example.com") if uid else None
    with pg.session_scope() as session:
        context = SessionContext.restore(identity, CartStore(DocumentStore(session)))
        for product_id, quantity in items:
            context.add_to_cart(product_id, quantity)
    return context


def _gateway_response(attempt, payment_id: str = "pay_001") -> dict:
    return {
        "razorpay_payment_id": payment_id,
        "razorpay_order_id": attempt.gateway_order_id,
        "razorpay_signature": payment_signature(
            attempt.gateway_order_id, payment_id, get_settings().razorpay_key_secret
        ),
    }


def _count(read_store, collection: str) -> int:
    return read_store(lambda store: store.count(collection))


def test_successful_checkout_places_one_paid_order(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address())

    assert attempt.status == CheckoutStatus.PENDING
    assert attempt.pricing.grand_total == Decimal("1100.00")
    assert attempt.amount_minor == 110000
    assert attempt.gateway_order_id.startswith("order_")
    assert attempt.widget_options["amount"] == 110000
    assert attempt.widget_options["order_id"] == attempt.gateway_order_id

    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt))

    assert attempt.status == CheckoutStatus.SUCCESS
    assert attempt.message == MSG_ORDER_PLACED
    assert attempt.payment_id == "pay_001"

    order = read_store(lambda store: OrderService(store).require_order(attempt.order_id))
    assert order.uid == "user-001"
    assert order.order_status.value == "PENDING"
    assert order.payment.payment_status == "PAID"
    assert order.payment.payment_id == "pay_001"
    assert order.payment.transaction_ref == attempt.gateway_order_id
    assert order.pricing.grand_total == order.pricing.sub_total + order.pricing.tax + order.pricing.shipping_charge
    assert order.items[0].product_id == "monstera-deliciosa"
    assert order.delivery_address.zip == "682001"
    assert _count(read_store, "orders") == 1

    payment = read_store(lambda store: PaymentService(store).get_payment("pay_001"))
    assert payment.status.value == "SUCCESS"
    assert payment.order_id == attempt.order_id
    assert payment.receipt_object_key == "payments/pay_001.json"

    cart = read_store(lambda store: CartStore(store).load("user-001"))
    assert cart.is_empty

    invoice = Path(get_settings().object_store_dir) / f"invoices/{attempt.order_id}.html"
    assert invoice.exists()


def test_guard_failures_persist_nothing(catalog, orchestrator, read_store):
    anonymous = orchestrator.handle_checkout(_context(uid=None, items=()), _address())
    assert anonymous.status == CheckoutStatus.FAILED
    assert anonymous.message == MSG_LOGIN_REQUIRED

    empty = orchestrator.handle_checkout(_context(items=()), _address())
    assert empty.message == MSG_EMPTY_CART

    no_address = orchestrator.handle_checkout(_context(), None)
    assert no_address.message == MSG_ADDRESS_REQUIRED
    assert no_address.order_id is None

    assert _count(read_store, "payment") == 0
    assert orchestrator.proxy.client.created == []


def test_unserviceable_address_fails_before_gateway(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address("12345"))

    assert attempt.status == CheckoutStatus.FAILED
    assert attempt.message == MSG_NOT_SERVICEABLE
    assert attempt.gateway_order_id is None
    assert orchestrator.proxy.client.created == []

    failed = read_store(lambda store: PaymentService(store).list_for_order(attempt.order_id))
    assert len(failed) == 1
    assert failed[0].status.value == "FAILED"
    assert failed[0].payment_id.startswith("FAILED_")
    assert failed[0].transaction_ref == "FAILED"


def test_dismissed_widget_leaves_one_failed_record(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(items=(("snake-plant", 2),)), _address())
    orchestrator.fail_payment(attempt.attempt_id, dismissed=True)

    assert attempt.status == CheckoutStatus.FAILED
    assert attempt.message == PAYMENT_CANCELLED
    assert _count(read_store, "orders") == 0

    failed = read_store(lambda store: PaymentService(store).list_for_order(attempt.order_id))
    assert len(failed) == 1
    assert failed[0].amount == attempt.pricing.grand_total
    assert failed[0].transaction_ref == attempt.gateway_order_id

    # The cart is untouched so the customer can retry.
    cart = read_store(lambda store: CartStore(store).load("user-001"))
    assert cart.get("snake-plant").quantity == 2

    # Late success for a settled attempt is ignored.
    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt))
    assert attempt.status == CheckoutStatus.FAILED
    assert _count(read_store, "orders") == 0


def test_each_submission_gets_fresh_ids(catalog, orchestrator):
    context = _context()
    first = orchestrator.handle_checkout(context, _address())
    second = orchestrator.handle_checkout(context, _address())

    assert first.gateway_order_id != second.gateway_order_id
    assert first.order_id != second.order_id
    assert len(orchestrator.proxy.client.created) == 2


def test_gateway_failure_fails_attempt(catalog, orchestrator, monkeypatch, read_store):
    def refuse(amount_minor: int) -> str:
        raise PaymentGatewayError("Failed to create order")

    monkeypatch.setattr(orchestrator.proxy, "create_remote_order", refuse)
    attempt = orchestrator.handle_checkout(_context(), _address())

    assert attempt.status == CheckoutStatus.FAILED
    assert attempt.message == MSG_CHECKOUT_ERROR
    assert _count(read_store, "payment") == 1


def test_order_write_failure_escalates_to_support(catalog, orchestrator, monkeypatch, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address())

    def broken_create(self, order):
        raise RuntimeError("document store unavailable")

    monkeypatch.setattr(OrderService, "create_order", broken_create)
    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt, "pay_lost"))

    assert attempt.status == CheckoutStatus.FAILED
    assert attempt.message == MSG_ORDER_WRITE_FAILED
    assert _count(read_store, "orders") == 0

    payment = read_store(lambda store: PaymentService(store).get_payment("pay_lost"))
    assert payment.status.value == "SUCCESS"

    tickets = read_store(lambda store: store.query("support_tickets"))
    assert len(tickets) == 1
    assert tickets[0].data["paymentId"] == "pay_lost"
    assert tickets[0].data["orderId"] == attempt.order_id
    assert tickets[0].data["order"]["pricing"]["grandTotal"] == 1100


def test_coupon_discount_and_redemption(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address(), coupon_code="green10")

    assert attempt.pricing.discount == Decimal("100.00")
    assert attempt.pricing.coupon_code == "GREEN10"
    assert attempt.amount_minor == 100000

    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt))
    assert attempt.status == CheckoutStatus.SUCCESS

    coupon = read_store(lambda store: store.get("coupons", "green10"))
    assert coupon["usedCount"] == 1


def test_unknown_coupon_fails_attempt(catalog, orchestrator):
    attempt = orchestrator.handle_checkout(_context(), _address(), coupon_code="NOTACODE")
    assert attempt.status == CheckoutStatus.FAILED
    assert "NOTACODE" in attempt.message


def test_items_added_during_payment_stay_in_cart(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address())

    _context(items=(("terracotta-pot-8in", 1),))
    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt))

    cart = read_store(lambda store: CartStore(store).load("user-001"))
    assert "monstera-deliciosa" not in cart
    assert cart.get("terracotta-pot-8in").quantity == 1


def test_stale_attempts_are_pruned_and_unsettled_ones_expire(catalog, orchestrator, read_store):
    dismissed = orchestrator.handle_checkout(_context(), _address())
    orchestrator.fail_payment(dismissed.attempt_id, dismissed=True)
    abandoned = orchestrator.handle_checkout(_context(), _address())
    assert orchestrator.widget.open_handles == 1

    two_hours_ago = now_utc() - timedelta(hours=2)
    dismissed.updated_at = two_hours_ago
    abandoned.updated_at = two_hours_ago

    fresh = orchestrator.handle_checkout(_context(), _address())

    for stale in (dismissed, abandoned):
        with pytest.raises(AttemptNotFoundError):
            orchestrator.get_attempt(stale.attempt_id)
    assert orchestrator.get_attempt(fresh.attempt_id) is fresh

    assert abandoned.status == CheckoutStatus.FAILED
    assert abandoned.message == MSG_PAYMENT_EXPIRED
    assert orchestrator.widget.get_handle(abandoned.gateway_order_id) is None
    assert orchestrator.widget.open_handles == 1

    failed = read_store(lambda store: PaymentService(store).list_for_order(abandoned.order_id))
    assert len(failed) == 1
    assert failed[0].failure_reason == MSG_PAYMENT_EXPIRED
    assert _count(read_store, "orders") == 0


def test_date_only_coupon_expiry_does_not_break_checkout(catalog, orchestrator):
    with pg.session_scope() as session:
        DocumentStore(session).set(
            "coupons",
            "dated",
            {"code": "DATED", "discountType": "flat", "discountValue": 100, "expiryDate": "2099-12-31"},
        )

    attempt = orchestrator.handle_checkout(_context(), _address(), coupon_code="DATED")

    assert attempt.status == CheckoutStatus.PENDING
    assert attempt.pricing.discount == Decimal("100.00")


def test_order_document_stores_amounts_as_numbers(catalog, orchestrator, read_store):
    attempt = orchestrator.handle_checkout(_context(), _address())
    orchestrator.complete_payment(attempt.attempt_id, _gateway_response(attempt))

    document = read_store(lambda store: store.get("orders", attempt.order_id))
    assert document["pricing"]["grandTotal"] == 1100
    assert isinstance(document["pricing"]["grandTotal"], int)
    assert document["items"][0]["price"] == 1000
