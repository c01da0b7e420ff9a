from __future__ import annotations

from decimal import Decimal

import pytest

from plantasy.domain.payments import PaymentRecord, PaymentRecordStatus, PaymentService
from plantasy.persistence import pg
from plantasy.persistence.documents import DocumentExistsError, DocumentStore


def _record(payment_id: str, status: PaymentRecordStatus = PaymentRecordStatus.SUCCESS) -> PaymentRecord:
    return PaymentRecord(
        uid="user-001",
        payment_id=payment_id,
        transaction_id=payment_id,
        order_id="OD12345678",
        amount=Decimal("1100"),
        payment_method="Razorpay",
        transaction_ref="order_abc",
        status=status,
    )


def test_payment_records_are_immutable(read_store):
    with pg.session_scope() as session:
        PaymentService(DocumentStore(session)).store_payment_details(_record("pay_001"))

    with pytest.raises(DocumentExistsError):
        with pg.session_scope() as session:
            PaymentService(DocumentStore(session)).store_payment_details(
                _record("pay_001", PaymentRecordStatus.FAILED)
            )

    stored = read_store(lambda store: PaymentService(store).get_payment("pay_001"))
    assert stored.status == PaymentRecordStatus.SUCCESS
    assert stored.amount == Decimal("1100.00")


def test_payment_document_shape(read_store):
    with pg.session_scope() as session:
        PaymentService(DocumentStore(session)).store_payment_details(_record("pay_002"))

    document = read_store(lambda store: store.get("payment", "pay_002"))
    assert document["paymentId"] == "pay_002"
    assert document["transactionId"] == "pay_002"
    assert document["orderId"] == "OD12345678"
    assert document["amount"] == 1100
    assert document["status"] == "SUCCESS"
    assert document["createdAt"].endswith("Z")

    records = read_store(lambda store: PaymentService(store).list_for_order("OD12345678"))
    assert [record.payment_id for record in records] == ["pay_002"]
