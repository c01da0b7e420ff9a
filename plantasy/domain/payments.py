from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum

from pydantic import Field

from plantasy.core.timeutil import now_utc
from plantasy.domain.base import DocumentBase, Money, Timestamp
from plantasy.persistence.documents import DocumentStore

logger = logging.getLogger(__name__)

PAYMENTS = "payment"


class PaymentRecordStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PaymentRecord(DocumentBase):
    uid: str
    payment_id: str
    transaction_id: str
    order_id: str
    amount: Money = Decimal("0.00")
    payment_method: str
    transaction_ref: str
    status: PaymentRecordStatus
    receipt_object_key: str | None = None
    receipt_hash: str | None = None
    failure_reason: str | None = None
    created_at: Timestamp = Field(default_factory=now_utc)


class PaymentService:
    """Append-only store of payment attempt outcomes."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def store_payment_details(self, record: PaymentRecord) -> None:
        # create() refuses to overwrite: a record is never mutated once written.
        self.store.create(PAYMENTS, record.payment_id, record.to_document())
        logger.info(
            "payment stored: payment_id=%s order_id=%s status=%s",
            record.payment_id,
            record.order_id,
            record.status.value,
        )

    def get_payment(self, payment_id: str) -> PaymentRecord | None:
        data = self.store.get(PAYMENTS, payment_id)
        if data is None:
            return None
        return PaymentRecord.from_document(data)

    def list_for_order(self, order_id: str) -> list[PaymentRecord]:
        return [
            PaymentRecord.from_document(snap.data)
            for snap in self.store.query(PAYMENTS, where=[("orderId", "==", order_id)], order_by="createdAt")
        ]
