from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from plantasy.api.deps import get_delivery_service, get_document_store, get_orchestrator, get_session_context
from plantasy.checkout.orchestrator import CheckoutAttempt, CheckoutOrchestrator, CheckoutStatus
from plantasy.checkout.session import SessionContext
from plantasy.core.security import Identity, get_identity
from plantasy.domain.addresses import AddressBook
from plantasy.domain.base import DocumentBase, money_number
from plantasy.domain.orders import DeliveryAddress
from plantasy.integrations.delhivery import DelhiveryService
from plantasy.persistence.documents import DocumentStore

router = APIRouter(prefix="/checkout", tags=["checkout"])


class VerifyAddressRequest(DocumentBase):
    zip: str = Field(min_length=1)


class CheckoutRequest(DocumentBase):
    address: DeliveryAddress | None = None
    address_id: str = ""
    coupon_code: str = ""


class PaymentSuccessRequest(BaseModel):
    razorpay_payment_id: str = ""
    razorpay_order_id: str = ""
    razorpay_signature: str = ""


class PaymentFailureRequest(DocumentBase):
    error: dict[str, Any] = Field(default_factory=dict)
    dismissed: bool = False


def _owned_attempt(orchestrator: CheckoutOrchestrator, attempt_id: str, identity: Identity) -> CheckoutAttempt:
    attempt = orchestrator.get_attempt(attempt_id)
    if attempt.uid != identity.uid:
        raise HTTPException(status_code=404, detail=f"checkout attempt {attempt_id} not found")
    return attempt


@router.post("/verify-address")
def verify_address(request: VerifyAddressRequest, delivery: DelhiveryService = Depends(get_delivery_service)):
    # Advisory only; checkout re-verifies before charging.
    serviceable = delivery.verify_serviceability(request.zip.strip())
    return {
        "zip": request.zip.strip(),
        "serviceable": serviceable,
        "shippingCharge": money_number(delivery.quote_charge(request.zip.strip())) if serviceable else None,
    }


@router.post("")
def start_checkout(
    request: CheckoutRequest,
    context: SessionContext = Depends(get_session_context),
    store: DocumentStore = Depends(get_document_store),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
):
    address = request.address
    if address is None and context.is_authenticated:
        # Fall back to a saved address: the one named, else the default.
        book = AddressBook(store)
        saved = book.require(context.uid, request.address_id) if request.address_id else book.default(context.uid)
        address = saved.delivery_address() if saved else None

    attempt = orchestrator.handle_checkout(context, address, coupon_code=request.coupon_code)
    if attempt.status == CheckoutStatus.FAILED and attempt.order_id is None:
        # Rejected before leaving idle.
        return JSONResponse(status_code=400, content=attempt.to_dict())
    return attempt.to_dict()


@router.get("/attempts/{attempt_id}")
def get_attempt(
    attempt_id: str,
    identity: Identity = Depends(get_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
):
    return _owned_attempt(orchestrator, attempt_id, identity).to_dict()


@router.post("/attempts/{attempt_id}/payment-success")
def payment_success(
    attempt_id: str,
    request: PaymentSuccessRequest,
    identity: Identity = Depends(get_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
):
    _owned_attempt(orchestrator, attempt_id, identity)
    attempt = orchestrator.complete_payment(attempt_id, request.model_dump())
    return attempt.to_dict()


@router.post("/attempts/{attempt_id}/payment-failure")
def payment_failure(
    attempt_id: str,
    request: PaymentFailureRequest,
    identity: Identity = Depends(get_identity),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
):
    _owned_attempt(orchestrator, attempt_id, identity)
    attempt = orchestrator.fail_payment(attempt_id, error=request.error, dismissed=request.dismissed)
    return attempt.to_dict()
