from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from plantasy.checkout.orchestrator import CheckoutOrchestrator, get_checkout_orchestrator
from plantasy.checkout.session import SessionContext
from plantasy.core.security import Identity, get_optional_identity
from plantasy.domain.cart import CartStore
from plantasy.domain.orders import OrderService
from plantasy.integrations.delhivery import DelhiveryService
from plantasy.persistence.documents import DocumentStore
from plantasy.persistence.pg import get_session


def get_document_store(session: Session = Depends(get_session)) -> DocumentStore:
    return DocumentStore(session)


def get_session_context(
    identity: Identity | None = Depends(get_optional_identity),
    store: DocumentStore = Depends(get_document_store),
) -> SessionContext:
    return SessionContext.restore(identity, CartStore(store))


def get_order_service(store: DocumentStore = Depends(get_document_store)) -> OrderService:
    return OrderService(store)


def get_orchestrator() -> CheckoutOrchestrator:
    return get_checkout_orchestrator()


def get_delivery_service(orchestrator: CheckoutOrchestrator = Depends(get_orchestrator)) -> DelhiveryService:
    return orchestrator.delivery
