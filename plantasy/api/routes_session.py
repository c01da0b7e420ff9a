from __future__ import annotations

from fastapi import APIRouter, Depends

from plantasy.api.deps import get_session_context
from plantasy.checkout.session import SessionContext

router = APIRouter(tags=["session"])


@router.get("/session")
def get_session_state(context: SessionContext = Depends(get_session_context)):
    return {
        "authenticated": context.is_authenticated,
        "uid": context.identity.uid if context.is_authenticated else None,
        "email": context.email,
        "cart": context.cart.to_document(),
    }


@router.post("/session/logout")
def logout(context: SessionContext = Depends(get_session_context)):
    context.logout()
    return {"status": "logged_out"}
