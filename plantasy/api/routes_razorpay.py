from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from plantasy.checkout.gateway import InvalidAmountError, create_gateway_order
from plantasy.core.config import get_settings
from plantasy.integrations.razorpay import GatewayOrdersClient, PaymentGatewayError, build_gateway_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/razorpay", tags=["payments"])


@lru_cache(maxsize=1)
def get_gateway_client() -> GatewayOrdersClient:
    return build_gateway_client(get_settings())


@router.post("/create-order")
def create_order(
    payload: dict[str, Any] = Body(default_factory=dict),
    client: GatewayOrdersClient = Depends(get_gateway_client),
):
    try:
        order = create_gateway_order(client, payload.get("amount"), currency=get_settings().currency)
    except InvalidAmountError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except PaymentGatewayError as exc:
        logger.error("razorpay order creation failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": "Failed to create order", "details": str(exc)})
    return {"orderId": order.id, "amount": order.amount, "currency": order.currency}
