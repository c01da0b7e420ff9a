from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from plantasy.api.deps import get_session_context
from plantasy.checkout.session import SessionContext
from plantasy.core.config import get_settings
from plantasy.domain.base import DocumentBase
from plantasy.domain.cart import UnknownProductError
from plantasy.domain.pricing import price_cart

router = APIRouter(prefix="/cart", tags=["cart"])


class AddCartItemRequest(DocumentBase):
    product_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=100)
    type: str | None = None


class UpdateQuantityRequest(DocumentBase):
    quantity: int


def _cart_view(context: SessionContext) -> dict:
    cart = context.cart
    view = cart.to_document()
    # Shipping is quoted at checkout once the delivery address is known.
    view["pricing"] = price_cart(cart.subtotal, get_settings().tax_rate).to_document()
    return view


@router.get("")
def get_cart(context: SessionContext = Depends(get_session_context)):
    return _cart_view(context)


@router.post("/items")
def add_cart_item(request: AddCartItemRequest, context: SessionContext = Depends(get_session_context)):
    try:
        context.add_to_cart(request.product_id, quantity=request.quantity, item_type=request.type)
    except UnknownProductError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _cart_view(context)


@router.patch("/items/{product_id}")
def update_cart_item(
    product_id: str,
    request: UpdateQuantityRequest,
    context: SessionContext = Depends(get_session_context),
):
    line = context.update_quantity(product_id, request.quantity)
    if line is None and request.quantity >= 1:
        raise HTTPException(status_code=404, detail=f"product {product_id} is not in the cart")
    return _cart_view(context)


@router.delete("/items/{product_id}")
def remove_cart_item(product_id: str, context: SessionContext = Depends(get_session_context)):
    if not context.remove_from_cart(product_id):
        raise HTTPException(status_code=404, detail=f"product {product_id} is not in the cart")
    return _cart_view(context)
