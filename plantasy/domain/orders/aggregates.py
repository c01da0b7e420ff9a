from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from plantasy.domain.base import DocumentBase, Money, Timestamp, money
from plantasy.domain.orders.status import OrderStatus, parse_status
from plantasy.domain.pricing import PricingBreakdown

PAYMENT_METHOD_RAZORPAY = "RAZORPAY"
PAYMENT_STATUS_PAID = "PAID"


class DeliveryAddress(DocumentBase):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    first_name: str
    last_name: str = ""
    phone: str
    address_line1: str = Field(alias="addressLine1")
    address_line2: str = Field(default="", alias="addressLine2")
    city: str
    region: str
    zip: str
    country: str = "India"

    @field_validator("zip", "phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class OrderItem(DocumentBase):
    product_id: str
    product_name: str = ""
    product_image: str = ""
    price: Money
    quantity: int = Field(ge=1)
    total_price: Money
    type: str = "regular"
    cover_image: str | None = None


class OrderPayment(DocumentBase):
    payment_id: str = ""
    payment_method: str = ""
    payment_status: str = ""
    transaction_ref: str = ""


class OrderTimestamps(DocumentBase):
    ordered_at: Timestamp
    confirmed_at: Timestamp | None = None
    shipped_at: Timestamp | None = None
    delivered_at: Timestamp | None = None
    updated_at: Timestamp


class Order(DocumentBase):
    order_id: str
    uid: str
    invoice_id: str = ""
    order_status: Annotated[OrderStatus, BeforeValidator(parse_status)] = OrderStatus.PENDING
    order_type: str = "NORMAL"
    is_cancelable: bool = True
    is_return_eligible: bool = False
    items: list[OrderItem] = Field(default_factory=list)
    delivery_address: DeliveryAddress
    payment: OrderPayment = Field(default_factory=OrderPayment)
    pricing: PricingBreakdown
    timestamps: OrderTimestamps
    track: str = ""

    @property
    def items_total(self) -> Decimal:
        return money(sum((item.total_price for item in self.items), Decimal("0")))

    def to_document(self) -> dict[str, Any]:
        document = super().to_document()
        # Hydrated display fields are read-side only.
        for item in document["items"]:
            item.pop("coverImage", None)
        return document
