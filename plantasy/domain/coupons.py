from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from plantasy.core.timeutil import now_utc
from plantasy.domain.base import DocumentBase, Money, Timestamp, money
from plantasy.domain.cart import Cart
from plantasy.persistence.documents import DocumentStore

COUPONS = "coupons"

DiscountType = Literal["percentage", "flat"]


class CouponRejected(ValueError):
    pass


class Coupon(DocumentBase):
    id: str = ""
    code: str
    discount_type: DiscountType
    discount_value: Money
    min_order_value: Money = Decimal("0.00")
    applicable_products: list[str] = Field(default_factory=list)
    applicable_categories: list[str] = Field(default_factory=list)
    expiry_date: Timestamp | None = None
    usage_limit: int = 0
    used_count: int = 0
    is_active: bool = True


class CouponService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def find_by_code(self, code: str) -> Coupon | None:
        normalized = code.strip().upper()
        if not normalized:
            return None
        for snapshot in self.store.query(COUPONS, where=[("code", "==", normalized)], limit=1):
            data = dict(snapshot.data)
            data["id"] = snapshot.id
            return Coupon.from_document(data)
        return None

    def discount_for(self, coupon: Coupon, cart: Cart, at: datetime | None = None) -> Decimal:
        """Discount the coupon grants on this cart, or raise CouponRejected."""
        at = at or now_utc()
        if not coupon.is_active:
            raise CouponRejected(f"coupon {coupon.code} is not active")
        if coupon.expiry_date is not None and coupon.expiry_date <= at:
            raise CouponRejected(f"coupon {coupon.code} has expired")
        if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
            raise CouponRejected(f"coupon {coupon.code} usage limit reached")
        if cart.subtotal < coupon.min_order_value:
            raise CouponRejected(f"coupon {coupon.code} requires a minimum order of {coupon.min_order_value}")

        restricted = bool(coupon.applicable_products or coupon.applicable_categories)
        eligible = Decimal("0")
        for line in cart.lines:
            if (
                not restricted
                or line.product_id in coupon.applicable_products
                or (line.category is not None and line.category in coupon.applicable_categories)
            ):
                eligible += line.line_total
        if eligible <= 0:
            raise CouponRejected(f"coupon {coupon.code} does not apply to these items")

        if coupon.discount_type == "percentage":
            discount = eligible * coupon.discount_value / Decimal("100")
        else:
            discount = coupon.discount_value
        return money(min(discount, eligible))

    def record_redemption(self, coupon: Coupon) -> None:
        if not coupon.id:
            return
        self.store.update(COUPONS, coupon.id, {"usedCount": coupon.used_count + 1})
