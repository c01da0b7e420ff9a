from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from pydantic import model_validator

from plantasy.domain.base import DocumentBase, Money, money, to_minor_units

__all__ = ["PricingBreakdown", "compute_tax", "price_cart", "to_minor_units"]


class PricingBreakdown(DocumentBase):
    sub_total: Money
    tax: Money
    discount: Money = Decimal("0.00")
    coupon_code: str = ""
    shipping_charge: Money = Decimal("0.00")
    grand_total: Money

    @model_validator(mode="after")
    def _check_grand_total(self) -> "PricingBreakdown":
        expected = money(self.sub_total + self.tax + self.shipping_charge - self.discount)
        if self.grand_total != expected:
            raise ValueError(f"grandTotal {self.grand_total} does not match components ({expected})")
        return self

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.grand_total)


def compute_tax(subtotal: Decimal, rate: Decimal) -> Decimal:
    # Tax is charged in whole rupees.
    return money((subtotal * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def price_cart(
    subtotal: Decimal,
    tax_rate: Decimal,
    shipping_charge: Decimal = Decimal("0"),
    discount: Decimal = Decimal("0"),
    coupon_code: str = "",
) -> PricingBreakdown:
    subtotal = money(subtotal)
    tax = compute_tax(subtotal, tax_rate)
    shipping = money(shipping_charge)
    discount = money(min(money(discount), subtotal))
    return PricingBreakdown(
        sub_total=subtotal,
        tax=tax,
        discount=discount,
        coupon_code=coupon_code,
        shipping_charge=shipping,
        grand_total=money(subtotal + tax + shipping - discount),
    )
