from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from plantasy.core.timeutil import as_utc, to_iso

CENT = Decimal("0.01")


def money(value: Any) -> Decimal:
    """Coerce a rupee amount to a 2-dp Decimal without going through float."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value if value not in (None, "") else 0))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Any) -> int:
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def money_number(value: Any) -> int | float:
    """JSON number for a rupee amount: an int when whole, else a 2-dp float."""
    amount = money(value)
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


Money = Annotated[
    Decimal,
    BeforeValidator(money),
    PlainSerializer(money_number, return_type=Any, when_used="json"),
]

Timestamp = Annotated[
    datetime,
    AfterValidator(as_utc),
    PlainSerializer(to_iso, return_type=str, when_used="json"),
]


class DocumentBase(BaseModel):
    """Pydantic model stored as a camelCase document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]):
        return cls.model_validate(data)
