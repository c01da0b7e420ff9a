from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from pydantic import Field

from plantasy.core.timeutil import now_utc, to_iso
from plantasy.domain.base import DocumentBase, Money, money, money_number
from plantasy.domain.catalog import ProductCatalog, product_cover_image
from plantasy.persistence.documents import DocumentStore

CARTS = "carts"
DEFAULT_ITEM_TYPE = "regular"


class UnknownProductError(LookupError):
    pass


class CartLine(DocumentBase):
    product_id: str
    name: str = ""
    price: Money = Decimal("0.00")
    quantity: int = Field(default=1, ge=1)
    item_type: str = Field(default=DEFAULT_ITEM_TYPE, alias="type")
    cover_image: str = ""
    category: str | None = None

    @property
    def line_total(self) -> Decimal:
        return money(self.price * self.quantity)


def _item_type(value: str | None) -> str:
    return value.strip() if value and value.strip() else DEFAULT_ITEM_TYPE


class Cart:
    """Line items for one customer. Quantities never drop below one."""

    def __init__(self, lines: Iterable[CartLine] = ()):
        self._lines: dict[str, CartLine] = {}
        for line in lines:
            self._lines[line.product_id] = line

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def get(self, product_id: str) -> CartLine | None:
        return self._lines.get(product_id)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._lines

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def subtotal(self) -> Decimal:
        return money(sum((line.line_total for line in self._lines.values()), Decimal("0")))

    @property
    def items_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def add(self, line: CartLine) -> CartLine:
        existing = self._lines.get(line.product_id)
        if existing is not None:
            line = existing.model_copy(update={"quantity": existing.quantity + line.quantity})
        self._lines[line.product_id] = line
        return line

    def add_product(
        self,
        product_id: str,
        product: dict[str, Any],
        quantity: int = 1,
        item_type: str | None = None,
    ) -> CartLine:
        line = CartLine(
            product_id=product_id,
            name=str(product.get("name") or ""),
            price=money(product.get("price") or 0),
            quantity=quantity,
            item_type=_item_type(item_type),
            cover_image=product_cover_image(product),
            category=product.get("category"),
        )
        return self.add(line)

    def remove(self, product_id: str) -> bool:
        return self._lines.pop(product_id, None) is not None

    def remove_many(self, product_ids: Iterable[str]) -> None:
        for product_id in product_ids:
            self._lines.pop(product_id, None)

    def update_quantity(self, product_id: str, quantity: int) -> CartLine | None:
        if quantity < 1:
            self.remove(product_id)
            return None
        existing = self._lines.get(product_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"quantity": quantity})
        self._lines[product_id] = updated
        return updated

    def clear(self) -> None:
        self._lines.clear()

    def snapshot(self) -> list[CartLine]:
        return [line.model_copy() for line in self._lines.values()]

    def to_document(self) -> dict[str, Any]:
        return {
            "items": [line.to_document() for line in self._lines.values()],
            "itemsCount": self.items_count,
            "subTotal": money_number(self.subtotal),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "Cart":
        if not data:
            return cls()
        lines = []
        for raw in data.get("items") or []:
            if not isinstance(raw, dict) or not raw.get("productId"):
                continue
            quantity = int(raw.get("quantity", 1) or 0)
            if quantity < 1:
                continue
            raw = dict(raw)
            raw["type"] = _item_type(raw.get("type"))
            raw["quantity"] = quantity
            lines.append(CartLine.model_validate(raw))
        return cls(lines)


class CartStore:
    """Persisted cart state, one ``carts/{uid}`` document per customer."""

    def __init__(self, store: DocumentStore, catalog: ProductCatalog | None = None):
        self.store = store
        self.catalog = catalog or ProductCatalog(store)

    def load(self, uid: str) -> Cart:
        return Cart.from_document(self.store.get(CARTS, uid))

    def save(self, uid: str, cart: Cart) -> None:
        document = cart.to_document()
        document["uid"] = uid
        document["updatedAt"] = to_iso(now_utc())
        self.store.set(CARTS, uid, document)

    def clear(self, uid: str) -> None:
        self.store.delete(CARTS, uid)

    def add_item(self, uid: str, cart: Cart, product_id: str, quantity: int = 1, item_type: str | None = None) -> CartLine:
        product = self.catalog.get_product(product_id)
        if product is None:
            raise UnknownProductError(f"product {product_id} not found")
        line = cart.add_product(product_id, product, quantity=quantity, item_type=item_type)
        self.save(uid, cart)
        return line
