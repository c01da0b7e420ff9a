from __future__ import annotations

import logging

from plantasy.core.security import AuthenticationRequired, Identity
from plantasy.domain.cart import Cart, CartLine, CartStore

logger = logging.getLogger(__name__)


class SessionContext:
    """Per-customer session state: who is signed in and what is in the cart.

    ``restore`` loads the persisted cart; ``logout`` drops both the in-memory
    state and the persisted copy.
    """

    def __init__(self, identity: Identity | None, carts: CartStore):
        self.identity = identity
        self.carts = carts
        self.cart = Cart()

    @classmethod
    def restore(cls, identity: Identity | None, carts: CartStore) -> "SessionContext":
        context = cls(identity, carts)
        context.reload()
        return context

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None and bool(self.identity.uid)

    @property
    def uid(self) -> str:
        if not self.is_authenticated:
            raise AuthenticationRequired("Please login to continue")
        return self.identity.uid

    @property
    def email(self) -> str:
        return self.identity.email if self.identity else ""

    def reload(self) -> None:
        self.cart = self.carts.load(self.identity.uid) if self.is_authenticated else Cart()

    def add_to_cart(self, product_id: str, quantity: int = 1, item_type: str | None = None) -> CartLine:
        return self.carts.add_item(self.uid, self.cart, product_id, quantity=quantity, item_type=item_type)

    def remove_from_cart(self, product_id: str) -> bool:
        removed = self.cart.remove(product_id)
        self.carts.save(self.uid, self.cart)
        return removed

    def update_quantity(self, product_id: str, quantity: int) -> CartLine | None:
        line = self.cart.update_quantity(product_id, quantity)
        self.carts.save(self.uid, self.cart)
        return line

    def logout(self) -> None:
        if self.is_authenticated:
            self.carts.clear(self.identity.uid)
            logger.info("session closed for uid=%s", self.identity.uid)
        self.cart = Cart()
        self.identity = None
