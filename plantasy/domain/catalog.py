from __future__ import annotations

from typing import Any, Iterable

from plantasy.persistence.documents import DocumentStore

PRODUCTS = "products"


def product_cover_image(product: dict[str, Any] | None) -> str:
    if not product:
        return ""
    images = product.get("images")
    return str(
        product.get("coverImage")
        or product.get("hoverImage")
        or product.get("image")
        or (images[0] if isinstance(images, list) and images else "")
        or ""
    )


class ProductCatalog:
    """Read-only view of the ``products`` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_product(self, product_id: str) -> dict[str, Any] | None:
        if not product_id:
            return None
        return self.store.get(PRODUCTS, product_id)

    def get_products(self, product_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        for product_id in dict.fromkeys(pid for pid in product_ids if pid):
            product = self.get_product(product_id)
            if product is not None:
                found[product_id] = product
        return found
