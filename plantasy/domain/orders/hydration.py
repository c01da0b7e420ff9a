from __future__ import annotations

from typing import Any

from plantasy.domain.catalog import ProductCatalog


def resolve_item_image(item: dict[str, Any], product: dict[str, Any] | None) -> str:
    """Display image for an order line.

    Falls back from the line's own image fields to the live product, so a
    product that was edited or deleted after ordering never breaks display.
    """
    product = product or {}
    images = product.get("images")
    return str(
        item.get("coverImage")
        or item.get("productImage")
        or product.get("coverImage")
        or product.get("image")
        or (images[0] if isinstance(images, list) and images else "")
        or ""
    )


def hydrate_items(catalog: ProductCatalog, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not items:
        return []
    products = catalog.get_products(item.get("productId") for item in items)
    hydrated = []
    for item in items:
        product = products.get(item.get("productId") or "")
        hydrated.append({**item, "coverImage": resolve_item_image(item, product)})
    return hydrated
