from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from plantasy.core.timeutil import now_utc, to_iso
from plantasy.domain.catalog import PRODUCTS
from plantasy.domain.coupons import COUPONS
from plantasy.persistence.documents import DocumentStore

DEMO_COUPON_CODE = "GREEN10"

DEMO_PRODUCTS: dict[str, dict[str, Any]] = {
    "monstera-deliciosa": {
        "name": "Monstera Deliciosa",
        "price": 1000,
        "category": "indoor-plants",
        "coverImage": "https://cdn.plantasy.example/monstera/cover.jpg",
        "images": ["https://cdn.plantasy.example/monstera/1.jpg"],
        "stock": 25,
    },
    "snake-plant": {
        "name": "Snake Plant",
        "price": 449,
        "category": "indoor-plants",
        "images": ["https://cdn.plantasy.example/snake-plant/1.jpg"],
        "stock": 40,
    },
    "terracotta-pot-8in": {
        "name": "Terracotta Pot 8in",
        "price": 299,
        "category": "pots",
        "image": "https://cdn.plantasy.example/pots/terracotta-8.jpg",
        "stock": 100,
    },
}


def seed_demo_catalog(session: Session) -> dict[str, Any]:
    """Insert demo products and one coupon; existing documents are left alone."""
    store = DocumentStore(session)
    stamp = to_iso(now_utc())

    created: list[str] = []
    for product_id, product in DEMO_PRODUCTS.items():
        if store.exists(PRODUCTS, product_id):
            continue
        store.set(PRODUCTS, product_id, {**product, "createdAt": stamp})
        created.append(product_id)

    coupon_id = DEMO_COUPON_CODE.lower()
    coupon_created = False
    if not store.exists(COUPONS, coupon_id):
        store.set(
            COUPONS,
            coupon_id,
            {
                "code": DEMO_COUPON_CODE,
                "discountType": "percentage",
                "discountValue": 10,
                "minOrderValue": 500,
                "applicableProducts": [],
                "applicableCategories": [],
                "usageLimit": 100,
                "usedCount": 0,
                "isActive": True,
                "createdAt": stamp,
            },
        )
        coupon_created = True

    return {
        "products_created": created,
        "products_total": len(DEMO_PRODUCTS),
        "coupon_code": DEMO_COUPON_CODE,
        "coupon_created": coupon_created,
    }
