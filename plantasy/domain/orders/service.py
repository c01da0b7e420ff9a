from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from plantasy.core.timeutil import now_utc, to_iso
from plantasy.domain.base import money
from plantasy.domain.catalog import ProductCatalog
from plantasy.domain.orders.aggregates import PAYMENT_STATUS_PAID, Order
from plantasy.domain.orders.hydration import hydrate_items
from plantasy.domain.orders.status import MILESTONE_FIELDS, OrderStatus, parse_status, validate_transition
from plantasy.persistence.documents import DocumentNotFoundError, DocumentStore, WhereClause

logger = logging.getLogger(__name__)

ORDERS = "orders"
USERS = "users"
ITEMS_PER_PAGE = 10
ORDERED_AT = "timestamps.orderedAt"


@dataclass
class OrderPage:
    orders: list[Order] = field(default_factory=list)
    next_cursor: str | None = None


class OrderService:
    def __init__(self, store: DocumentStore, catalog: ProductCatalog | None = None):
        self.store = store
        self.catalog = catalog or ProductCatalog(store)

    def _hydrate(self, doc_id: str, data: dict[str, Any]) -> Order:
        data = dict(data)
        data.setdefault("orderId", doc_id)
        data["items"] = hydrate_items(self.catalog, data.get("items") or [])
        return Order.from_document(data)

    def create_order(self, order: Order) -> str:
        self.store.create(ORDERS, order.order_id, order.to_document())
        self._index_for_user(order.uid, order.order_id)
        logger.info("order created: order_id=%s uid=%s", order.order_id, order.uid)
        return order.order_id

    def _index_for_user(self, uid: str, order_id: str) -> None:
        # The per-user index is a convenience copy; orders stay queryable by uid.
        if not uid:
            return
        try:
            with self.store.session.begin_nested():
                try:
                    self.store.array_union(USERS, uid, "orders", order_id)
                except DocumentNotFoundError:
                    self.store.set(USERS, uid, {"orders": [order_id]}, merge=True)
        except Exception:
            logger.exception("failed to update order index for uid=%s order_id=%s", uid, order_id)

    def get_order(self, order_id: str) -> Order | None:
        data = self.store.get(ORDERS, order_id)
        if data is None:
            return None
        return self._hydrate(order_id, data)

    def require_order(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order is None:
            raise DocumentNotFoundError(f"order {order_id} not found")
        return order

    def update_status(self, order_id: str, status: str | OrderStatus, at: datetime | None = None) -> Order:
        current = self.store.get(ORDERS, order_id)
        if current is None:
            raise DocumentNotFoundError(f"order {order_id} not found")
        target = validate_transition(current.get("orderStatus") or OrderStatus.PENDING, status)

        stamp = to_iso(at or now_utc())
        fields: dict[str, Any] = {"orderStatus": target.value, "timestamps.updatedAt": stamp}
        milestone = MILESTONE_FIELDS.get(target)
        if milestone:
            fields[f"timestamps.{milestone}"] = stamp
        if target in {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}:
            fields["isCancelable"] = False
        if target == OrderStatus.DELIVERED:
            fields["isReturnEligible"] = True
        self.store.update(ORDERS, order_id, fields)
        logger.info("order status updated: order_id=%s status=%s", order_id, target.value)
        return self.require_order(order_id)

    def update_track(self, order_id: str, track: str) -> Order:
        self.store.update(
            ORDERS,
            order_id,
            {"track": track, "timestamps.updatedAt": to_iso(now_utc())},
        )
        return self.require_order(order_id)

    def list_orders(
        self,
        status: str | OrderStatus | None = None,
        page_size: int = ITEMS_PER_PAGE,
        start_after: str | None = None,
    ) -> OrderPage:
        where: list[WhereClause] = []
        if status:
            where.append(("orderStatus", "==", parse_status(status).value))
        snapshots = self.store.query(
            ORDERS,
            where=where,
            order_by=ORDERED_AT,
            descending=True,
            limit=page_size + 1,
            start_after=start_after,
        )
        has_more = len(snapshots) > page_size
        snapshots = snapshots[:page_size]
        orders = [self._hydrate(snap.id, snap.data) for snap in snapshots]
        return OrderPage(
            orders=orders,
            next_cursor=snapshots[-1].id if has_more and snapshots else None,
        )

    def list_user_orders(self, uid: str) -> list[Order]:
        index = self.store.get(USERS, uid) or {}
        order_ids = index.get("orders")
        if not isinstance(order_ids, list):
            snapshots = self.store.query(ORDERS, where=[("uid", "==", uid)], order_by=ORDERED_AT, descending=True)
            return [self._hydrate(snap.id, snap.data) for snap in snapshots]

        orders = []
        for order_id in dict.fromkeys(str(oid) for oid in order_ids):
            order = self.get_order(order_id)
            if order is not None and order.uid == uid:
                orders.append(order)
        orders.sort(key=lambda order: order.timestamps.ordered_at, reverse=True)
        return orders

    def recent_orders(self, count: int = 5) -> list[Order]:
        return self.list_orders(page_size=count).orders

    def orders_count(self) -> int:
        return self.store.count(ORDERS)

    def pending_orders_count(self) -> int:
        return self.store.count(ORDERS, where=[("orderStatus", "==", OrderStatus.PENDING.value)])

    def revenue_since(self, days: int = 30, now: datetime | None = None) -> Decimal:
        cutoff = to_iso((now or now_utc()) - timedelta(days=days))
        snapshots = self.store.query(
            ORDERS,
            where=[
                ("payment.paymentStatus", "==", PAYMENT_STATUS_PAID),
                (ORDERED_AT, ">=", cutoff),
            ],
        )
        total = Decimal("0")
        for snap in snapshots:
            grand_total = (snap.data.get("pricing") or {}).get("grandTotal")
            if grand_total not in (None, ""):
                total += money(grand_total)
        return money(total)
