from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class InvalidStatusTransition(ValueError):
    pass


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Milestone timestamp stamped when an order enters the status.
MILESTONE_FIELDS: dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmedAt",
    OrderStatus.SHIPPED: "shippedAt",
    OrderStatus.DELIVERED: "deliveredAt",
}


def parse_status(value: str | OrderStatus) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().upper())
    except ValueError as exc:
        raise InvalidStatusTransition(f"unknown order status: {value}") from exc


def is_terminal(status: OrderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def validate_transition(current: str | OrderStatus, target: str | OrderStatus) -> OrderStatus:
    source = parse_status(current)
    destination = parse_status(target)
    if destination not in ALLOWED_TRANSITIONS[source]:
        raise InvalidStatusTransition(f"cannot move order from {source.value} to {destination.value}")
    return destination
