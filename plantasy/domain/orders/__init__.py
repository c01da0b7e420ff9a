from plantasy.domain.orders.aggregates import (
    PAYMENT_METHOD_RAZORPAY,
    PAYMENT_STATUS_PAID,
    DeliveryAddress,
    Order,
    OrderItem,
    OrderPayment,
    OrderTimestamps,
)
from plantasy.domain.orders.ids import generate_failed_payment_id, generate_invoice_id, generate_order_id
from plantasy.domain.orders.service import ITEMS_PER_PAGE, OrderPage, OrderService
from plantasy.domain.orders.status import InvalidStatusTransition, OrderStatus, validate_transition

__all__ = [
    "ITEMS_PER_PAGE",
    "PAYMENT_METHOD_RAZORPAY",
    "PAYMENT_STATUS_PAID",
    "DeliveryAddress",
    "InvalidStatusTransition",
    "Order",
    "OrderItem",
    "OrderPage",
    "OrderPayment",
    "OrderService",
    "OrderStatus",
    "OrderTimestamps",
    "generate_failed_payment_id",
    "generate_invoice_id",
    "generate_order_id",
    "validate_transition",
]
