from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import Field

from plantasy.api.deps import get_delivery_service, get_order_service
from plantasy.core.security import AdminActor, Identity, get_admin, get_identity, require_roles
from plantasy.domain.base import DocumentBase, money_number
from plantasy.domain.invoices import render_invoice_html
from plantasy.domain.orders import ITEMS_PER_PAGE, Order, OrderService
from plantasy.integrations.delhivery import DeliveryServiceError, DelhiveryService

router = APIRouter(tags=["orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])

ORDER_WRITERS = {"super_admin", "support"}


class StatusUpdateRequest(DocumentBase):
    status: str = Field(min_length=1)


class TrackUpdateRequest(DocumentBase):
    track: str


class PickupRequest(DocumentBase):
    client_warehouse: str = Field(min_length=1)
    expected_package_count: int = Field(default=1, ge=1)
    pickup_date: str | None = None
    start_time: str = "09:00:00"


def _owned_order(orders: OrderService, order_id: str, identity: Identity) -> Order:
    order = orders.get_order(order_id)
    if order is None or order.uid != identity.uid:
        raise HTTPException(status_code=404, detail=f"order {order_id} not found")
    return order


@router.get("/orders/mine")
def list_my_orders(identity: Identity = Depends(get_identity), orders: OrderService = Depends(get_order_service)):
    items = orders.list_user_orders(identity.uid)
    return {"count": len(items), "orders": [order.model_dump(mode="json", by_alias=True) for order in items]}


@router.get("/orders/{order_id}")
def get_my_order(
    order_id: str,
    identity: Identity = Depends(get_identity),
    orders: OrderService = Depends(get_order_service),
):
    return _owned_order(orders, order_id, identity).model_dump(mode="json", by_alias=True)


@router.get("/orders/{order_id}/invoice", response_class=HTMLResponse)
def get_my_invoice(
    order_id: str,
    identity: Identity = Depends(get_identity),
    orders: OrderService = Depends(get_order_service),
):
    return HTMLResponse(render_invoice_html(_owned_order(orders, order_id, identity)))


@admin_router.get("")
def list_orders(
    status: str | None = Query(default=None),
    page_size: int = Query(default=ITEMS_PER_PAGE, ge=1, le=100),
    start_after: str | None = Query(default=None),
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
):
    page = orders.list_orders(status=status, page_size=page_size, start_after=start_after)
    return {
        "count": len(page.orders),
        "orders": [order.model_dump(mode="json", by_alias=True) for order in page.orders],
        "nextCursor": page.next_cursor,
    }


@admin_router.get("/recent")
def recent_orders(
    count: int = Query(default=5, ge=1, le=50),
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
):
    return {"orders": [order.model_dump(mode="json", by_alias=True) for order in orders.recent_orders(count)]}


@admin_router.get("/stats")
def order_stats(
    days: int = Query(default=30, ge=1, le=365),
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
):
    return {
        "ordersCount": orders.orders_count(),
        "pendingOrders": orders.pending_orders_count(),
        "revenue": money_number(orders.revenue_since(days=days)),
        "revenueWindowDays": days,
    }


@admin_router.patch("/{order_id}/status")
def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
):
    require_roles(admin, ORDER_WRITERS, "order updates require super_admin/support role")
    return orders.update_status(order_id, request.status).model_dump(mode="json", by_alias=True)


@admin_router.patch("/{order_id}/track")
def update_order_track(
    order_id: str,
    request: TrackUpdateRequest,
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
):
    require_roles(admin, ORDER_WRITERS, "order updates require super_admin/support role")
    return orders.update_track(order_id, request.track.strip()).model_dump(mode="json", by_alias=True)


@admin_router.post("/{order_id}/pickup")
def create_pickup(
    order_id: str,
    request: PickupRequest,
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
    delivery: DelhiveryService = Depends(get_delivery_service),
):
    require_roles(admin, ORDER_WRITERS, "pickups require super_admin/support role")
    orders.require_order(order_id)
    try:
        return delivery.create_pickup_request(
            order_id,
            request.client_warehouse,
            expected_package_count=request.expected_package_count,
            pickup_date=request.pickup_date,
            start_time=request.start_time,
        )
    except DeliveryServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@admin_router.delete("/{order_id}/pickup")
def cancel_pickup(
    order_id: str,
    pickup_request_id: str = Query(min_length=1),
    admin: AdminActor = Depends(get_admin),
    orders: OrderService = Depends(get_order_service),
    delivery: DelhiveryService = Depends(get_delivery_service),
):
    require_roles(admin, ORDER_WRITERS, "pickups require super_admin/support role")
    orders.require_order(order_id)
    try:
        return delivery.cancel_pickup_request(pickup_request_id)
    except DeliveryServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
