"""
Order endpoints
===============

POST   /api/v1/orders                     -- create an order (202 Accepted)
GET    /api/v1/orders/available           -- open orders, optionally nearest first
POST   /api/v1/orders/available/refresh   -- reload open orders from the backend
POST   /api/v1/orders/available/online    -- go online (fetch) or offline (clear)
GET    /api/v1/orders/{order_id}          -- current local view of an order
POST   /api/v1/orders/{order_id}/accept   -- try to claim an open order
POST   /api/v1/orders/{order_id}/cancel   -- cancel an order
PUT    /api/v1/orders/{order_id}/status   -- report trip progress
POST   /api/v1/orders/{order_id}/track    -- start polling an order
DELETE /api/v1/orders/{order_id}/track    -- stop polling an order
POST   /api/v1/orders/{order_id}/acknowledge -- dismiss a finished order
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ridesync.api.dependencies import get_context
from ridesync.api.middleware import INTENT_LIMIT, limiter
from ridesync.api.schemas import (
    AcceptanceResponse,
    AcceptRequest,
    CancelRequest,
    DriverStatusRequest,
    ErrorResponse,
    OrderResponse,
    StatusUpdateRequest,
)
from ridesync.domain.entities import Order
from ridesync.infrastructure.order_store import UpsertResult
from ridesync.infrastructure.wire import OrderRequestPayload
from ridesync.services.context import SyncContext

router = APIRouter(prefix="/orders", tags=["orders"])


def _respond(ctx: SyncContext, order: Order) -> OrderResponse:
    return OrderResponse.build(order, ctx.store.record(order.id))


def _intent_response(ctx: SyncContext, result: UpsertResult) -> OrderResponse:
    if result.rejection is not None:
        raise HTTPException(status_code=409, detail=str(result.rejection))
    return _respond(ctx, result.order)


@router.post(
    "",
    status_code=202,
    response_model=OrderResponse,
    summary="Create an order",
    responses={202: {"description": "Order created; status is tracked in the background."}},
)
@limiter.limit(INTENT_LIMIT)
async def create_order(
    request: Request,
    body: OrderRequestPayload,
    ctx: SyncContext = Depends(get_context),
):
    order = await ctx.orders.create_order(body.to_entity())
    return _respond(ctx, order)


@router.get(
    "/available",
    response_model=list[OrderResponse],
    summary="List open orders",
)
async def list_available(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    ctx: SyncContext = Depends(get_context),
):
    if lat is not None and lng is not None:
        orders = ctx.board.nearest_first(lat, lng)
    else:
        orders = ctx.board.orders()
    return [OrderResponse.build(o) for o in orders]


@router.post(
    "/available/refresh",
    response_model=list[OrderResponse],
    summary="Reload open orders from the backend",
)
@limiter.limit(INTENT_LIMIT)
async def refresh_available(
    request: Request,
    ctx: SyncContext = Depends(get_context),
):
    orders = await ctx.board.refresh()
    return [OrderResponse.build(o) for o in orders]


@router.post(
    "/available/online",
    response_model=list[OrderResponse],
    summary="Go online or offline",
    description="Online fetches open orders; offline empties the list.",
)
@limiter.limit(INTENT_LIMIT)
async def set_online(
    request: Request,
    body: DriverStatusRequest,
    ctx: SyncContext = Depends(get_context),
):
    orders = await ctx.board.set_online(body.online)
    return [OrderResponse.build(o) for o in orders]


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get the local view of an order",
)
async def get_order(order_id: str, ctx: SyncContext = Depends(get_context)):
    order = ctx.store.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return _respond(ctx, order)


@router.post(
    "/{order_id}/accept",
    response_model=AcceptanceResponse,
    summary="Accept an open order",
    description=(
        "Losing the race to another driver is not an error: the response has "
        "``accepted=false`` and ``informational=true``."
    ),
)
@limiter.limit(INTENT_LIMIT)
async def accept_order(
    request: Request,
    order_id: str,
    body: AcceptRequest,
    ctx: SyncContext = Depends(get_context),
):
    driver_id = body.driver_id or ctx.config.driver_id
    if not driver_id:
        raise HTTPException(status_code=422, detail="driver_id is required")

    result = await ctx.orders.accept_order(order_id, driver_id)
    if result.error is not None and not result.informational:
        raise result.error
    return AcceptanceResponse(
        accepted=result.accepted,
        informational=result.informational,
        message=result.message,
        order=_respond(ctx, result.order) if result.order else None,
    )


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order",
    description="Allowed until the trip starts; returns 409 afterwards.",
    responses={409: {"model": ErrorResponse}},
)
@limiter.limit(INTENT_LIMIT)
async def cancel_order(
    request: Request,
    order_id: str,
    body: CancelRequest,
    ctx: SyncContext = Depends(get_context),
):
    result = await ctx.orders.cancel_order(order_id, body.reason)
    return _intent_response(ctx, result)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Report trip progress",
    responses={409: {"model": ErrorResponse}},
)
@limiter.limit(INTENT_LIMIT)
async def update_status(
    request: Request,
    order_id: str,
    body: StatusUpdateRequest,
    ctx: SyncContext = Depends(get_context),
):
    result = await ctx.orders.update_status(order_id, body.status)
    return _intent_response(ctx, result)


@router.post("/{order_id}/track", status_code=202, summary="Start polling an order")
async def track_order(order_id: str, ctx: SyncContext = Depends(get_context)):
    ctx.reconciler.track(order_id)
    return {"order_id": order_id, "tracking": True}


@router.delete("/{order_id}/track", status_code=204, summary="Stop polling an order")
async def untrack_order(order_id: str, ctx: SyncContext = Depends(get_context)):
    ctx.reconciler.untrack(order_id)
    return Response(status_code=204)


@router.post(
    "/{order_id}/acknowledge",
    status_code=204,
    summary="Dismiss a completed or cancelled order",
)
async def acknowledge_order(order_id: str, ctx: SyncContext = Depends(get_context)):
    if ctx.store.get(order_id) is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if not ctx.reconciler.acknowledge(order_id):
        raise HTTPException(status_code=409, detail="Order is still active")
    return Response(status_code=204)
