"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health    -- simple health check
GET  /api/v1/admin/tracking  -- reconciliation state of every tracked order
POST /api/v1/admin/suspend   -- stop all polling (app backgrounded)
POST /api/v1/admin/resume    -- restart polling (app foregrounded)
"""

from fastapi import APIRouter, Depends

from ridesync.api.dependencies import get_context
from ridesync.api.schemas import (
    HealthResponse,
    TrackingRecordResponse,
    TrackingResponse,
)
from ridesync.services.context import SyncContext

router = APIRouter(prefix="/admin", tags=["admin"])


def _snapshot(ctx: SyncContext) -> TrackingResponse:
    reconciler = ctx.reconciler
    rows: list[TrackingRecordResponse] = []
    for order_id in sorted(reconciler.tracked_ids()):
        record = ctx.store.record(order_id)
        rows.append(
            TrackingRecordResponse(
                order_id=order_id,
                tracking=reconciler.is_tracking(order_id),
                last_confirmed_status=record.last_confirmed_status if record else None,
                pending_local_status=record.pending_local_status if record else None,
                consecutive_failures=record.consecutive_failures if record else 0,
                degraded=record.degraded if record else False,
            )
        )
    return TrackingResponse(suspended=reconciler.suspended, orders=rows)


@router.get(
    "/tracking",
    response_model=TrackingResponse,
    summary="Reconciliation state of tracked orders",
)
async def tracking(ctx: SyncContext = Depends(get_context)):
    return _snapshot(ctx)


@router.post("/suspend", response_model=TrackingResponse, summary="Suspend polling")
async def suspend(ctx: SyncContext = Depends(get_context)):
    ctx.reconciler.suspend()
    return _snapshot(ctx)


@router.post("/resume", response_model=TrackingResponse, summary="Resume polling")
async def resume(ctx: SyncContext = Depends(get_context)):
    ctx.reconciler.resume()
    return _snapshot(ctx)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
