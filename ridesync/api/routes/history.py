"""
History endpoint
================

GET /api/v1/history               -- reload from the first page
GET /api/v1/history?cursor=<c>    -- append the page after <c>
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridesync.api.dependencies import get_context
from ridesync.api.middleware import INTENT_LIMIT, limiter
from ridesync.api.schemas import HistoryResponse, OrderResponse
from ridesync.services.context import SyncContext

router = APIRouter(prefix="/history", tags=["history"])


@router.get(
    "",
    response_model=HistoryResponse,
    summary="Load order history",
    description="Returns the whole accumulated list after loading the page.",
)
@limiter.limit(INTENT_LIMIT)
async def load_history(
    request: Request,
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    ctx: SyncContext = Depends(get_context),
):
    history = ctx.history
    await history.load_page(cursor, limit)
    return HistoryResponse(
        orders=[
            OrderResponse.build(o, ctx.store.record(o.id)) for o in history.orders
        ],
        next_cursor=history.next_cursor,
        has_more=history.has_more,
    )
