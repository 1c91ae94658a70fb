"""Pydantic request / response schemas for the local gateway."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ridesync.domain.entities import Order, ReconciliationRecord
from ridesync.domain.enums import OrderStatus
from ridesync.infrastructure.wire import OrderPayload


# ── Requests ──────────────────────────────────────────────────────────


class AcceptRequest(BaseModel):
    driver_id: Optional[str] = Field(
        None, description="Defaults to the configured driver id."
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DriverStatusRequest(BaseModel):
    online: bool


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


# ── Responses ─────────────────────────────────────────────────────────


class OrderResponse(OrderPayload):
    syncing: bool = Field(
        False, description="A local change is waiting for backend confirmation."
    )

    @classmethod
    def build(cls, order: Order, record: Optional[ReconciliationRecord] = None):
        payload = OrderPayload.from_entity(order).model_dump()
        syncing = record is not None and record.pending_local_status is not None
        return cls(**payload, syncing=syncing)


class AcceptanceResponse(BaseModel):
    accepted: bool
    informational: bool = False
    message: str = ""
    order: Optional[OrderResponse] = None


class HistoryResponse(BaseModel):
    orders: list[OrderResponse] = []
    next_cursor: Optional[str] = None
    has_more: bool = False


class TrackingRecordResponse(BaseModel):
    order_id: str
    tracking: bool
    last_confirmed_status: Optional[OrderStatus] = None
    pending_local_status: Optional[OrderStatus] = None
    consecutive_failures: int = 0
    degraded: bool = False


class TrackingResponse(BaseModel):
    suspended: bool
    orders: list[TrackingRecordResponse] = []


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
