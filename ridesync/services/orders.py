"""
Order intents issued by the driver UI.

Cancel and status-update follow the same pattern:

1. optimistic upsert -- refused transitions return at once, no backend call;
2. backend call;
3. success -> confirmed upsert; failure -> roll the optimistic status back
   and re-raise so the caller decides whether to retry.
"""

from __future__ import annotations

import logging
from typing import Optional

from ridesync.domain.entities import Order, OrderRequest
from ridesync.domain.enums import OrderStatus, WriteSource
from ridesync.domain.errors import OrderNotFound, SyncError
from ridesync.infrastructure.backend import BackendClient
from ridesync.infrastructure.order_store import OrderStore, UpsertResult
from ridesync.services.acceptance import AcceptanceArbiter, AcceptanceResult
from ridesync.workers.reconciler import Reconciler

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(
        self,
        backend: BackendClient,
        store: OrderStore,
        reconciler: Reconciler,
        arbiter: AcceptanceArbiter,
    ):
        self.backend = backend
        self.store = store
        self.reconciler = reconciler
        self.arbiter = arbiter

    async def create_order(self, request: OrderRequest) -> Order:
        order = await self.backend.create_order(request)
        self.store.upsert(order, WriteSource.CONFIRMED)
        self.reconciler.track(order.id)
        logger.info("Created order %s", order.id)
        return order

    async def accept_order(self, order_id: str, driver_id: str) -> AcceptanceResult:
        result = await self.arbiter.attempt_accept(order_id, driver_id)
        if result.accepted:
            self.reconciler.track(order_id)
        return result

    async def cancel_order(
        self, order_id: str, reason: Optional[str] = None
    ) -> UpsertResult:
        current = self._require(order_id)
        result = self.store.upsert(
            current.with_status(OrderStatus.CANCELLED), WriteSource.OPTIMISTIC
        )
        if not result.applied:
            return result

        try:
            await self.backend.cancel_order(order_id, reason)
        except SyncError:
            self.store.rollback(order_id)
            raise

        # The cancel endpoint returns no body; bump past the durable copy so
        # an in-flight poll carrying the old status is ignored as stale.
        confirmed = self.store.get_confirmed(order_id) or current
        cancelled = confirmed.with_status(
            OrderStatus.CANCELLED, version=confirmed.version + 1
        )
        logger.info("Cancelled order %s (%s)", order_id, reason or "no reason")
        return self.store.upsert(cancelled, WriteSource.CONFIRMED)

    async def update_status(self, order_id: str, status: OrderStatus) -> UpsertResult:
        current = self._require(order_id)
        result = self.store.upsert(current.with_status(status), WriteSource.OPTIMISTIC)
        if not result.applied:
            return result

        try:
            order = await self.backend.update_order_status(order_id, status)
        except SyncError:
            self.store.rollback(order_id)
            raise

        logger.info("Order %s moved to %s", order_id, order.status.value)
        return self.store.upsert(order, WriteSource.CONFIRMED)

    def can_cancel(self, order_id: str) -> bool:
        order = self.store.get(order_id)
        return order is not None and order.status.is_cancellable

    def _require(self, order_id: str) -> Order:
        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order
