"""
Shared test fixtures.

``FakeBackend`` is an in-memory stand-in for the backend API so the sync
layer runs without a network.  It records every call, can be told to fail
specific operations, and arbitrates acceptance races first-come
first-served like the real backend.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Callable, Optional

import pytest
import pytest_asyncio

from ridesync.domain.entities import HistoryPage, Location, Order, OrderRequest
from ridesync.domain.enums import OrderStatus
from ridesync.domain.errors import AlreadyClaimed, OrderNotFound
from ridesync.infrastructure.order_store import OrderStore
from ridesync.workers.reconciler import Reconciler


AIRPORT = Location(37.6213, -122.3790, "San Francisco International Airport")
DOWNTOWN = Location(37.7749, -122.4194, "123 Main St, San Francisco")
FERRY_BUILDING = Location(37.7954, -122.4028, "Ferry Building, San Francisco")


def make_order(
    order_id: str = "O1",
    status: OrderStatus = OrderStatus.PENDING,
    version: int = 0,
    **changes,
) -> Order:
    return Order(
        id=order_id,
        status=status,
        pickup=changes.pop("pickup", DOWNTOWN),
        destination=changes.pop("destination", AIRPORT),
        version=version,
        **changes,
    )


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """In-memory backend implementing the ``BackendClient`` contract."""

    def __init__(self):
        self.orders: dict[str, Order] = {}
        self.available: list[str] = []
        self.history: list[Order] = []
        self.calls: list[tuple] = []
        self.get_delay: float = 0.0
        self.gate: Optional[asyncio.Event] = None
        self._errors: dict[str, list[Exception]] = {}
        self._always: dict[str, Exception] = {}
        self._next_id = 1

    # ── Test controls ─────────────────────────────────────────────────

    def put(self, order: Order, available: bool = False) -> Order:
        self.orders[order.id] = order
        if available and order.id not in self.available:
            self.available.append(order.id)
        return order

    def fail(self, method: str, *errors: Exception) -> None:
        """Raise *errors* on the next calls to *method*, one per call."""
        self._errors.setdefault(method, []).extend(errors)

    def fail_always(self, method: str, error: Exception) -> None:
        self._always[method] = error

    def heal(self, method: str) -> None:
        self._always.pop(method, None)
        self._errors.pop(method, None)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _enter(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self._always:
            raise self._always[method]
        queued = self._errors.get(method)
        if queued:
            raise queued.pop(0)

    # ── BackendClient ─────────────────────────────────────────────────

    async def create_order(self, request: OrderRequest) -> Order:
        self._enter("create_order", request)
        order = Order(
            id=f"N{self._next_id}",
            status=OrderStatus.PENDING,
            pickup=request.pickup,
            destination=request.destination,
            scheduled_time=request.scheduled_time,
            passenger_count=request.passenger_count,
            luggage_count=request.luggage_count,
            service_options=request.service_options,
            notes=request.notes,
            version=1,
        )
        self._next_id += 1
        return self.put(order)

    async def get_order(self, order_id: str) -> Order:
        self._enter("get_order", order_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        if order_id not in self.orders:
            raise OrderNotFound(order_id)
        return self.orders[order_id]

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        self._enter("update_order_status", order_id, status)
        if order_id not in self.orders:
            raise OrderNotFound(order_id)
        current = self.orders[order_id]
        return self.put(current.with_status(status, version=current.version + 1))

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> None:
        self._enter("cancel_order", order_id, reason)
        if order_id not in self.orders:
            raise OrderNotFound(order_id)
        current = self.orders[order_id]
        self.put(current.with_status(OrderStatus.CANCELLED, version=current.version + 1))

    async def list_order_history(self, cursor: Optional[str], limit: int) -> HistoryPage:
        self._enter("list_order_history", cursor, limit)
        start = int(cursor) if cursor else 0
        chunk = self.history[start:start + limit]
        end = start + len(chunk)
        has_more = end < len(self.history)
        return HistoryPage(
            orders=tuple(chunk),
            next_cursor=str(end) if has_more else None,
            has_more=has_more,
        )

    async def list_available_orders(self) -> list[Order]:
        self._enter("list_available_orders")
        return [self.orders[i] for i in self.available if i in self.orders]

    async def update_driver_status(self, online: bool) -> None:
        self._enter("update_driver_status", online)

    async def accept_order(self, order_id: str, driver_id: str) -> Order:
        self._enter("accept_order", order_id, driver_id)
        # Yield so concurrent accepts interleave before the check.
        await asyncio.sleep(0)
        if order_id not in self.orders:
            raise OrderNotFound(order_id)
        current = self.orders[order_id]
        if current.driver_id is not None:
            raise AlreadyClaimed(order_id)
        if order_id in self.available:
            self.available.remove(order_id)
        return self.put(
            dataclasses.replace(
                current,
                status=OrderStatus.MATCHED,
                driver_id=driver_id,
                version=current.version + 1,
            )
        )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds, failing the test after *timeout*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def store() -> OrderStore:
    return OrderStore()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def events(store: OrderStore) -> list:
    """Every event the store publishes, in delivery order."""
    received: list = []
    store.subscribe(received.append)
    return received


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def reconciler(store, backend, clock):
    worker = Reconciler(
        store, backend, interval=0.01, degraded_after=3, timeout_ms=1_000, clock=clock
    )
    yield worker
    await worker.stop()
