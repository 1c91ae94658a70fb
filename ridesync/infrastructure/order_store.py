"""
In-memory order store -- the single arbitration point for order state.

Every writer (reconciliation loop, acceptance arbiter, UI intents) goes
through ``upsert``.  The store keeps two layers per order:

* the **confirmed** order, last delivered by the backend;
* an optional **pending optimistic status** in the order's
  ``ReconciliationRecord``.

Readers get the *effective* view: the confirmed order with the pending
status overlaid.  A confirmed write always clears the overlay, so a rollback
by the backend is never masked by an earlier optimistic write.

Concurrency
-----------
All reads and writes take one ``RLock``; subscribers are called while it is
held, which is what keeps notifications in upsert order.  The lock is
re-entrant so a subscriber may read the store (or publish) from inside its
callback.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ridesync.domain.entities import Order, ReconciliationRecord
from ridesync.domain.enums import WriteSource
from ridesync.domain.errors import IllegalTransition
from ridesync.domain.events import OrderChanged, OrderRemoved, TransitionRejected
from ridesync.domain.transitions import can_transition

logger = logging.getLogger(__name__)

Subscriber = Callable[[object], None]


@dataclass(frozen=True)
class UpsertResult:
    applied: bool
    order: Optional[Order] = None
    rejection: Optional[IllegalTransition] = None
    stale: bool = False

    @property
    def rejected(self) -> bool:
        return self.rejection is not None


class OrderStore:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._records: dict[str, ReconciliationRecord] = {}
        self._subscribers: list[Subscriber] = []
        self._lock = threading.RLock()

    # ── Writes ────────────────────────────────────────────────────────

    def upsert(self, order: Order, source: WriteSource) -> UpsertResult:
        with self._lock:
            if source is WriteSource.CONFIRMED:
                return self._apply_confirmed(order)
            return self._apply_optimistic(order)

    def _apply_confirmed(self, order: Order) -> UpsertResult:
        current = self._confirmed(order.id)
        if current is not None and order.version < current.version:
            logger.warning(
                "Ignoring stale confirmed write for %s (version %d < %d)",
                order.id, order.version, current.version,
            )
            return UpsertResult(applied=False, order=self._view(order.id), stale=True)

        record = self._records.setdefault(order.id, ReconciliationRecord(order.id))
        record.last_confirmed_status = order.status
        record.pending_local_status = None
        self._orders[order.id] = order
        self._notify(OrderChanged(order, WriteSource.CONFIRMED))
        return UpsertResult(applied=True, order=order)

    def _apply_optimistic(self, order: Order) -> UpsertResult:
        current = self._view(order.id)
        if current is None:
            # Provisional entry: carries the order's fields for the effective
            # view but stays unconfirmed until the backend delivers it.
            self._orders[order.id] = order
            self._records[order.id] = ReconciliationRecord(
                order.id, pending_local_status=order.status
            )
            self._notify(OrderChanged(order, WriteSource.OPTIMISTIC))
            return UpsertResult(applied=True, order=order)

        if not can_transition(current.status, order.status):
            rejection = IllegalTransition(current.status, order.status)
            logger.warning("Dropped optimistic write for %s: %s", order.id, rejection)
            self._notify(
                TransitionRejected(order.id, current.status, order.status)
            )
            return UpsertResult(applied=False, order=current, rejection=rejection)

        self._records[order.id].pending_local_status = order.status
        view = self._view(order.id)
        self._notify(OrderChanged(view, WriteSource.OPTIMISTIC))
        return UpsertResult(applied=True, order=view)

    def rollback(self, order_id: str) -> Optional[Order]:
        """
        Discard the pending optimistic status of *order_id*.

        An order the backend never confirmed has nothing to fall back to and
        is removed instead (``OrderRemoved``, returns None).
        """
        with self._lock:
            record = self._records.get(order_id)
            if record is None or record.pending_local_status is None:
                return self._view(order_id)
            if record.last_confirmed_status is None:
                logger.info("Dropped unconfirmed order %s on rollback", order_id)
                del self._orders[order_id]
                del self._records[order_id]
                self._notify(OrderRemoved(order_id))
                return None
            record.pending_local_status = None
            order = self._orders[order_id]
            logger.info("Rolled back optimistic status of %s to %s",
                        order_id, order.status.value)
            self._notify(OrderChanged(order, WriteSource.CONFIRMED))
            return order

    def remove(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._view(order_id)
            if order is None:
                return None
            del self._orders[order_id]
            self._records.pop(order_id, None)
            self._notify(OrderRemoved(order_id))
            return order

    # ── Reads ─────────────────────────────────────────────────────────

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._view(order_id)

    def get_confirmed(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._confirmed(order_id)

    def record(self, order_id: str) -> Optional[ReconciliationRecord]:
        with self._lock:
            return self._records.get(order_id)

    def orders(self) -> list[Order]:
        with self._lock:
            return [self._view(order_id) for order_id in self._orders]

    def active_orders(self) -> list[Order]:
        return [o for o in self.orders() if o.is_active]

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._orders

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def _view(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return None
        record = self._records.get(order_id)
        if record is not None and record.pending_local_status is not None:
            return order.with_status(record.pending_local_status)
        return order

    def _confirmed(self, order_id: str) -> Optional[Order]:
        record = self._records.get(order_id)
        if record is None or record.last_confirmed_status is None:
            return None
        return self._orders.get(order_id)

    # ── Observation ───────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: object) -> None:
        """Deliver a non-store event (sync problems) on the same channel."""
        with self._lock:
            self._notify(event)

    def _notify(self, event: object) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Order store subscriber failed on %r", event)


def on_loop(loop: asyncio.AbstractEventLoop, callback: Subscriber) -> Subscriber:
    """Wrap *callback* so it runs on *loop* instead of the publishing context."""

    def handoff(event: object) -> None:
        loop.call_soon_threadsafe(callback, event)

    return handoff
