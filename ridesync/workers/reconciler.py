"""
Order Reconciliation Worker
===========================

Polls the backend for every actively tracked order and merges the answer
into the order store as a confirmed write.  Runs every
``POLL_INTERVAL_SECONDS`` (default 10 s) per order.

Scheduling
----------
* One asyncio task per tracked order, keyed by order id.  Stopping one
  order never touches the others.
* Each task owns a stop ``Event``.  Stopping sets the event: the task ends
  at its next suspension point, and a request already in flight is allowed
  to finish with its result discarded.
* ``suspend()`` / ``resume()`` stop and restart every task (app sent to the
  background and back).  On resume an order polled less than one interval
  ago waits out the remainder instead of polling straight away.

Failure handling per poll
-------------------------
* network failure   -> count it; the N-th consecutive failure (default 3)
  publishes ``TrackingDegraded`` once, polling continues at the same
  interval (no backoff).
* timeout           -> a network failure, or skipped, per ``on_timeout``.
* order not found   -> publish ``OrderLost``, drop the order, stop.
* unauthorized      -> publish ``AuthenticationRequired``, stop; the order
  stays tracked so ``resume()`` picks it up after re-authentication.
* terminal status   -> stop.  The record stays until the UI acknowledges
  the order by removing it from the store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from ridesync.config import Settings, settings as default_settings
from ridesync.domain.entities import Order, ReconciliationRecord
from ridesync.domain.enums import TimeoutPolicy, WriteSource
from ridesync.domain.errors import (
    BackendTimeout,
    NetworkFailure,
    OrderNotFound,
    Unauthorized,
)
from ridesync.domain.events import (
    AuthenticationRequired,
    OrderLost,
    OrderRemoved,
    TrackingDegraded,
    TrackingRestored,
)
from ridesync.infrastructure.backend import BackendClient, call_with_deadline
from ridesync.infrastructure.order_store import OrderStore, UpsertResult

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(
        self,
        store: OrderStore,
        backend: BackendClient,
        *,
        interval: Optional[float] = None,
        degraded_after: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        on_timeout: Optional[TimeoutPolicy] = None,
        config: Settings = default_settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.backend = backend
        self.interval = interval if interval is not None else config.poll_interval_seconds
        self.degraded_after = (
            degraded_after if degraded_after is not None
            else config.degraded_after_failures
        )
        self.timeout_ms = timeout_ms if timeout_ms is not None else config.backend_timeout_ms
        self.on_timeout = on_timeout or config.on_timeout
        self._clock = clock

        self._tracked: set[str] = set()
        self._tasks: dict[str, asyncio.Task] = {}
        self._stops: dict[str, asyncio.Event] = {}
        # Halted tasks whose in-flight request has not returned yet.
        self._draining: set[asyncio.Task] = set()
        # Failure counts for orders the store does not know yet.
        self._detached: dict[str, ReconciliationRecord] = {}
        self._suspended = False

        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(
            self._on_store_event
        )

    # ── Public API ────────────────────────────────────────────────────

    def track(self, order_id: str) -> None:
        """Start polling *order_id* (no-op if it is already being polled)."""
        self._tracked.add(order_id)
        if not self._suspended:
            self._spawn(order_id)

    def untrack(self, order_id: str) -> None:
        self._tracked.discard(order_id)
        self._halt(order_id)

    def acknowledge(self, order_id: str) -> bool:
        """UI has seen the terminal status: stop tracking and drop the order."""
        order = self.store.get(order_id)
        if order is None or order.is_active:
            return False
        self.store.remove(order_id)
        return True

    def is_tracking(self, order_id: str) -> bool:
        return order_id in self._tasks

    def tracked_ids(self) -> set[str]:
        return set(self._tracked)

    @property
    def suspended(self) -> bool:
        return self._suspended

    async def poll_once(self, order_id: str) -> Optional[Order]:
        """Run a single reconciliation step for *order_id*."""
        await self._poll(order_id, asyncio.Event())
        return self.store.get(order_id)

    def handle_push(self, order: Order) -> UpsertResult:
        """Merge an order pushed by the backend; counts as a fresh poll."""
        result = self._apply(order)
        if not (result.order or order).is_active:
            self._tracked.discard(order.id)
            self._halt(order.id)
        return result

    def suspend(self) -> None:
        self._suspended = True
        for order_id in list(self._tasks):
            self._halt(order_id)
        logger.info("Reconciliation suspended (%d orders tracked)", len(self._tracked))

    def resume(self) -> None:
        self._suspended = False
        for order_id in sorted(self._tracked):
            self._spawn(order_id)
        logger.info(
            "Reconciliation resumed (interval=%ss, %d orders)",
            self.interval, len(self._tracked),
        )

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_store_event)
        self.resume()

    async def stop(self) -> None:
        """Suspend, then cancel and await every task, halted ones included."""
        self.suspend()
        tasks = list(self._draining)
        self._draining.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        logger.info("Reconciliation worker stopped")

    # ── Internals ─────────────────────────────────────────────────────

    def _spawn(self, order_id: str) -> None:
        if order_id in self._tasks:
            return
        current = self.store.get(order_id)
        if current is not None and not current.is_active:
            self._tracked.discard(order_id)
            return
        stop = asyncio.Event()
        task = asyncio.create_task(self._run(order_id, stop), name=f"reconcile:{order_id}")
        self._stops[order_id] = stop
        self._tasks[order_id] = task
        task.add_done_callback(lambda t, oid=order_id: self._forget(oid, t))

    def _halt(self, order_id: str) -> None:
        stop = self._stops.pop(order_id, None)
        task = self._tasks.pop(order_id, None)
        if task is not None and not task.done():
            self._draining.add(task)
        if stop is not None:
            stop.set()

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        self._draining.discard(task)
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]
            self._stops.pop(order_id, None)

    def _initial_delay(self, order_id: str) -> float:
        record = self.store.record(order_id)
        if record is None or record.last_poll_at is None:
            return 0.0
        age = self._clock() - record.last_poll_at
        return max(0.0, self.interval - age)

    async def _run(self, order_id: str, stop: asyncio.Event) -> None:
        """Periodic loop: poll, then sleep for the interval or until stopped."""
        delay = self._initial_delay(order_id)
        if delay and await _wait(stop, delay):
            return
        while not stop.is_set():
            try:
                keep_polling = await self._poll(order_id, stop)
            except Exception:
                logger.exception("Unhandled error reconciling order %s", order_id)
                keep_polling = True
            if not keep_polling:
                break
            if await _wait(stop, self.interval):
                break

    async def _poll(self, order_id: str, stop: asyncio.Event) -> bool:
        """Fetch and merge one update.  Returns False when polling should end."""
        try:
            order = await call_with_deadline(
                self.backend.get_order(order_id), self.timeout_ms
            )
        except BackendTimeout as exc:
            if stop.is_set():
                return False
            if self.on_timeout is TimeoutPolicy.IGNORE:
                logger.info("Poll for %s timed out; skipping tick", order_id)
                return True
            self._record_failure(order_id, exc)
            return True
        except NetworkFailure as exc:
            if stop.is_set():
                return False
            self._record_failure(order_id, exc)
            return True
        except OrderNotFound:
            if stop.is_set():
                return False
            logger.warning("Order %s no longer exists on the backend", order_id)
            self._tracked.discard(order_id)
            self.store.publish(OrderLost(order_id))
            self.store.remove(order_id)
            self._detached.pop(order_id, None)
            return False
        except Unauthorized as exc:
            logger.warning("Polling %s refused: %s", order_id, exc)
            self.store.publish(AuthenticationRequired(order_id, str(exc)))
            return False

        if stop.is_set():
            logger.debug("Discarding late poll result for %s", order_id)
            return False

        result = self._apply(order)
        if not (result.order or order).is_active:
            self._tracked.discard(order_id)
            return False
        return True

    def _apply(self, order: Order) -> UpsertResult:
        result = self.store.upsert(order, WriteSource.CONFIRMED)
        detached = self._detached.pop(order.id, None)
        was_degraded = bool(detached and detached.degraded)
        record = self.store.record(order.id)
        if record is not None and record.mark_success(self._clock()):
            was_degraded = True
        if was_degraded:
            logger.info("Tracking of %s recovered", order.id)
            self.store.publish(TrackingRestored(order.id))
        return result

    def _record_failure(self, order_id: str, exc: Exception) -> None:
        record = self.store.record(order_id)
        if record is None:
            record = self._detached.setdefault(order_id, ReconciliationRecord(order_id))
        if record.mark_failure(self.degraded_after):
            logger.error(
                "Tracking of %s degraded after %d failed polls: %s",
                order_id, record.consecutive_failures, exc,
            )
            self.store.publish(
                TrackingDegraded(order_id, record.consecutive_failures, str(exc))
            )
        else:
            logger.warning(
                "Poll %d for %s failed: %s", record.consecutive_failures, order_id, exc
            )

    def _on_store_event(self, event: object) -> None:
        if isinstance(event, OrderRemoved):
            self._detached.pop(event.order_id, None)
            self.untrack(event.order_id)


async def _wait(stop: asyncio.Event, timeout: float) -> bool:
    """Sleep up to *timeout*; returns True if *stop* was set meanwhile."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
