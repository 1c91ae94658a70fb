"""
Error taxonomy for order synchronisation.

* ``IllegalTransition``  -- an optimistic update the transition table refuses.
  Resolved inside the order store; never raised past it.
* ``NetworkFailure``     -- transient; the reconciliation loop keeps polling.
* ``AlreadyClaimed``     -- another driver won the acceptance race.
  An expected outcome, reported as information rather than an error.
* ``OrderNotFound``      -- the backend does not know the order.
* ``Unauthorized``       -- propagated immediately, never retried.
* ``BackendRejected``    -- any other refusal (validation, conflict, bad body).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .enums import OrderStatus


class SyncError(Exception):
    """Base class for every error raised by the sync layer."""


class IllegalTransition(SyncError):
    """Raised when a status change violates the state machine."""

    def __init__(self, from_status: OrderStatus, to_status: OrderStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition from {from_status.value} to {to_status.value}"
        )


class NetworkFailure(SyncError):
    """Transport error, timeout, throttling or a 5xx from the backend."""


class BackendTimeout(NetworkFailure):
    """The per-call deadline expired before the backend answered."""


class AlreadyClaimed(SyncError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} was already claimed")


class OrderNotFound(SyncError):
    def __init__(self, order_id: str | None = None):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} not found" if order_id else "Order not found"
        )


class Unauthorized(SyncError):
    """Credentials missing, expired or refused; the app must re-authenticate."""


class BackendRejected(SyncError):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
