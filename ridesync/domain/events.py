"""
Events delivered to order-store subscribers.

``OrderChanged`` and ``OrderRemoved`` report state changes.  Every other
event reports a synchronisation problem, so observers can tell "the order
changed" apart from "keeping the order in sync went wrong" by type alone
(``isinstance(event, SyncProblem)``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import Order
from .enums import OrderStatus, WriteSource


@dataclass(frozen=True)
class OrderChanged:
    order: Order
    source: WriteSource


@dataclass(frozen=True)
class OrderRemoved:
    order_id: str


@dataclass(frozen=True)
class SyncProblem:
    order_id: str


@dataclass(frozen=True)
class TransitionRejected(SyncProblem):
    from_status: OrderStatus
    to_status: OrderStatus


@dataclass(frozen=True)
class TrackingDegraded(SyncProblem):
    consecutive_failures: int
    reason: str = ""


@dataclass(frozen=True)
class TrackingRestored(SyncProblem):
    pass


@dataclass(frozen=True)
class OrderLost(SyncProblem):
    """The backend no longer knows the order; it was dropped locally."""


@dataclass(frozen=True)
class AuthenticationRequired(SyncProblem):
    reason: str = ""


@dataclass(frozen=True)
class OrderClaimedElsewhere(SyncProblem):
    """Informational: another driver accepted the order first."""

    message: Optional[str] = None
