"""
Domain entities.

``Order`` is an immutable snapshot: the order store swaps whole values
rather than mutating them, so subscribers can keep the instance they were
handed.  ``ReconciliationRecord`` is the store's mutable per-order
bookkeeping and holds the optimistic side-channel.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import OrderStatus

EARTH_RADIUS_KM = 6_371.0


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: str = ""
    name: Optional[str] = None

    def distance_km(self, other: Location) -> float:
        """Great-circle (haversine) distance to *other* in km."""
        phi1, phi2 = math.radians(self.latitude), math.radians(other.latitude)
        dphi = phi2 - phi1
        dlmb = math.radians(other.longitude - self.longitude)
        h = (
            math.sin(dphi / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
        )
        return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


@dataclass(frozen=True)
class OrderRequest:
    pickup: Location
    destination: Optional[Location] = None
    scheduled_time: Optional[datetime] = None
    passenger_count: int = 1
    luggage_count: int = 0
    service_options: frozenset[str] = frozenset()
    notes: Optional[str] = None


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Order:
    id: str
    status: OrderStatus = OrderStatus.PENDING
    pickup: Location = field(default_factory=lambda: Location(0, 0))
    destination: Optional[Location] = None
    scheduled_time: Optional[datetime] = None
    passenger_count: int = 1
    luggage_count: int = 0
    service_options: frozenset[str] = frozenset()
    driver_id: Optional[str] = None
    version: int = 0
    estimated_price: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def with_status(self, status: OrderStatus, **changes) -> Order:
        return dataclasses.replace(self, status=status, **changes)


@dataclass
class ReconciliationRecord:
    order_id: str
    last_confirmed_status: Optional[OrderStatus] = None
    pending_local_status: Optional[OrderStatus] = None
    last_poll_at: Optional[float] = None
    consecutive_failures: int = 0
    degraded: bool = False

    def mark_success(self, polled_at: float) -> bool:
        """Reset the failure streak.  Returns True if tracking was degraded."""
        was_degraded = self.degraded
        self.last_poll_at = polled_at
        self.consecutive_failures = 0
        self.degraded = False
        return was_degraded

    def mark_failure(self, threshold: int) -> bool:
        """Count a failed poll.  Returns True exactly once per failure streak."""
        self.consecutive_failures += 1
        if not self.degraded and self.consecutive_failures >= threshold:
            self.degraded = True
            return True
        return False


@dataclass(frozen=True)
class HistoryPage:
    orders: tuple[Order, ...] = ()
    next_cursor: Optional[str] = None
    has_more: bool = False

    def __len__(self) -> int:
        return len(self.orders)
