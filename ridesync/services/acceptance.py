"""
Order acceptance.

The backend is the only arbiter of the race between drivers: the first
accept it sees wins.  Losing is an expected outcome, so ``AlreadyClaimed``
comes back as an informational result instead of an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ridesync.domain.entities import Location, Order
from ridesync.domain.enums import OrderStatus, WriteSource
from ridesync.domain.errors import (
    AlreadyClaimed,
    NetworkFailure,
    OrderNotFound,
    SyncError,
)
from ridesync.domain.events import OrderClaimedElsewhere
from ridesync.infrastructure.backend import BackendClient
from ridesync.infrastructure.order_store import OrderStore

logger = logging.getLogger(__name__)

CLAIMED_ELSEWHERE_MESSAGE = "This order was taken by another driver."


@dataclass
class AcceptanceResult:
    """Result object for an accept attempt."""

    accepted: bool
    order: Optional[Order] = None
    message: str = ""
    error: Optional[SyncError] = None
    informational: bool = False


class AvailableOrderBoard:
    """
    The driver's local list of open orders.

    Only filled while the driver is online: going offline empties it and
    turns ``refresh()`` into a no-op.
    """

    def __init__(self, backend: BackendClient, online: bool = True):
        self.backend = backend
        self.online = online
        self._orders: dict[str, Order] = {}

    async def set_online(self, online: bool) -> list[Order]:
        """Report the driver's availability, then fetch or drop open orders."""
        await self.backend.update_driver_status(online)
        self.online = online
        logger.info("Driver is now %s", "online" if online else "offline")
        if not online:
            self.clear()
            return []
        return await self.refresh()

    async def refresh(self) -> list[Order]:
        if not self.online:
            return []
        orders = await self.backend.list_available_orders()
        self._orders = {o.id: o for o in orders}
        return self.orders()

    def orders(self) -> list[Order]:
        return list(self._orders.values())

    def nearest_first(self, latitude: float, longitude: float) -> list[Order]:
        here = Location(latitude, longitude)
        return sorted(self._orders.values(), key=lambda o: here.distance_km(o.pickup))

    def discard(self, order_id: str) -> None:
        self._orders.pop(order_id, None)

    def clear(self) -> None:
        self._orders.clear()

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def __len__(self) -> int:
        return len(self._orders)


class AcceptanceArbiter:
    def __init__(
        self,
        backend: BackendClient,
        store: OrderStore,
        board: AvailableOrderBoard,
    ):
        self.backend = backend
        self.store = store
        self.board = board

    async def attempt_accept(self, order_id: str, driver_id: str) -> AcceptanceResult:
        """
        Ask the backend to assign *order_id* to *driver_id*.

        ``Unauthorized`` propagates; every other failure is reported in the
        result.  Nothing here is retried.
        """
        try:
            order = await self.backend.accept_order(order_id, driver_id)
        except AlreadyClaimed as exc:
            logger.info("Order %s already claimed by another driver", order_id)
            self.board.discard(order_id)
            self.store.publish(
                OrderClaimedElsewhere(order_id, CLAIMED_ELSEWHERE_MESSAGE)
            )
            return AcceptanceResult(
                accepted=False,
                message=CLAIMED_ELSEWHERE_MESSAGE,
                error=exc,
                informational=True,
            )
        except OrderNotFound as exc:
            logger.warning("Order %s vanished before it could be accepted", order_id)
            self.board.discard(order_id)
            return AcceptanceResult(
                accepted=False, message="This order is no longer available.", error=exc
            )
        except NetworkFailure as exc:
            logger.warning("Accepting order %s failed: %s", order_id, exc)
            return AcceptanceResult(
                accepted=False,
                message="Could not reach the server. Please try again.",
                error=exc,
            )

        if order.status is not OrderStatus.MATCHED:
            logger.warning(
                "Backend accepted %s with status %s", order_id, order.status.value
            )
        self.store.upsert(order, WriteSource.CONFIRMED)
        self.board.discard(order_id)
        logger.info("Driver %s accepted order %s", driver_id, order_id)
        return AcceptanceResult(accepted=True, order=order, message="Order accepted.")
