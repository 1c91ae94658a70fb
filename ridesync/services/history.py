"""
Cursor-based order history.

The first page (cursor ``None``) replaces the local list; later pages are
appended, skipping ids already listed.  For any id the order store also
knows, the store's value wins over the paginated snapshot, and the list
follows later store changes through a subscription.

``has_more`` is taken from the backend verbatim: a short page does not mean
the end, and an empty page does not mean there is nothing after it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ridesync.domain.entities import HistoryPage, Order
from ridesync.domain.enums import OrderStatus
from ridesync.domain.events import OrderChanged
from ridesync.infrastructure.backend import BackendClient
from ridesync.infrastructure.order_store import OrderStore

logger = logging.getLogger(__name__)


class HistoryPaginator:
    def __init__(
        self,
        backend: BackendClient,
        store: OrderStore,
        page_size: int = 20,
    ):
        self.backend = backend
        self.store = store
        self.page_size = page_size

        self._orders: list[Order] = []
        self._index: dict[str, int] = {}
        self.next_cursor: Optional[str] = None
        self.has_more = True
        self.is_loading = False

        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(
            self._on_store_event
        )

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    async def load_page(
        self, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> HistoryPage:
        self.is_loading = True
        try:
            page = await self.backend.list_order_history(cursor, limit or self.page_size)
        finally:
            self.is_loading = False

        if cursor is None:
            self._orders = []
            self._index = {}

        added = 0
        for order in page.orders:
            current = self.store.get(order.id) or order
            if order.id in self._index:
                self._orders[self._index[order.id]] = current
                continue
            self._index[order.id] = len(self._orders)
            self._orders.append(current)
            added += 1

        self.next_cursor = page.next_cursor
        self.has_more = page.has_more
        logger.debug(
            "History page loaded: %d orders (%d new), has_more=%s",
            len(page), added, page.has_more,
        )
        return page

    async def load_more(self) -> Optional[HistoryPage]:
        if not self.has_more or self.is_loading:
            return None
        return await self.load_page(self.next_cursor)

    async def refresh(self) -> HistoryPage:
        return await self.load_page(None)

    def close(self) -> None:
        """Stop following store changes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ── Filters ───────────────────────────────────────────────────────

    def by_status(self, status: OrderStatus) -> list[Order]:
        return [o for o in self._orders if o.status is status]

    def active_orders(self) -> list[Order]:
        return [o for o in self._orders if o.is_active]

    def completed_orders(self) -> list[Order]:
        return self.by_status(OrderStatus.COMPLETED)

    def _on_store_event(self, event: object) -> None:
        if isinstance(event, OrderChanged) and event.order.id in self._index:
            self._orders[self._index[event.order.id]] = event.order
