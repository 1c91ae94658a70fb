"""
Composition root for the sync layer.

``SyncContext`` is built once by the host application and handed to
whoever needs it; there is no module-level shared state.  Its lifecycle
(``start`` / ``stop``) belongs to the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ridesync.config import Settings, settings as default_settings
from ridesync.infrastructure.backend import BackendClient, HttpBackendClient
from ridesync.infrastructure.order_store import OrderStore
from ridesync.services.acceptance import AcceptanceArbiter, AvailableOrderBoard
from ridesync.services.history import HistoryPaginator
from ridesync.services.orders import OrderService
from ridesync.workers.reconciler import Reconciler

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    config: Settings
    backend: BackendClient
    store: OrderStore
    reconciler: Reconciler
    board: AvailableOrderBoard
    arbiter: AcceptanceArbiter
    history: HistoryPaginator
    orders: OrderService

    @classmethod
    def build(
        cls,
        backend: Optional[BackendClient] = None,
        config: Settings = default_settings,
        **reconciler_options,
    ) -> SyncContext:
        backend = backend or HttpBackendClient(config=config)
        store = OrderStore()
        reconciler = Reconciler(store, backend, config=config, **reconciler_options)
        board = AvailableOrderBoard(backend)
        arbiter = AcceptanceArbiter(backend, store, board)
        return cls(
            config=config,
            backend=backend,
            store=store,
            reconciler=reconciler,
            board=board,
            arbiter=arbiter,
            history=HistoryPaginator(backend, store, config.history_page_size),
            orders=OrderService(backend, store, reconciler, arbiter),
        )

    async def start(self) -> None:
        await self.reconciler.start()

    async def stop(self) -> None:
        await self.reconciler.stop()
        self.history.close()
        close = getattr(self.backend, "aclose", None)
        if close is not None:
            await close()
        logger.info("Sync context stopped")
