"""
Backend API client.

``BackendClient`` is the contract the sync layer depends on; tests swap in
fakes.  ``HttpBackendClient`` implements it over ``httpx.AsyncClient``.

Retry policy
------------
The client itself never retries.  ``get_order`` and ``list_order_history``
are idempotent and the reconciliation loop re-issues them on its own
cadence; ``create_order``, ``accept_order``, ``cancel_order`` and
``update_order_status`` are left to the caller.

Status mapping
--------------
=============================  ======================================
HTTP                           raised
=============================  ======================================
401, 403                       ``Unauthorized``
404                            ``OrderNotFound``
409 on ``/driver/grab``        ``AlreadyClaimed``
408, 429, 5xx, transport       ``NetworkFailure``
client timeout                 ``BackendTimeout``
other 4xx, undecodable body    ``BackendRejected``
=============================  ======================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, Protocol, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ridesync.config import Settings, settings as default_settings
from ridesync.domain.entities import HistoryPage, Order, OrderRequest
from ridesync.domain.enums import OrderStatus
from ridesync.domain.errors import (
    AlreadyClaimed,
    BackendRejected,
    BackendTimeout,
    NetworkFailure,
    OrderNotFound,
    Unauthorized,
)
from .wire import (
    CancelPayload,
    DriverStatusPayload,
    GrabPayload,
    HistoryPayload,
    OrderPayload,
    OrderRequestPayload,
    StatusUpdatePayload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_TRANSIENT_STATUSES = {408, 429}


class BackendClient(Protocol):
    async def create_order(self, request: OrderRequest) -> Order: ...

    async def get_order(self, order_id: str) -> Order: ...

    async def update_order_status(
        self, order_id: str, status: OrderStatus
    ) -> Order: ...

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> None: ...

    async def list_order_history(
        self, cursor: Optional[str], limit: int
    ) -> HistoryPage: ...

    async def list_available_orders(self) -> list[Order]: ...

    async def accept_order(self, order_id: str, driver_id: str) -> Order: ...

    async def update_driver_status(self, online: bool) -> None: ...


async def call_with_deadline(call: Awaitable[T], timeout_ms: Optional[int]) -> T:
    """Await *call*, turning an expired deadline into ``BackendTimeout``."""
    if not timeout_ms:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise BackendTimeout(f"Backend call exceeded {timeout_ms} ms") from exc


class HttpBackendClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        *,
        config: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token or config.access_token
        timeout_ms = timeout_ms if timeout_ms is not None else config.backend_timeout_ms
        self._client = httpx.AsyncClient(
            base_url=base_url or config.backend_base_url,
            timeout=httpx.Timeout(timeout_ms / 1000),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def set_access_token(self, token: Optional[str]) -> None:
        self.access_token = token

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    # ── Orders ────────────────────────────────────────────────────────

    async def create_order(self, request: OrderRequest) -> Order:
        body = OrderRequestPayload.from_entity(request)
        resp = await self._send("POST", "/api/order", json=_dump(body))
        return _parse(resp, OrderPayload).to_entity()

    async def get_order(self, order_id: str) -> Order:
        resp = await self._send("GET", _order_path(order_id), order_id=order_id)
        return _parse(resp, OrderPayload).to_entity()

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        resp = await self._send(
            "PUT",
            _order_path(order_id, "status"),
            json=_dump(StatusUpdatePayload(status=status)),
            order_id=order_id,
        )
        return _parse(resp, OrderPayload).to_entity()

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> None:
        await self._send(
            "PUT",
            _order_path(order_id, "cancel"),
            json=_dump(CancelPayload(reason=reason)),
            order_id=order_id,
        )

    async def list_order_history(self, cursor: Optional[str], limit: int) -> HistoryPage:
        params: dict[str, Any] = {"limit": limit}
        if cursor is not None:
            params["cursor"] = cursor
        resp = await self._send("GET", "/api/order/history", params=params)
        return _parse(resp, HistoryPayload).to_entity()

    # ── Driver matching ───────────────────────────────────────────────

    async def list_available_orders(self) -> list[Order]:
        resp = await self._send("GET", "/api/matching/driver/orders")
        try:
            items = resp.json()
            return [OrderPayload.model_validate(item).to_entity() for item in items]
        except (ValueError, TypeError, ValidationError) as exc:
            raise BackendRejected(f"Malformed available-orders body: {exc}") from exc

    async def update_driver_status(self, online: bool) -> None:
        await self._send(
            "POST",
            "/api/matching/driver/status",
            json=_dump(DriverStatusPayload(is_online=online)),
        )

    async def accept_order(self, order_id: str, driver_id: str) -> Order:
        try:
            resp = await self._send(
                "POST",
                "/api/matching/driver/grab",
                json=_dump(GrabPayload(order_id=order_id, driver_id=driver_id)),
                order_id=order_id,
            )
        except BackendRejected as exc:
            if exc.status_code == 409:
                raise AlreadyClaimed(order_id) from exc
            raise
        return _parse(resp, OrderPayload).to_entity()

    # ── Internals ─────────────────────────────────────────────────────

    async def _send(
        self, method: str, path: str, *, order_id: Optional[str] = None, **kwargs
    ) -> httpx.Response:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise BackendTimeout(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc

        logger.debug("%s %s -> %d", method, path, resp.status_code)
        _raise_for_status(resp, order_id)
        return resp


def _order_path(order_id: str, action: str = "") -> str:
    path = f"/api/order/{quote(order_id, safe='')}"
    return f"{path}/{action}" if action else path


def _raise_for_status(resp: httpx.Response, order_id: Optional[str]) -> None:
    code = resp.status_code
    if 200 <= code < 300:
        return
    if code in (401, 403):
        raise Unauthorized(_detail(resp) or "Authentication required")
    if code == 404:
        raise OrderNotFound(order_id)
    if code in _TRANSIENT_STATUSES or code >= 500:
        raise NetworkFailure(f"Backend unavailable ({code})")
    raise BackendRejected(_detail(resp) or f"Request rejected ({code})", code)


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or "")
    return ""


def _parse(resp: httpx.Response, model: type[M]) -> M:
    try:
        return model.model_validate(resp.json())
    except (ValueError, ValidationError) as exc:
        raise BackendRejected(f"Malformed response body: {exc}") from exc


def _dump(payload: BaseModel) -> dict:
    return payload.model_dump(mode="json")
