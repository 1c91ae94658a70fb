"""
Integration tests for the local gateway endpoints.

The app is built around a ``SyncContext`` wired to ``FakeBackend``; the
ASGI transport does not run lifespan events, so the fixture stops the
context itself.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridesync.api.app import create_app
from ridesync.api.middleware import limiter
from ridesync.domain.enums import OrderStatus, WriteSource
from ridesync.domain.errors import NetworkFailure, Unauthorized
from ridesync.services.context import SyncContext
from tests.conftest import AIRPORT, DOWNTOWN, FakeBackend, make_order, wait_until

S = OrderStatus

ORDER_BODY = {
    "pickup_location": {"latitude": 37.7749, "longitude": -122.4194,
                        "address": "123 Main St"},
    "destination": {"latitude": 37.6213, "longitude": -122.379, "address": "SFO"},
    "passenger_count": 2,
    "luggage_count": 1,
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def ctx():
    context = SyncContext.build(backend=FakeBackend(), interval=0.01)
    yield context
    await context.stop()


@pytest_asyncio.fixture
async def client(ctx):
    limiter.reset()
    app = create_app(ctx)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _seed(ctx, order):
    ctx.backend.put(order)
    ctx.store.upsert(order, WriteSource.CONFIRMED)
    return order


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_order_returns_202(client: AsyncClient, ctx):
    resp = await client.post("/api/v1/orders", json=ORDER_BODY)
    assert resp.status_code == 202
    data = resp.json()
    assert data["id"] == "N1"
    assert data["status"] == "pending"
    assert data["passenger_count"] == 2
    assert ctx.reconciler.is_tracking("N1")


@pytest.mark.asyncio
async def test_create_order_validates_body(client: AsyncClient):
    resp = await client.post("/api/v1/orders", json={**ORDER_BODY, "passenger_count": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_order(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    resp = await client.get("/api/v1/orders/O1")
    assert resp.status_code == 200
    assert resp.json()["status"] == "matched"
    assert resp.json()["syncing"] is False


@pytest.mark.asyncio
async def test_get_order_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/orders/nope")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cancel_matched_order(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    resp = await client.post("/api/v1/orders/O1/cancel", json={"reason": "delayed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert ctx.backend.orders["O1"].status is S.CANCELLED


@pytest.mark.asyncio
async def test_cancel_in_progress_order_fails(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.IN_PROGRESS))
    resp = await client.post("/api/v1/orders/O1/cancel", json={})
    assert resp.status_code == 409
    assert ctx.backend.count("cancel_order") == 0


@pytest.mark.asyncio
async def test_cancel_network_failure_is_503(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    ctx.backend.fail("cancel_order", NetworkFailure("offline"))
    resp = await client.post("/api/v1/orders/O1/cancel", json={})
    assert resp.status_code == 503
    assert ctx.store.get("O1").status is S.MATCHED


@pytest.mark.asyncio
async def test_update_status(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    resp = await client.put("/api/v1/orders/O1/status", json={"status": "driver_en_route"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "driver_en_route"

    resp = await client.put("/api/v1/orders/O1/status", json={"status": "completed"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_going_offline_clears_available(client: AsyncClient, ctx):
    ctx.backend.put(make_order("A"), available=True)
    await client.post("/api/v1/orders/available/refresh")

    resp = await client.post("/api/v1/orders/available/online", json={"online": False})
    assert resp.status_code == 200
    assert resp.json() == []
    assert (await client.get("/api/v1/orders/available")).json() == []

    resp = await client.post("/api/v1/orders/available/online", json={"online": True})
    assert [o["id"] for o in resp.json()] == ["A"]


@pytest.mark.asyncio
async def test_available_and_accept(client: AsyncClient, ctx):
    ctx.backend.put(make_order("A", pickup=AIRPORT), available=True)
    ctx.backend.put(make_order("B", pickup=DOWNTOWN), available=True)

    resp = await client.post("/api/v1/orders/available/refresh")
    assert resp.status_code == 200
    assert len(resp.json()) == 2

    resp = await client.get(
        "/api/v1/orders/available",
        params={"lat": DOWNTOWN.latitude, "lng": DOWNTOWN.longitude},
    )
    assert [o["id"] for o in resp.json()] == ["B", "A"]

    resp = await client.post("/api/v1/orders/B/accept", json={"driver_id": "D1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["accepted"] is True
    assert data["order"]["driver_id"] == "D1"
    assert ctx.reconciler.is_tracking("B")


@pytest.mark.asyncio
async def test_accept_lost_race_is_not_an_error(client: AsyncClient, ctx):
    ctx.backend.put(make_order("A", driver_id="someone-else"), available=True)
    resp = await client.post("/api/v1/orders/A/accept", json={"driver_id": "D1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["accepted"] is False
    assert data["informational"] is True
    assert "another driver" in data["message"]


@pytest.mark.asyncio
async def test_accept_requires_driver_id(client: AsyncClient, ctx):
    ctx.backend.put(make_order("A"), available=True)
    resp = await client.post("/api/v1/orders/A/accept", json={})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_accept_unauthorized_is_401(client: AsyncClient, ctx):
    ctx.backend.put(make_order("A"), available=True)
    ctx.backend.fail("accept_order", Unauthorized("token expired"))
    resp = await client.post("/api/v1/orders/A/accept", json={"driver_id": "D1"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_history_accumulates(client: AsyncClient, ctx):
    ctx.backend.history = [make_order(f"H{i}", S.COMPLETED) for i in range(3)]

    resp = await client.get("/api/v1/history", params={"limit": 2})
    data = resp.json()
    assert [o["id"] for o in data["orders"]] == ["H0", "H1"]
    assert data["has_more"] is True

    resp = await client.get(
        "/api/v1/history", params={"cursor": data["next_cursor"], "limit": 2}
    )
    data = resp.json()
    assert [o["id"] for o in data["orders"]] == ["H0", "H1", "H2"]
    assert data["has_more"] is False


@pytest.mark.asyncio
async def test_track_and_acknowledge(client: AsyncClient, ctx):
    _seed(ctx, make_order("O3", S.IN_PROGRESS))
    ctx.backend.put(make_order("O3", S.COMPLETED, version=1))

    resp = await client.post("/api/v1/orders/O3/track")
    assert resp.status_code == 202
    await wait_until(lambda: ctx.store.get("O3").status is S.COMPLETED)

    resp = await client.post("/api/v1/orders/O3/acknowledge")
    assert resp.status_code == 204
    assert ctx.store.get("O3") is None


@pytest.mark.asyncio
async def test_acknowledge_active_order_conflicts(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    resp = await client.post("/api/v1/orders/O1/acknowledge")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_suspend_and_resume(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    await client.post("/api/v1/orders/O1/track")

    resp = await client.post("/api/v1/admin/suspend")
    data = resp.json()
    assert data["suspended"] is True
    assert data["orders"][0]["order_id"] == "O1"
    assert data["orders"][0]["tracking"] is False

    resp = await client.post("/api/v1/admin/resume")
    data = resp.json()
    assert data["suspended"] is False
    assert data["orders"][0]["tracking"] is True


@pytest.mark.asyncio
async def test_untrack(client: AsyncClient, ctx):
    _seed(ctx, make_order("O1", S.MATCHED))
    await client.post("/api/v1/orders/O1/track")

    resp = await client.delete("/api/v1/orders/O1/track")
    assert resp.status_code == 204

    resp = await client.get("/api/v1/admin/tracking")
    assert resp.json()["orders"] == []
