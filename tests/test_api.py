"""End-to-end API tests: estimate, submit, usage and plan changes over HTTP."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import uuid
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from unittest.mock import AsyncMock, patch

from db.database import get_db
from main import app
from models.payment import Payment


@pytest.fixture
def redis_mock():
    with patch("services.quote_store.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_get_redis.return_value = mock_conn
        yield mock_conn


@pytest_asyncio.fixture
async def client(session_factory, redis_mock):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _as(user) -> dict:
    return {"X-User-Id": str(user.id)}


def _remember_last_quote(redis_mock):
    """Make hgetall return whatever the last hset stored."""
    redis_mock.hgetall.return_value = redis_mock.hset.call_args.kwargs["mapping"]


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_catalog_listing(client):
    services = (await client.get("/api/services/")).json()
    assert [s["name"] for s in services][:4] == ["standard_bag", "rush_bag", "additional_bag", "bedding"]
    assert services[0]["base_price"] == "30.00"
    assert services[0]["kind"] == "ENTITLEMENT"

    plans = (await client.get("/api/subscriptions/plans")).json()
    assert [(p["name"], p["price_per_month"]) for p in plans] == [
        ("Fresh Start", "48.00"), ("Family Fresh", "130.00"), ("House Fresh", "240.00"),
    ]


@pytest.mark.asyncio
async def test_unknown_user_rejected(client, catalog):
    bag = catalog.service_by_name("standard_bag").id
    body = {"pickup_date": "2026-03-18", "items": [{"service_id": bag, "quantity": 1}]}
    resp = await client.post("/api/orders/estimate", json=body, headers={"X-User-Id": str(uuid.uuid4())})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_estimate_then_submit(client, redis_mock, catalog, make_user, make_subscription, add_order):
    """Family Fresh with 5 of 6 used: last bag covered, rush and scent booster charged."""
    user = await make_user(with_card=True)
    sub = await make_subscription(user, "Family Fresh")
    await add_order(user, sub, [("standard_bag", 5, True)])

    items = [
        {"service_id": catalog.service_by_name("standard_bag").id, "quantity": 1},
        {"service_id": catalog.service_by_name("rush_bag").id, "quantity": 1},
        {"service_id": catalog.service_by_name("scent_booster").id, "quantity": 1},
    ]
    resp = await client.post(
        "/api/orders/estimate", json={"pickup_date": "2026-03-18", "items": items}, headers=_as(user),
    )
    assert resp.status_code == 200
    estimate = resp.json()
    assert estimate["final_subtotal"] == "13.00"
    assert estimate["tax"] == "0.78"
    assert estimate["total"] == "13.78"
    assert estimate["covered_bags"] == 1
    assert estimate["subscription_id"] == str(sub.id)
    assert estimate["quote_id"]
    _remember_last_quote(redis_mock)

    resp = await client.post(
        "/api/orders/",
        json={"pickup_date": "2026-03-18", "items": items, "quote_id": estimate["quote_id"]},
        headers=_as(user),
    )
    assert resp.status_code == 200
    order = resp.json()
    assert order["total"] == "13.78"
    assert order["requires_payment"] is True
    assert order["items"][0]["is_covered"] is True
    redis_mock.delete.assert_called_once_with(f"quote:{estimate['quote_id']}")

    usage = (await client.get(
        f"/api/subscriptions/{sub.id}/usage", params={"as_of": "2026-03-18"}, headers=_as(user),
    )).json()
    assert usage["bags_used"] == 6
    assert usage["bags_remaining"] == 0
    assert usage["orders_count"] == 2

    listed = (await client.get("/api/orders/", headers=_as(user))).json()
    assert order["id"] in [o["id"] for o in listed]


@pytest.mark.asyncio
async def test_stale_quote_conflict(client, redis_mock, catalog, make_user, make_subscription, add_order):
    """The last free bag was taken after the estimate: submission is refused with 409."""
    user = await make_user()
    sub = await make_subscription(user, "Fresh Start")
    await add_order(user, sub, [("standard_bag", 1, True)])
    items = [{"service_id": catalog.service_by_name("standard_bag").id, "quantity": 1}]

    estimate = (await client.post(
        "/api/orders/estimate", json={"pickup_date": "2026-03-18", "items": items}, headers=_as(user),
    )).json()
    assert estimate["covered_bags"] == 1
    _remember_last_quote(redis_mock)

    await add_order(user, sub, [("standard_bag", 1, True)])

    resp = await client.post(
        "/api/orders/",
        json={"pickup_date": "2026-03-18", "items": items, "quote_id": estimate["quote_id"]},
        headers=_as(user),
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "entitlement_exhausted"
    assert body["remaining"] == "0"


@pytest.mark.asyncio
async def test_expired_quote(client, redis_mock, catalog, make_user):
    user = await make_user()
    redis_mock.hgetall.return_value = {}
    items = [{"service_id": catalog.service_by_name("bedding").id, "quantity": 1}]
    resp = await client.post(
        "/api/orders/",
        json={"pickup_date": "2026-03-18", "items": items, "quote_id": "expired"},
        headers=_as(user),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "quote_expired"


@pytest.mark.asyncio
async def test_invalid_items(client, make_user):
    user = await make_user()
    resp = await client.post(
        "/api/orders/estimate",
        json={"pickup_date": "2026-03-18", "items": [{"service_id": 9999, "quantity": 1}]},
        headers=_as(user),
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_order_items"


@pytest.mark.asyncio
async def test_idempotent_submission(client, catalog, make_user):
    user = await make_user(with_card=True)
    key = str(uuid.uuid4())
    body = {
        "pickup_date": "2026-03-18",
        "items": [{"service_id": catalog.service_by_name("bedding").id, "quantity": 1}],
        "idempotency_key": key,
    }
    first = (await client.post("/api/orders/", json=body, headers=_as(user))).json()
    second = (await client.post("/api/orders/", json=body, headers=_as(user))).json()
    assert first["id"] == second["id"]


@pytest.mark.asyncio
async def test_idempotency_key_scoped_to_customer(client, catalog, make_user):
    """Another customer reusing the same key gets their own order, never the first one's."""
    alice = await make_user(with_card=True)
    bob = await make_user(with_card=True)
    body = {
        "pickup_date": "2026-03-18",
        "items": [{"service_id": catalog.service_by_name("bedding").id, "quantity": 1}],
        "idempotency_key": str(uuid.uuid4()),
    }
    alices = await client.post("/api/orders/", json=body, headers=_as(alice))
    bobs = await client.post("/api/orders/", json=body, headers=_as(bob))

    assert alices.status_code == bobs.status_code == 200
    assert bobs.json()["user_id"] == str(bob.id)
    assert bobs.json()["id"] != alices.json()["id"]


@pytest.mark.asyncio
async def test_order_status_only_by_owner(client, make_user, make_subscription, add_order):
    """A different customer cannot cancel someone else's order or free their allowance."""
    alice, mallory = await make_user(), await make_user()
    sub = await make_subscription(alice, "Fresh Start")
    order = await add_order(alice, sub, [("standard_bag", 2, True)])

    resp = await client.patch(
        f"/api/orders/{order.id}/status", json={"status": "cancelled"}, headers=_as(mallory),
    )
    assert resp.status_code == 404

    resp = await client.patch(f"/api/orders/{order.id}/status", json={"status": "cancelled"})
    assert resp.status_code == 422  # X-User-Id header missing

    usage = (await client.get(
        f"/api/subscriptions/{sub.id}/usage", params={"as_of": "2026-03-18"}, headers=_as(alice),
    )).json()
    assert usage["bags_remaining"] == 0
    order_view = (await client.get(f"/api/orders/{order.id}", headers=_as(alice))).json()
    assert order_view["status"] == "scheduled"


@pytest.mark.asyncio
async def test_cancelled_order_cannot_reopen(client, catalog, make_user, make_subscription, add_order):
    user = await make_user()
    sub = await make_subscription(user, "Fresh Start")
    order = await add_order(user, sub, [("standard_bag", 2, True)])

    resp = await client.patch(f"/api/orders/{order.id}/status", json={"status": "cancelled"}, headers=_as(user))
    assert resp.status_code == 200
    usage = (await client.get(
        f"/api/subscriptions/{sub.id}/usage", params={"as_of": "2026-03-18"}, headers=_as(user),
    )).json()
    assert usage["bags_remaining"] == 2

    resp = await client.patch(f"/api/orders/{order.id}/status", json={"status": "scheduled"}, headers=_as(user))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_usage_outside_period(client, make_user, make_subscription):
    user = await make_user()
    sub = await make_subscription(user)
    resp = await client.get(
        f"/api/subscriptions/{sub.id}/usage", params={"as_of": "2026-04-02"}, headers=_as(user),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "no_active_period"


@pytest.mark.asyncio
async def test_preview_plan_change(client, catalog, make_user, make_subscription):
    user = await make_user()
    sub = await make_subscription(user, "Fresh Start")
    house = [p for p in catalog.active_plans() if p.name == "House Fresh"][0]

    resp = await client.post(
        f"/api/subscriptions/{sub.id}/preview-change",
        json={"new_plan_id": house.id, "as_of": "2026-03-21"},
        headers=_as(user),
    )
    assert resp.status_code == 200
    preview = resp.json()
    assert preview["immediate_charge"] == "64.00"
    assert preview["immediate_credit"] == "0.00"
    assert preview["requires_payment_method"] is True
    assert preview["new_billing_date"] == "2026-03-31"


@pytest.mark.asyncio
async def test_subscribe_and_upgrade(client, session_factory, catalog, make_user):
    plans = {p.name: p for p in catalog.active_plans()}

    no_card = await make_user()
    sub = (await client.post(
        "/api/subscriptions/", json={"plan_id": plans["Fresh Start"].id}, headers=_as(no_card),
    )).json()
    assert sub["current_period_start"] == date.today().isoformat()

    resp = await client.patch(
        f"/api/subscriptions/{sub['id']}", json={"plan_id": plans["Family Fresh"].id}, headers=_as(no_card),
    )
    assert resp.status_code == 402
    assert resp.json()["error"] == "payment_method_required"

    with_card = await make_user(with_card=True)
    sub = (await client.post(
        "/api/subscriptions/", json={"plan_id": plans["Fresh Start"].id}, headers=_as(with_card),
    )).json()
    resp = await client.patch(
        f"/api/subscriptions/{sub['id']}", json={"plan_id": plans["Family Fresh"].id}, headers=_as(with_card),
    )
    assert resp.status_code == 200
    assert resp.json()["plan_id"] == plans["Family Fresh"].id

    async with session_factory() as s:
        payment = (await s.execute(select(Payment).where(Payment.user_id == with_card.id))).scalar_one()
    # Changed on the first day of the period: the full price difference
    assert payment.payment_type == "proration_charge"
    assert payment.amount_cents == 13000 - 4800
    assert payment.currency == "usd"


@pytest.mark.asyncio
async def test_single_active_subscription(client, catalog, make_user):
    user = await make_user()
    plan_id = catalog.active_plans()[0].id
    first = await client.post("/api/subscriptions/", json={"plan_id": plan_id}, headers=_as(user))
    assert first.status_code == 200
    second = await client.post("/api/subscriptions/", json={"plan_id": plan_id}, headers=_as(user))
    assert second.status_code == 400

    cancelled = await client.post(f"/api/subscriptions/{first.json()['id']}/cancel", headers=_as(user))
    assert cancelled.json()["status"] == "cancelled"
    resp = await client.patch(
        f"/api/subscriptions/{first.json()['id']}", json={"status": "active"}, headers=_as(user),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_resume_and_change_plan_together(client, session_factory, catalog, make_user):
    """Resuming a paused subscription and downgrading in one request applies both."""
    plans = {p.name: p for p in catalog.active_plans()}
    user = await make_user()
    sub = (await client.post(
        "/api/subscriptions/", json={"plan_id": plans["Family Fresh"].id}, headers=_as(user),
    )).json()
    paused = await client.patch(f"/api/subscriptions/{sub['id']}", json={"status": "paused"}, headers=_as(user))
    assert paused.json()["status"] == "paused"

    resp = await client.patch(
        f"/api/subscriptions/{sub['id']}",
        json={"status": "active", "plan_id": plans["Fresh Start"].id},
        headers=_as(user),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "active"
    assert resp.json()["plan_id"] == plans["Fresh Start"].id

    async with session_factory() as s:
        payment = (await s.execute(select(Payment).where(Payment.user_id == user.id))).scalar_one()
    assert payment.payment_type == "proration_credit"
    assert payment.amount_cents == 13000 - 4800


@pytest.mark.asyncio
async def test_plan_change_while_paused_rejected(client, catalog, make_user):
    plans = {p.name: p for p in catalog.active_plans()}
    user = await make_user()
    sub = (await client.post(
        "/api/subscriptions/", json={"plan_id": plans["Family Fresh"].id}, headers=_as(user),
    )).json()
    await client.patch(f"/api/subscriptions/{sub['id']}", json={"status": "paused"}, headers=_as(user))

    resp = await client.patch(
        f"/api/subscriptions/{sub['id']}", json={"plan_id": plans["Fresh Start"].id}, headers=_as(user),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "no_active_period"


@pytest.mark.asyncio
async def test_service_lookup_by_name(client):
    resp = await client.get("/api/services/pickup_service")
    assert resp.status_code == 200
    assert resp.json()["kind"] == "PAY_AS_YOU_GO"
    assert resp.json()["base_price"] == "10.00"

    missing = await client.get("/api/services/dry_cleaning")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"
