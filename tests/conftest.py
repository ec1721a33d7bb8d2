"""Shared fixtures: a throwaway SQLite database with the seeded catalog."""

import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

# Must be set before config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import uuid
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from db.database import Base
from db.seed import seed_catalog
import models  # noqa: F401  (registers every table on Base.metadata)
from models.catalog import SubscriptionPlan
from models.order import Order, OrderItem
from models.subscription import Subscription
from models.user import User
from services.catalog import (
    Catalog, PlanInfo, ServiceInfo, ServiceKind, load_catalog,
)

PERIOD_START = date(2026, 3, 1)
PERIOD_END = date(2026, 3, 31)  # 30-day period


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tumble-test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        await seed_catalog(session)
    return factory


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db) -> Catalog:
    return await load_catalog(db)


@pytest_asyncio.fixture
async def make_user(db):
    async def _make(with_card: bool = False) -> User:
        user = User(
            email=f"{uuid.uuid4().hex[:8]}@example.com",
            first_name="Jane",
            last_name="Customer",
            default_payment_method_id="pm_card_visa" if with_card else None,
        )
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest_asyncio.fixture
async def make_subscription(db):
    async def _make(user: User, plan_name: str = "Family Fresh", status: str = "active") -> Subscription:
        plan_id = (await db.execute(
            select(SubscriptionPlan.id).where(SubscriptionPlan.name == plan_name)
        )).scalar_one()
        sub = Subscription(
            user_id=user.id,
            plan_id=plan_id,
            status=status,
            current_period_start=PERIOD_START,
            current_period_end=PERIOD_END,
        )
        db.add(sub)
        await db.commit()
        await db.refresh(sub, ["plan"])
        return sub
    return _make


@pytest_asyncio.fixture
async def add_order(db, catalog):
    """Insert a historical order directly, bypassing pricing."""
    async def _add(
        user: User,
        subscription: Subscription | None,
        lines: list[tuple[str, int, bool]],
        pickup_date: date = date(2026, 3, 10),
        status: str = "scheduled",
    ) -> Order:
        order = Order(
            order_number=f"TMB-TEST-{uuid.uuid4().hex[:4].upper()}",
            user_id=user.id,
            subscription_id=subscription.id if subscription else None,
            pickup_date=pickup_date,
            subtotal_cents=0,
            tax_cents=0,
            total_cents=0,
            status=status,
        )
        for name, quantity, covered in lines:
            service = catalog.service_by_name(name)
            price = 0 if covered else service.base_price_cents
            order.items.append(OrderItem(
                service_id=service.id,
                quantity=quantity,
                price_cents=price,
                list_price_cents=service.base_price_cents,
                is_covered=covered,
            ))
        db.add(order)
        await db.commit()
        return order
    return _add


# ── Pure catalog (no database) ─────────────────────────────

@pytest.fixture
def static_catalog() -> Catalog:
    services = [
        ServiceInfo(1, "standard_bag", 3000, ServiceKind.ENTITLEMENT),
        ServiceInfo(2, "rush_bag", 1000, ServiceKind.ADDON),
        ServiceInfo(3, "additional_bag", 3000, ServiceKind.ADDON),
        ServiceInfo(4, "bedding", 2500, ServiceKind.ADDON),
        ServiceInfo(5, "pickup_service", 1000, ServiceKind.PAY_AS_YOU_GO),
        ServiceInfo(6, "sensitive_skin_detergent", 300, ServiceKind.ADDON),
        ServiceInfo(7, "scent_booster", 300, ServiceKind.ADDON),
        ServiceInfo(8, "ironing", 1500, ServiceKind.ADDON, is_active=False),
    ]
    plans = [
        PlanInfo(1, "Fresh Start", 4800, 2),
        PlanInfo(2, "Family Fresh", 13000, 6),
        PlanInfo(3, "House Fresh", 24000, 12),
        PlanInfo(4, "Bi-Weekly Standard", 9000, 2),
        PlanInfo(5, "Legacy Weekly", 17000, 4, is_active=False),
    ]
    return Catalog(
        plans={p.id: p for p in plans},
        services={s.id: s for s in services},
    )
