"""Catalog seed data — current plans and service prices, integer cents."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.catalog import SubscriptionPlan, Service

logger = logging.getLogger(__name__)

PLANS = [
    {
        "name": "Fresh Start",
        "description": "Single/Student Plan - 2 Standard Bag pickups per month (~4 loads)",
        "price_per_month_cents": 4800,
        "pickups_per_month": 2,
    },
    {
        "name": "Family Fresh",
        "description": "Most Popular - 6 Standard Bag pickups per month (~12 loads)",
        "price_per_month_cents": 13000,
        "pickups_per_month": 6,
    },
    {
        "name": "House Fresh",
        "description": "Large Family Plan - 12 Standard Bag pickups per month (~24 loads)",
        "price_per_month_cents": 24000,
        "pickups_per_month": 12,
    },
]

SERVICES = [
    {"name": "standard_bag", "description": "Standard Bag (22\"x33\", ~2 loads)", "base_price_cents": 3000, "kind": "ENTITLEMENT"},
    {"name": "rush_bag", "description": "Rush Service (faster turnaround)", "base_price_cents": 1000, "kind": "ADDON"},
    {"name": "additional_bag", "description": "Additional Standard Bag", "base_price_cents": 3000, "kind": "ADDON"},
    {"name": "bedding", "description": "Bedding", "base_price_cents": 2500, "kind": "ADDON"},
    {"name": "pickup_service", "description": "Pickup and delivery service", "base_price_cents": 1000, "kind": "PAY_AS_YOU_GO"},
    {"name": "sensitive_skin_detergent", "description": "Sensitive Skin Detergent add-on", "base_price_cents": 300, "kind": "ADDON"},
    {"name": "scent_booster", "description": "Scent Booster add-on", "base_price_cents": 300, "kind": "ADDON"},
]


async def seed_catalog(db: AsyncSession) -> None:
    """Insert plans and services that are missing (matched by name)."""
    existing_plans = set((await db.execute(select(SubscriptionPlan.name))).scalars().all())
    existing_services = set((await db.execute(select(Service.name))).scalars().all())

    for plan in PLANS:
        if plan["name"] not in existing_plans:
            db.add(SubscriptionPlan(**plan))
    for service in SERVICES:
        if service["name"] not in existing_services:
            db.add(Service(**service))

    await db.commit()
    logger.info("Catalog seeded: %d plans, %d services", len(PLANS), len(SERVICES))
