"""
Usage Accountant — how much of a subscription's allowance a period has consumed.

Nothing is counted incrementally: usage is always derived from order history
(non-cancelled orders, pickup date inside the period, covered entitlement
units), so cancellations and admin corrections can never leave a stale counter.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, func, distinct
from sqlalchemy.ext.asyncio import AsyncSession

from models.catalog import Service
from models.order import Order, OrderItem
from models.subscription import Subscription
from services.catalog import ServiceKind
from services.errors import NoActivePeriod, NotFound


@dataclass(frozen=True)
class UsageSnapshot:
    subscription_id: uuid.UUID
    period_start: date
    period_end: date
    pickups_used: int
    pickups_allowed: int
    pickups_remaining: int
    bags_used: int
    bags_allowed: int
    bags_remaining: int
    orders_count: int


def resolve_period(subscription: Subscription, as_of: date) -> tuple[date, date]:
    """Return the half-open [start, end) period containing `as_of`."""
    if subscription.status != "active":
        raise NoActivePeriod(
            f"Subscription {subscription.id} is {subscription.status}",
            subscription_id=str(subscription.id),
        )
    start, end = subscription.current_period_start, subscription.current_period_end
    if not (start <= as_of < end):
        raise NoActivePeriod(
            f"{as_of.isoformat()} is outside the current period {start.isoformat()}..{end.isoformat()}",
            subscription_id=str(subscription.id),
        )
    return start, end


def usage_from_counts(
    subscription_id: uuid.UUID,
    period_start: date,
    period_end: date,
    allowed: int,
    units_used: int,
    orders_count: int,
) -> UsageSnapshot:
    """Build a snapshot; remaining never goes below zero."""
    remaining = max(0, allowed - units_used)
    # One bag per pickup in every plan, so both counters track the same unit
    return UsageSnapshot(
        subscription_id=subscription_id,
        period_start=period_start,
        period_end=period_end,
        pickups_used=units_used,
        pickups_allowed=allowed,
        pickups_remaining=remaining,
        bags_used=units_used,
        bags_allowed=allowed,
        bags_remaining=remaining,
        orders_count=orders_count,
    )


def _period_filter(subscription_id: uuid.UUID, start: date, end: date):
    return (
        Order.subscription_id == subscription_id,
        Order.status != "cancelled",
        Order.pickup_date >= start,
        Order.pickup_date < end,
    )


async def usage_for_subscription(
    db: AsyncSession,
    subscription: Subscription,
    as_of: date,
) -> UsageSnapshot:
    """Compute usage for an already-loaded subscription (the guard passes a locked row)."""
    start, end = resolve_period(subscription, as_of)
    filters = _period_filter(subscription.id, start, end)

    units_used = (await db.execute(
        select(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, OrderItem.order_id == Order.id)
        .join(Service, OrderItem.service_id == Service.id)
        .where(
            *filters,
            Service.kind == ServiceKind.ENTITLEMENT.value,
            OrderItem.is_covered.is_(True),
        )
    )).scalar() or 0

    orders_count = (await db.execute(
        select(func.count(distinct(Order.id))).where(*filters)
    )).scalar() or 0

    return usage_from_counts(
        subscription_id=subscription.id,
        period_start=start,
        period_end=end,
        allowed=subscription.plan.pickups_per_month,
        units_used=int(units_used),
        orders_count=int(orders_count),
    )


async def compute_usage(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    as_of: date,
) -> UsageSnapshot:
    """Usage for the period of `subscription_id` that contains `as_of`."""
    subscription = (await db.execute(
        select(Subscription).where(Subscription.id == subscription_id)
    )).scalar_one_or_none()
    if subscription is None:
        raise NotFound(f"Subscription {subscription_id} not found")
    return await usage_for_subscription(db, subscription, as_of)
