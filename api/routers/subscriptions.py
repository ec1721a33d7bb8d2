"""Subscription API endpoints — plans, usage, plan-change preview and commit."""

import calendar
import logging
import uuid
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.subscription import Subscription
from models.user import User
from routers.deps import current_user, catalog as get_catalog, payments as get_payments
from schemas import (
    PlanResponse, SubscriptionCreate, SubscriptionUpdate, SubscriptionResponse,
    UsageResponse, PlanChangePreviewRequest, ProrationPreviewResponse,
)
from services.catalog import Catalog, PlanInfo
from services.money import cents_to_dollars
from services.payments import PaymentCollaborator
from services.proration import ProrationPreview, preview_change, apply_change
from services.usage import usage_for_subscription

router = APIRouter()
logger = logging.getLogger(__name__)


def add_one_month(d: date) -> date:
    """Same day next month, clamped to the month's last day (Jan 31 -> Feb 28/29)."""
    year, month = (d.year + 1, 1) if d.month == 12 else (d.year, d.month + 1)
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def plan_response(plan: PlanInfo) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        name=plan.name,
        description=plan.description,
        price_per_month=cents_to_dollars(plan.price_per_month_cents),
        pickups_per_month=plan.pickups_per_month,
    )


def subscription_response(sub: Subscription, catalog: Catalog) -> SubscriptionResponse:
    plan = catalog.plans.get(sub.plan_id)
    return SubscriptionResponse(
        id=sub.id,
        user_id=sub.user_id,
        plan_id=sub.plan_id,
        plan=plan_response(plan) if plan else None,
        status=sub.status,
        current_period_start=sub.current_period_start,
        current_period_end=sub.current_period_end,
        created_at=sub.created_at,
    )


def preview_response(preview: ProrationPreview) -> ProrationPreviewResponse:
    return ProrationPreviewResponse(
        current_plan=plan_response(preview.current_plan),
        new_plan=plan_response(preview.new_plan),
        immediate_charge=cents_to_dollars(preview.immediate_charge),
        immediate_credit=cents_to_dollars(preview.immediate_credit),
        proration_description=preview.proration_description,
        new_billing_date=preview.new_billing_date,
        requires_payment_method=preview.requires_payment_method,
    )


async def _own_subscription(db: AsyncSession, subscription_id: uuid.UUID, user: User) -> Subscription:
    result = await db.execute(
        select(Subscription).where(
            Subscription.id == subscription_id,
            Subscription.user_id == user.id,
        )
    )
    sub = result.scalar_one_or_none()
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(catalog: Catalog = Depends(get_catalog)):
    return [plan_response(p) for p in catalog.active_plans()]


@router.post("/", response_model=SubscriptionResponse)
async def create_subscription(
    data: SubscriptionCreate,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    """Start a subscription; its first period runs from today to the same day next month."""
    existing = await db.execute(
        select(Subscription.id).where(
            Subscription.user_id == user.id,
            Subscription.status.in_(["active", "paused"]),
        )
    )
    if existing.first():
        raise HTTPException(status_code=400, detail="User already has an active subscription")

    plan = catalog.plan(data.plan_id)

    today = date.today()
    sub = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status="active",
        current_period_start=today,
        current_period_end=add_one_month(today),
    )
    db.add(sub)
    await db.commit()
    await db.refresh(sub)
    logger.info("Subscription created: user=%s plan=%s", user.id, plan.name)
    return subscription_response(sub, catalog)


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: uuid.UUID,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    sub = await _own_subscription(db, subscription_id, user)
    return subscription_response(sub, catalog)


@router.get("/{subscription_id}/usage", response_model=UsageResponse)
async def get_usage(
    subscription_id: uuid.UUID,
    as_of: date | None = None,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    """Allowance used and remaining in the period containing `as_of` (default today)."""
    sub = await _own_subscription(db, subscription_id, user)
    usage = await usage_for_subscription(db, sub, as_of or date.today())
    return UsageResponse(
        subscription_id=usage.subscription_id,
        current_period_start=usage.period_start,
        current_period_end=usage.period_end,
        pickups_used=usage.pickups_used,
        pickups_allowed=usage.pickups_allowed,
        pickups_remaining=usage.pickups_remaining,
        bags_used=usage.bags_used,
        bags_allowed=usage.bags_allowed,
        bags_remaining=usage.bags_remaining,
        orders_count=usage.orders_count,
    )


@router.post("/{subscription_id}/preview-change", response_model=ProrationPreviewResponse)
async def preview_plan_change(
    subscription_id: uuid.UUID,
    data: PlanChangePreviewRequest,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    payments: PaymentCollaborator = Depends(get_payments),
    db: AsyncSession = Depends(get_db),
):
    """Show what a plan change would charge or credit today. Nothing is changed."""
    sub = await _own_subscription(db, subscription_id, user)
    preview = await preview_change(catalog, sub, data.new_plan_id, data.as_of or date.today(), payments)
    return preview_response(preview)


@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
async def update_subscription(
    subscription_id: uuid.UUID,
    data: SubscriptionUpdate,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    payments: PaymentCollaborator = Depends(get_payments),
    db: AsyncSession = Depends(get_db),
):
    """Change plan (prorated) and/or status. Cancelled subscriptions are final."""
    sub = await _own_subscription(db, subscription_id, user)
    if sub.status == "cancelled":
        raise HTTPException(status_code=400, detail="Cannot modify a cancelled subscription")

    new_status = data.status.value if data.status is not None else None

    # Resume first: a plan change needs an active period
    if new_status == "active" and sub.status != "active":
        logger.info("Subscription %s status %s -> active", sub.id, sub.status)
        sub.status = "active"

    if data.plan_id is not None and data.plan_id != sub.plan_id:
        await apply_change(db, catalog, sub, data.plan_id, date.today(), payments)

    if new_status is not None and new_status != sub.status:
        logger.info("Subscription %s status %s -> %s", sub.id, sub.status, new_status)
        sub.status = new_status

    await db.commit()
    return subscription_response(sub, catalog)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a subscription. Status transition only; the row is kept."""
    sub = await _own_subscription(db, subscription_id, user)
    if sub.status == "cancelled":
        raise HTTPException(status_code=404, detail="Subscription not found or already cancelled")

    sub.status = "cancelled"
    await db.commit()
    logger.info("Subscription %s cancelled by user %s", sub.id, user.id)
    return subscription_response(sub, catalog)
