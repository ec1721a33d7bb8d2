"""
Plan-Change Proration Engine.

When a subscriber moves between plans mid-period:
  unused_credit = old price × days_remaining / period_length   (rounded once)
  new_charge    = new price × days_remaining / period_length   (rounded once)
  net = new_charge − unused_credit → immediate charge (net > 0) or credit (net < 0)

The renewal date stays on the original period end so the billing calendar is
unchanged. Previewing never writes; `apply_change` is the explicit commit step.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from models.catalog import SubscriptionPlan
from models.payment import Payment
from models.subscription import Subscription
from services.catalog import Catalog, PlanInfo
from services.errors import PaymentMethodRequired, PlanChangeRejected
from services.money import format_cents, prorate
from services.payments import PaymentCollaborator
from services.usage import resolve_period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProrationAmounts:
    immediate_charge: int
    immediate_credit: int
    unused_credit: int
    new_charge: int
    days_remaining: int
    period_length: int


@dataclass(frozen=True)
class ProrationPreview:
    current_plan: PlanInfo
    new_plan: PlanInfo
    immediate_charge: int
    immediate_credit: int
    proration_description: str
    new_billing_date: date
    requires_payment_method: bool
    days_remaining: int
    period_length: int


def calculate_proration(
    current_plan: PlanInfo,
    new_plan: PlanInfo,
    period_start: date,
    period_end: date,
    as_of: date,
) -> ProrationAmounts:
    """Pure proration arithmetic; exactly one of charge/credit is nonzero, or neither."""
    period_length = (period_end - period_start).days
    days_remaining = (period_end - as_of).days
    if period_length <= 0:
        raise ValueError("Billing period must be at least one day long")
    if not 0 < days_remaining <= period_length:
        raise ValueError(f"{as_of} is outside the period {period_start}..{period_end}")

    unused_credit = prorate(current_plan.price_per_month_cents, days_remaining, period_length)
    new_charge = prorate(new_plan.price_per_month_cents, days_remaining, period_length)
    net = new_charge - unused_credit

    return ProrationAmounts(
        immediate_charge=max(net, 0),
        immediate_credit=max(-net, 0),
        unused_credit=unused_credit,
        new_charge=new_charge,
        days_remaining=days_remaining,
        period_length=period_length,
    )


def describe_proration(amounts: ProrationAmounts, new_plan: PlanInfo, requires_payment_method: bool) -> str:
    if requires_payment_method:
        return (
            "This upgrade requires a valid payment method. "
            "Please add a payment method before proceeding."
        )
    monthly = format_cents(new_plan.price_per_month_cents)
    if amounts.immediate_charge:
        return (
            f"You'll be charged a prorated amount of ${format_cents(amounts.immediate_charge)} "
            f"today for the change to {new_plan.name}, and your next billing will be ${monthly}/month."
        )
    if amounts.immediate_credit:
        return (
            f"You'll receive a prorated credit of ${format_cents(amounts.immediate_credit)} "
            f"for the change to {new_plan.name}, and your next billing will be ${monthly}/month."
        )
    return f"No additional charge today. Your next billing will be ${monthly}/month."


async def preview_change(
    catalog: Catalog,
    subscription: Subscription,
    new_plan_id: int,
    as_of: date,
    payments: PaymentCollaborator,
) -> ProrationPreview:
    """Read-only preview of moving `subscription` to `new_plan_id` on `as_of`."""
    period_start, period_end = resolve_period(subscription, as_of)
    if subscription.plan_id == new_plan_id:
        raise PlanChangeRejected("Cannot change to the same plan", plan_id=new_plan_id)

    current_plan = catalog.plan_any_status(subscription.plan_id)
    new_plan = catalog.plan(new_plan_id)

    amounts = calculate_proration(current_plan, new_plan, period_start, period_end, as_of)

    requires_payment_method = False
    if amounts.immediate_charge > 0:
        requires_payment_method = not await payments.has_default_payment_method(subscription.user_id)

    return ProrationPreview(
        current_plan=current_plan,
        new_plan=new_plan,
        immediate_charge=amounts.immediate_charge,
        immediate_credit=amounts.immediate_credit,
        proration_description=describe_proration(amounts, new_plan, requires_payment_method),
        new_billing_date=period_end,
        requires_payment_method=requires_payment_method,
        days_remaining=amounts.days_remaining,
        period_length=amounts.period_length,
    )


async def apply_change(
    db: AsyncSession,
    catalog: Catalog,
    subscription: Subscription,
    new_plan_id: int,
    as_of: date,
    payments: PaymentCollaborator,
) -> tuple[ProrationPreview, Payment | None]:
    """
    Commit a plan change: switch the plan and hand the prorated amount to payments.

    The caller owns the transaction and commits after this returns.

    Raises:
        PaymentMethodRequired: the change charges the customer and no card is on file
    """
    preview = await preview_change(catalog, subscription, new_plan_id, as_of, payments)
    if preview.requires_payment_method:
        raise PaymentMethodRequired(
            preview.proration_description,
            immediate_charge=preview.immediate_charge,
        )

    subscription.plan = await db.get(SubscriptionPlan, new_plan_id)
    subscription.plan_id = new_plan_id

    payment = None
    description = f"Plan change {preview.current_plan.name} → {preview.new_plan.name}"
    if preview.immediate_charge:
        payment = await payments.charge(
            subscription.user_id,
            preview.immediate_charge,
            payment_type="proration_charge",
            description=description,
            subscription_id=subscription.id,
        )
    elif preview.immediate_credit:
        payment = await payments.credit(
            subscription.user_id,
            preview.immediate_credit,
            description=description,
            subscription_id=subscription.id,
        )

    logger.info(
        "Plan change: subscription %s %s -> %s charge=%d credit=%d",
        subscription.id, preview.current_plan.name, preview.new_plan.name,
        preview.immediate_charge, preview.immediate_credit,
    )
    return preview, payment
