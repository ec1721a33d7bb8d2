"""
Order Cost Calculator — what a pickup order costs under the customer's plan.

Rules:
  1. Pay-as-you-go (no active subscription): every unit at the service base price
  2. Subscribers: the first `remaining` standard-bag units, in submission order,
     are covered (price 0); units beyond the allowance cost the extra-unit price
  3. Add-ons are never covered
  4. Pickup fee is waived for subscribers while allowance remains
  5. Tax = final subtotal × flat rate, rounded once; tip is added after tax, untaxed
"""

from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.subscription import Subscription
from services.catalog import Catalog, ServiceInfo, ServiceKind
from services.errors import InvalidOrderItems, NoActivePeriod, NotFound
from services.money import apply_rate, sum_cents
from services.usage import UsageSnapshot, usage_for_subscription

logger = logging.getLogger(__name__)


# ── Data classes ───────────────────────────────────────────

@dataclass(frozen=True)
class CandidateItem:
    service_id: int
    quantity: int
    notes: str | None = None


@dataclass(frozen=True)
class PricedLine:
    service: ServiceInfo
    quantity: int
    unit_price_cents: int   # effective, what the customer pays per unit
    list_price_cents: int   # what the unit would cost without plan benefits
    is_covered: bool = False
    note: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def list_total_cents(self) -> int:
        return self.list_price_cents * self.quantity


@dataclass(frozen=True)
class CostCalculation:
    subtotal: int
    subscription_discount: int
    final_subtotal: int
    tax: int
    tip: int
    total: int
    covered_bags: int
    has_subscription_benefits: bool
    fees_waived: bool
    lines: tuple[PricedLine, ...]


@dataclass(frozen=True)
class OrderQuote:
    """A non-committing calculation plus the allowance it was based on."""

    calculation: CostCalculation
    pickup_date: date
    subscription_id: uuid.UUID | None = None
    usage: UsageSnapshot | None = None
    quote_id: str | None = None


# ── Core Functions ─────────────────────────────────────────

def validate_items(catalog: Catalog, items: list[CandidateItem], tip_cents: int = 0) -> list[ServiceInfo]:
    """Resolve every item's service up front; any problem rejects the whole list."""
    if not items:
        raise InvalidOrderItems("Order must contain at least one item")
    if isinstance(tip_cents, bool) or not isinstance(tip_cents, int) or tip_cents < 0:
        raise InvalidOrderItems(f"Invalid tip: {tip_cents!r}")

    resolved: list[ServiceInfo] = []
    for index, item in enumerate(items):
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity < 1:
            raise InvalidOrderItems(
                f"Item {index}: quantity must be a positive integer",
                index=index,
                quantity=item.quantity,
            )
        try:
            resolved.append(catalog.service(item.service_id))
        except NotFound:
            raise InvalidOrderItems(
                f"Item {index}: unknown service {item.service_id}",
                index=index,
                service_id=item.service_id,
            ) from None
    return resolved


def price_order(
    catalog: Catalog,
    items: list[CandidateItem],
    entitlement_remaining: int | None = None,
    tip_cents: int = 0,
    tax_rate: Decimal | None = None,
) -> CostCalculation:
    """
    Price a candidate order.

    Args:
        catalog: Catalog snapshot used for service prices and classification
        items: Items in the order the customer submitted them
        entitlement_remaining: Allowance left this period, or None for pay-as-you-go
        tip_cents: Customer-entered tip, added after tax
        tax_rate: Flat tax rate (defaults to settings.TAX_RATE)

    Returns:
        CostCalculation; totals always derive from effective line prices
    """
    services = validate_items(catalog, items, tip_cents)
    rate = settings.TAX_RATE if tax_rate is None else tax_rate

    subscribed = entitlement_remaining is not None
    remaining = max(0, entitlement_remaining or 0)
    fees_waived = subscribed and remaining > 0

    lines: list[PricedLine] = []
    for item, service in zip(items, services):
        if service.kind is ServiceKind.ENTITLEMENT and subscribed:
            covered = min(item.quantity, remaining)
            remaining -= covered
            if covered:
                lines.append(PricedLine(
                    service=service,
                    quantity=covered,
                    unit_price_cents=0,
                    list_price_cents=service.base_price_cents,
                    is_covered=True,
                    note=item.notes,
                ))
            if item.quantity > covered:
                lines.append(PricedLine(
                    service=service,
                    quantity=item.quantity - covered,
                    unit_price_cents=service.extra_unit_price_cents,
                    list_price_cents=service.extra_unit_price_cents,
                    note=item.notes,
                ))
        elif service.kind is ServiceKind.PAY_AS_YOU_GO and fees_waived:
            lines.append(PricedLine(
                service=service,
                quantity=item.quantity,
                unit_price_cents=0,
                list_price_cents=service.base_price_cents,
                note=item.notes,
            ))
        else:
            lines.append(PricedLine(
                service=service,
                quantity=item.quantity,
                unit_price_cents=service.base_price_cents,
                list_price_cents=service.base_price_cents,
                note=item.notes,
            ))

    subtotal = sum_cents(line.list_total_cents for line in lines)
    final_subtotal = sum_cents(line.line_total_cents for line in lines)
    discount = sum_cents(line.list_total_cents - line.line_total_cents for line in lines)
    tax = apply_rate(final_subtotal, rate)
    covered_bags = sum(line.quantity for line in lines if line.is_covered)

    return CostCalculation(
        subtotal=subtotal,
        subscription_discount=discount,
        final_subtotal=final_subtotal,
        tax=tax,
        tip=tip_cents,
        total=final_subtotal + tax + tip_cents,
        covered_bags=covered_bags,
        has_subscription_benefits=discount > 0,
        fees_waived=fees_waived and any(
            line.service.kind is ServiceKind.PAY_AS_YOU_GO for line in lines
        ),
        lines=tuple(lines),
    )


async def find_active_subscription(db: AsyncSession, user_id: uuid.UUID) -> Subscription | None:
    """Most recent active subscription of the user, if any."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id, Subscription.status == "active")
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def quote_order(
    db: AsyncSession,
    catalog: Catalog,
    user_id: uuid.UUID,
    items: list[CandidateItem],
    pickup_date: date,
    tip_cents: int = 0,
) -> OrderQuote:
    """Price an order against the user's current allowance without writing anything."""
    subscription = await find_active_subscription(db, user_id)
    usage = None
    if subscription is not None:
        try:
            usage = await usage_for_subscription(db, subscription, pickup_date)
        except NoActivePeriod:
            # Pickup falls outside the current period: billed pay-as-you-go
            logger.info(
                "Quote: pickup %s outside period of subscription %s, pricing pay-as-you-go",
                pickup_date, subscription.id,
            )
            subscription = None

    calculation = price_order(
        catalog,
        items,
        entitlement_remaining=usage.bags_remaining if usage else None,
        tip_cents=tip_cents,
    )
    logger.info(
        "Quote: user=%s subscription=%s covered=%d total=%d",
        user_id, subscription.id if subscription else None,
        calculation.covered_bags, calculation.total,
    )
    return OrderQuote(
        calculation=calculation,
        pickup_date=pickup_date,
        subscription_id=subscription.id if subscription else None,
        usage=usage,
    )
