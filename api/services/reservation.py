"""
Entitlement Reservation Guard — commits an order without over-spending the allowance.

States:  QUOTED → RESERVED → COMMITTED
         QUOTED → ABORTED   (allowance consumed since the quote: EntitlementExhausted)

The check and the insert share one transaction. The subscription row is locked
first (UPDATE of usage_version, then SELECT ... FOR UPDATE), so concurrent
submissions against the same subscription queue up behind each other in every
backend process. Usage is then recomputed from order history under the lock.
"""

from __future__ import annotations
import logging
import random
import string
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.order import Order, OrderItem, OrderEvent
from models.subscription import Subscription
from services.cost_calculator import OrderQuote
from services.errors import EntitlementExhausted, NoActivePeriod
from services.payments import PaymentCollaborator
from services.usage import UsageSnapshot, usage_for_subscription

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    QUOTED = "QUOTED"
    RESERVED = "RESERVED"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


@dataclass
class OrderDetails:
    pickup_address_id: int | None = None
    delivery_address_id: int | None = None
    delivery_date: date | None = None
    pickup_time_slot: str | None = None
    delivery_time_slot: str | None = None
    special_instructions: str | None = None
    idempotency_key: uuid.UUID | None = None


@dataclass
class Reservation:
    quote: OrderQuote
    state: ReservationState = ReservationState.QUOTED
    usage: UsageSnapshot | None = None
    order: Order | None = None


def generate_order_number() -> str:
    """Human-readable order number: TMB-YYMMDD-XXXX."""
    now = datetime.utcnow()
    date_part = now.strftime("%y%m%d")
    rand_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"TMB-{date_part}-{rand_part}"


async def lock_subscription(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription | None:
    """Take the per-subscription write lock for the rest of the transaction."""
    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id)
        .values(usage_version=Subscription.usage_version + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        select(Subscription)
        .where(Subscription.id == subscription_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _revalidate(db: AsyncSession, reservation: Reservation) -> None:
    quote = reservation.quote
    calc = quote.calculation

    subscription = await lock_subscription(db, quote.subscription_id)
    if subscription is None:
        raise EntitlementExhausted(calc.covered_bags, 0, "Subscription no longer exists")
    try:
        usage = await usage_for_subscription(db, subscription, quote.pickup_date)
    except NoActivePeriod:
        raise EntitlementExhausted(
            calc.covered_bags, 0, "Subscription is no longer active for this pickup date",
        ) from None

    reservation.usage = usage
    if calc.covered_bags > usage.bags_remaining or (calc.fees_waived and usage.bags_remaining == 0):
        raise EntitlementExhausted(calc.covered_bags, usage.bags_remaining)


async def submit_order(
    db: AsyncSession,
    user_id: uuid.UUID,
    quote: OrderQuote,
    details: OrderDetails,
    payments: PaymentCollaborator,
) -> Reservation:
    """
    Re-validate the quoted coverage and persist the order atomically.

    Returns:
        Reservation in COMMITTED state with the persisted order

    Raises:
        EntitlementExhausted: the quote no longer fits; nothing was written
    """
    reservation = Reservation(quote=quote)
    calc = quote.calculation

    try:
        if quote.subscription_id is not None:
            await _revalidate(db, reservation)
        reservation.state = ReservationState.RESERVED

        order = Order(
            id=uuid.uuid4(),
            order_number=generate_order_number(),
            user_id=user_id,
            subscription_id=quote.subscription_id,
            pickup_address_id=details.pickup_address_id,
            delivery_address_id=details.delivery_address_id,
            pickup_date=quote.pickup_date,
            delivery_date=details.delivery_date,
            pickup_time_slot=details.pickup_time_slot,
            delivery_time_slot=details.delivery_time_slot,
            special_instructions=details.special_instructions,
            subtotal_cents=calc.final_subtotal,
            discount_cents=calc.subscription_discount,
            tax_cents=calc.tax,
            tip_cents=calc.tip,
            total_cents=calc.total,
            status="scheduled",
            idempotency_key=details.idempotency_key,
        )
        order.items = [
            OrderItem(
                service_id=line.service.id,
                quantity=line.quantity,
                price_cents=line.unit_price_cents,
                list_price_cents=line.list_price_cents,
                is_covered=line.is_covered,
                notes=line.note,
            )
            for line in calc.lines
        ]
        order.events = [
            OrderEvent(
                to_status="scheduled",
                actor_type="USER",
                actor_id=user_id,
                notes="Order created",
            )
        ]
        db.add(order)
        await db.flush()

        if calc.total > 0:
            await payments.charge(
                user_id,
                calc.total,
                payment_type="extra_order",
                description=f"Order {order.order_number}",
                order_id=order.id,
                subscription_id=quote.subscription_id,
            )

        await db.commit()
    except EntitlementExhausted as e:
        await db.rollback()
        reservation.state = ReservationState.ABORTED
        logger.warning(
            "Reservation aborted: user=%s subscription=%s quoted=%d remaining=%d",
            user_id, quote.subscription_id, e.quoted, e.remaining,
        )
        raise
    except Exception:
        await db.rollback()
        raise

    reservation.order = order
    reservation.state = ReservationState.COMMITTED
    logger.info(
        "Order committed: %s user=%s subscription=%s covered=%d total=%d",
        order.order_number, user_id, quote.subscription_id, calc.covered_bags, calc.total,
    )
    return reservation
