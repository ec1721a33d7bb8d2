"""Order API endpoints — estimate (quote) and submission through the reservation guard."""

import logging
import uuid
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import get_db
from models.order import Order, OrderEvent
from models.user import User
from routers.deps import current_user, catalog as get_catalog, payments as get_payments
from schemas import (
    OrderEstimateRequest, OrderCreate, OrderResponse, OrderItemResponse,
    OrderStatusUpdate, CostCalculationResponse, PricedLineResponse,
)
from services.catalog import Catalog
from services.cost_calculator import CandidateItem, OrderQuote, quote_order
from services.errors import EntitlementExhausted, QuoteExpired
from services.money import cents_to_dollars, dollars_to_cents
from services.payments import PaymentCollaborator
from services.quote_store import save_quote, load_quote, discard_quote
from services.reservation import OrderDetails, submit_order

router = APIRouter()
logger = logging.getLogger(__name__)


def _candidate_items(data: OrderEstimateRequest) -> list[CandidateItem]:
    return [
        CandidateItem(service_id=i.service_id, quantity=i.quantity, notes=i.notes)
        for i in data.items
    ]


def _quote_response(quote: OrderQuote, quote_id: str | None = None) -> CostCalculationResponse:
    calc = quote.calculation
    return CostCalculationResponse(
        subtotal=cents_to_dollars(calc.subtotal),
        subscription_discount=cents_to_dollars(calc.subscription_discount),
        final_subtotal=cents_to_dollars(calc.final_subtotal),
        tax=cents_to_dollars(calc.tax),
        tip=cents_to_dollars(calc.tip),
        total=cents_to_dollars(calc.total),
        covered_bags=calc.covered_bags,
        has_subscription_benefits=calc.has_subscription_benefits,
        lines=[
            PricedLineResponse(
                service_id=line.service.id,
                service_name=line.service.name,
                quantity=line.quantity,
                price=cents_to_dollars(line.unit_price_cents),
                list_price=cents_to_dollars(line.list_price_cents),
                is_covered=line.is_covered,
                line_total=cents_to_dollars(line.line_total_cents),
            )
            for line in calc.lines
        ],
        subscription_id=quote.subscription_id,
        quote_id=quote_id,
        price_valid_until=(
            datetime.utcnow() + timedelta(seconds=settings.QUOTE_TTL_SECONDS) if quote_id else None
        ),
    )


def order_response(order: Order, catalog: Catalog) -> OrderResponse:
    def service_name(service_id: int) -> str | None:
        info = catalog.services.get(service_id)
        return info.name if info else None

    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        subscription_id=order.subscription_id,
        status=order.status,
        pickup_date=order.pickup_date,
        delivery_date=order.delivery_date,
        pickup_time_slot=order.pickup_time_slot,
        delivery_time_slot=order.delivery_time_slot,
        subtotal=cents_to_dollars(order.subtotal_cents),
        subscription_discount=cents_to_dollars(order.discount_cents),
        tax=cents_to_dollars(order.tax_cents),
        tip=cents_to_dollars(order.tip_cents),
        total=cents_to_dollars(order.total_cents),
        requires_payment=order.total_cents > 0,
        items=[
            OrderItemResponse(
                id=item.id,
                service_id=item.service_id,
                service_name=service_name(item.service_id),
                quantity=item.quantity,
                price=cents_to_dollars(item.price_cents),
                is_covered=item.is_covered,
                notes=item.notes,
            )
            for item in order.items
        ],
        created_at=order.created_at,
    )


@router.post("/estimate", response_model=CostCalculationResponse)
async def estimate_order(
    data: OrderEstimateRequest,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    """Quote an order against the customer's remaining allowance. Writes nothing to the DB."""
    items = _candidate_items(data)
    tip_cents = dollars_to_cents(data.tip)
    quote = await quote_order(db, catalog, user.id, items, data.pickup_date, tip_cents)

    quote_id = await save_quote(
        user_id=user.id,
        subscription_id=quote.subscription_id,
        pickup_date=data.pickup_date,
        items=items,
        tip_cents=tip_cents,
        covered_bags=quote.calculation.covered_bags,
        total_cents=quote.calculation.total,
    )
    return _quote_response(quote, quote_id)


@router.post("/", response_model=OrderResponse)
async def create_order(
    data: OrderCreate,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    payments: PaymentCollaborator = Depends(get_payments),
    db: AsyncSession = Depends(get_db),
):
    """Create an order. Coverage is re-validated atomically with the insert."""
    # Check idempotency
    if data.idempotency_key:
        existing = await db.execute(
            select(Order).where(
                Order.user_id == user.id,
                Order.idempotency_key == data.idempotency_key,
            )
        )
        found = existing.scalar_one_or_none()
        if found:
            return order_response(found, catalog)

    items = _candidate_items(data)
    tip_cents = dollars_to_cents(data.tip)
    pickup_date = data.pickup_date
    stored = None

    if data.quote_id:
        stored = await load_quote(data.quote_id, user.id)
        items, tip_cents, pickup_date = stored["items"], stored["tip_cents"], stored["pickup_date"]

    quote = await quote_order(db, catalog, user.id, items, pickup_date, tip_cents)

    if stored is not None:
        if quote.subscription_id != stored["subscription_id"]:
            raise EntitlementExhausted(
                stored["covered_bags"],
                quote.usage.bags_remaining if quote.usage else 0,
                "Your subscription changed since this quote. Please review your order again.",
            )
        # The customer never pays more than the price they confirmed
        if quote.calculation.covered_bags < stored["covered_bags"]:
            raise EntitlementExhausted(
                stored["covered_bags"], quote.usage.bags_remaining if quote.usage else 0,
            )
        if quote.calculation.total > stored["total_cents"]:
            raise QuoteExpired("Prices changed since your quote. Please review your order again.")

    details = OrderDetails(
        pickup_address_id=data.pickup_address_id,
        delivery_address_id=data.delivery_address_id,
        delivery_date=data.delivery_date,
        pickup_time_slot=data.pickup_time_slot,
        delivery_time_slot=data.delivery_time_slot,
        special_instructions=data.special_instructions,
        idempotency_key=data.idempotency_key,
    )
    reservation = await submit_order(db, user.id, quote, details, payments)

    if data.quote_id:
        await discard_quote(data.quote_id)
    return order_response(reservation.order, catalog)


@router.get("/", response_model=list[OrderResponse])
async def list_orders(
    status: str | None = None,
    skip: int = 0,
    limit: int = 50,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    """List the customer's orders, newest first."""
    query = select(Order).where(Order.user_id == user.id)
    if status:
        query = query.where(Order.status == status)
    query = query.offset(skip).limit(limit).order_by(Order.created_at.desc())
    result = await db.execute(query)
    return [order_response(o, catalog) for o in result.scalars().all()]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    user: User = Depends(current_user),
    catalog: Catalog = Depends(get_catalog),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Order).where(Order.id == order_id, Order.user_id == user.id)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_response(order, catalog)


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update the status of one of the customer's orders, with audit event. Money fields are never touched."""
    result = await db.execute(
        select(Order).where(Order.id == order_id, Order.user_id == user.id)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    old_status = order.status
    # Reviving a cancelled order would re-spend allowance outside the guard
    if old_status == "cancelled" and data.status.value != "cancelled":
        raise HTTPException(status_code=400, detail="Cancelled orders cannot be reopened")

    order.status = data.status.value
    if data.status.value == "cancelled":
        order.cancelled_at = datetime.utcnow()

    db.add(OrderEvent(
        order_id=order.id,
        from_status=old_status,
        to_status=data.status.value,
        actor_type=data.actor_type,
        actor_id=data.actor_id or user.id,
        notes=data.notes,
    ))

    await db.commit()
    logger.info("Order %s status %s -> %s", order.order_number, old_status, data.status.value)
    return {"order_id": str(order_id), "old_status": old_status, "new_status": data.status.value}
