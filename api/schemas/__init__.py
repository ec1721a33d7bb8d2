"""Pydantic schemas for API request/response models. Money is decimal major units here."""

from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────

class OrderStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    PICKED_UP = "picked_up"
    IN_PROCESS = "in_process"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


# ── Catalog Schemas ────────────────────────────────────────

class PlanResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    price_per_month: Decimal
    pickups_per_month: int


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    base_price: Decimal
    kind: str


# ── Order Schemas ──────────────────────────────────────────

class OrderItemRequest(BaseModel):
    service_id: int
    quantity: int
    notes: str | None = None


class OrderEstimateRequest(BaseModel):
    pickup_date: date
    items: list[OrderItemRequest]
    tip: Decimal = Field(default=Decimal("0"), ge=0)


class OrderCreate(OrderEstimateRequest):
    quote_id: str | None = None
    pickup_address_id: int | None = None
    delivery_address_id: int | None = None
    delivery_date: date | None = None
    pickup_time_slot: str | None = None
    delivery_time_slot: str | None = None
    special_instructions: str | None = None
    idempotency_key: uuid.UUID | None = None


class PricedLineResponse(BaseModel):
    service_id: int
    service_name: str
    quantity: int
    price: Decimal
    list_price: Decimal
    is_covered: bool
    line_total: Decimal


class CostCalculationResponse(BaseModel):
    subtotal: Decimal
    subscription_discount: Decimal
    final_subtotal: Decimal
    tax: Decimal
    tip: Decimal
    total: Decimal
    covered_bags: int
    has_subscription_benefits: bool
    lines: list[PricedLineResponse]
    subscription_id: uuid.UUID | None = None
    quote_id: str | None = None
    price_valid_until: datetime | None = None


class OrderItemResponse(BaseModel):
    id: int
    service_id: int
    service_name: str | None = None
    quantity: int
    price: Decimal
    is_covered: bool
    notes: str | None = None


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    subscription_id: uuid.UUID | None
    status: str
    pickup_date: date
    delivery_date: date | None
    pickup_time_slot: str | None
    delivery_time_slot: str | None
    subtotal: Decimal
    subscription_discount: Decimal
    tax: Decimal
    tip: Decimal
    total: Decimal
    requires_payment: bool
    items: list[OrderItemResponse]
    created_at: datetime


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    actor_type: str = "USER"
    actor_id: uuid.UUID | None = None
    notes: str | None = None


# ── Subscription Schemas ───────────────────────────────────

class SubscriptionCreate(BaseModel):
    plan_id: int


class SubscriptionUpdate(BaseModel):
    status: SubscriptionStatus | None = None
    plan_id: int | None = None


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: int
    plan: PlanResponse | None = None
    status: str
    current_period_start: date
    current_period_end: date
    created_at: datetime


class UsageResponse(BaseModel):
    subscription_id: uuid.UUID
    current_period_start: date
    current_period_end: date
    pickups_used: int
    pickups_allowed: int
    pickups_remaining: int
    bags_used: int
    bags_allowed: int
    bags_remaining: int
    orders_count: int


class PlanChangePreviewRequest(BaseModel):
    new_plan_id: int
    as_of: date | None = None


class ProrationPreviewResponse(BaseModel):
    current_plan: PlanResponse
    new_plan: PlanResponse
    immediate_charge: Decimal
    immediate_credit: Decimal
    proration_description: str
    new_billing_date: date
    requires_payment_method: bool
