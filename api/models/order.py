"""Order, OrderItem and OrderEvent ORM models — money snapshot fixed at creation."""

import uuid
from datetime import date, datetime
from sqlalchemy import (
    String, Integer, Boolean, Date, DateTime, ForeignKey, Text, UniqueConstraint,
    Enum as PgEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base

ORDER_STATUSES = (
    "pending", "scheduled", "picked_up", "in_process",
    "ready", "out_for_delivery", "delivered", "cancelled", "failed",
)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("user_id", "idempotency_key"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # NULL means pay-as-you-go
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("subscriptions.id"), index=True)

    # Scheduling (addresses are owned by the address service)
    pickup_address_id: Mapped[int | None] = mapped_column(Integer)
    delivery_address_id: Mapped[int | None] = mapped_column(Integer)
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    delivery_date: Mapped[date | None] = mapped_column(Date)
    pickup_time_slot: Mapped[str | None] = mapped_column(String(50))
    delivery_time_slot: Mapped[str | None] = mapped_column(String(50))
    special_instructions: Mapped[str | None] = mapped_column(Text)

    # Money snapshot, integer cents
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tip_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        PgEnum(*ORDER_STATUSES, name="order_status"),
        default="scheduled",
    )

    # Idempotency, scoped to the customer
    idempotency_key: Mapped[uuid.UUID | None] = mapped_column()

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")
    events = relationship("OrderEvent", back_populates="order", lazy="selectin", order_by="OrderEvent.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Effective per-unit price charged on this order; 0 when covered
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    list_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    is_covered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    # Relationships
    order = relationship("Order", back_populates="items")
    service = relationship("Service", lazy="selectin")


class OrderEvent(Base):
    __tablename__ = "order_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    from_status: Mapped[str | None] = mapped_column(PgEnum(*ORDER_STATUSES, name="order_status"))
    to_status: Mapped[str] = mapped_column(PgEnum(*ORDER_STATUSES, name="order_status"), nullable=False)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)  # USER, DRIVER, ADMIN, SYSTEM
    actor_id: Mapped[uuid.UUID | None] = mapped_column()
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="events")
