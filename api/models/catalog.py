"""Catalog ORM models — subscription plans and priced services."""

from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, Text, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price_per_month_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    pickups_per_month: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    base_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    # Price of an entitlement unit beyond the plan allowance; NULL means base price
    extra_price_cents: Mapped[int | None] = mapped_column(Integer)
    kind: Mapped[str] = mapped_column(
        PgEnum("ENTITLEMENT", "ADDON", "PAY_AS_YOU_GO", name="service_kind"),
        default="ADDON",
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
