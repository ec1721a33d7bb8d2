"""
Catalog — read-only snapshot of subscription plans and priced services.

Service classification is resolved once, when the snapshot is loaded:
  ENTITLEMENT    counts against the plan allowance (standard bag)
  ADDON          never covered (rush, extra bags, bedding, detergents)
  PAY_AS_YOU_GO  fee waived for subscribers with allowance left (pickup)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.catalog import SubscriptionPlan, Service
from services.errors import NotFound


class ServiceKind(str, Enum):
    ENTITLEMENT = "ENTITLEMENT"
    ADDON = "ADDON"
    PAY_AS_YOU_GO = "PAY_AS_YOU_GO"


# Display order for the services listing; everything else sorts by name after these
SERVICE_DISPLAY_ORDER = ("standard_bag", "rush_bag", "additional_bag", "bedding")


@dataclass(frozen=True)
class PlanInfo:
    id: int
    name: str
    price_per_month_cents: int
    pickups_per_month: int
    description: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class ServiceInfo:
    id: int
    name: str
    base_price_cents: int
    kind: ServiceKind
    extra_price_cents: int | None = None
    description: str | None = None
    is_active: bool = True

    @property
    def extra_unit_price_cents(self) -> int:
        """Price of an entitlement unit that the allowance does not cover."""
        if self.extra_price_cents is None:
            return self.base_price_cents
        return self.extra_price_cents


@dataclass(frozen=True)
class Catalog:
    plans: dict[int, PlanInfo] = field(default_factory=dict)
    services: dict[int, ServiceInfo] = field(default_factory=dict)

    def plan(self, plan_id: int) -> PlanInfo:
        info = self.plans.get(plan_id)
        if info is None or not info.is_active:
            raise NotFound(f"Subscription plan {plan_id} not found", plan_id=plan_id)
        return info

    def plan_any_status(self, plan_id: int) -> PlanInfo:
        """Plan lookup that tolerates retired plans (existing subscribers keep theirs)."""
        info = self.plans.get(plan_id)
        if info is None:
            raise NotFound(f"Subscription plan {plan_id} not found", plan_id=plan_id)
        return info

    def service(self, service_id: int) -> ServiceInfo:
        info = self.services.get(service_id)
        if info is None or not info.is_active:
            raise NotFound(f"Service {service_id} not found", service_id=service_id)
        return info

    def service_by_name(self, name: str) -> ServiceInfo:
        for info in self.services.values():
            if info.name == name and info.is_active:
                return info
        raise NotFound(f"Service '{name}' not found", service_name=name)

    def active_plans(self) -> list[PlanInfo]:
        return sorted(
            (p for p in self.plans.values() if p.is_active),
            key=lambda p: p.price_per_month_cents,
        )

    def ordered_services(self) -> list[ServiceInfo]:
        def rank(info: ServiceInfo) -> tuple[int, str]:
            if info.name in SERVICE_DISPLAY_ORDER:
                return SERVICE_DISPLAY_ORDER.index(info.name), info.name
            return len(SERVICE_DISPLAY_ORDER), info.name

        return sorted((s for s in self.services.values() if s.is_active), key=rank)


def plan_info(row: SubscriptionPlan) -> PlanInfo:
    return PlanInfo(
        id=row.id,
        name=row.name,
        price_per_month_cents=row.price_per_month_cents,
        pickups_per_month=row.pickups_per_month,
        description=row.description,
        is_active=row.is_active,
    )


def service_info(row: Service) -> ServiceInfo:
    return ServiceInfo(
        id=row.id,
        name=row.name,
        base_price_cents=row.base_price_cents,
        kind=ServiceKind(row.kind),
        extra_price_cents=row.extra_price_cents,
        description=row.description,
        is_active=row.is_active,
    )


async def load_catalog(db: AsyncSession) -> Catalog:
    """Load every plan and service (inactive ones included, lookups filter them)."""
    plans = (await db.execute(select(SubscriptionPlan))).scalars().all()
    services = (await db.execute(select(Service))).scalars().all()
    return Catalog(
        plans={p.id: plan_info(p) for p in plans},
        services={s.id: service_info(s) for s in services},
    )
