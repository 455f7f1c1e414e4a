"""Read-only ordering catalog queries.

Plans and operating systems are pass-through lookups flattened into rows
for display. There is no state and no reconciliation here.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from .client import CallContext
from .models import Plan
from .provider import ProviderContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanRow:
    """One hardware plan, flattened."""

    id: int
    name: str
    ram: int
    storage: int
    cpu_name: str
    cores: int
    price_monthly: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OperatingSystemRow:
    """One installable operating system."""

    id: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _price_for(plan: Plan, location: str | None) -> float | None:
    """Monthly price at the requested location keyword, else the first listed."""
    if not plan.locations:
        return None
    if location:
        for loc in plan.locations:
            if loc.keyword.lower() == location.lower():
                return float(loc.monthly_price)
    return float(plan.locations[0].monthly_price)


def list_plans(
    context: ProviderContext,
    location: str | None = None,
    *,
    ctx: CallContext | None = None,
) -> list[PlanRow]:
    """List hardware plans, optionally filtered by location keyword."""
    plans = context.client.list_plans(location, ctx=ctx)
    logger.debug("Listed plans", extra={"location": location, "count": len(plans)})
    return [
        PlanRow(
            id=p.id,
            name=p.name,
            ram=p.ram_gb,
            storage=p.storage_gb,
            cpu_name=p.cpu.name,
            cores=p.cpu.cores,
            price_monthly=_price_for(p, location),
        )
        for p in plans
    ]


def list_operating_systems(
    context: ProviderContext, *, ctx: CallContext | None = None
) -> list[OperatingSystemRow]:
    """List installable operating systems."""
    systems = context.client.list_operating_systems(ctx=ctx)
    return [OperatingSystemRow(id=o.id, name=o.name) for o in systems]
