"""
humanizer/features/plans/catalog.py

Plan catalog.

The catalog is an immutable configuration table built once at import time.
Lookups are read-only; changing plans means editing PLAN_DEFINITIONS and
redeploying, not mutating state at runtime.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from humanizer.core.config import settings
from humanizer.core.errors import ValidationError
from humanizer.models.plan import Plan, UNLIMITED_CREDITS


PLAN_DEFINITIONS = (
    {
        "plan_id": "free",
        "name": "Free",
        "description": "Basic features with limited credits",
        "price": Decimal("0"),
        "credits": 100,
        "features": ("Basic humanization", "Limited history"),
    },
    {
        "plan_id": "basic",
        "name": "Basic",
        "description": "Standard features with more credits",
        "price": Decimal("9.99"),
        "credits": 1000,
        "features": ("Standard humanization", "Full history", "Export options"),
    },
    {
        "plan_id": "pro",
        "name": "Professional",
        "description": "Advanced features with plenty of credits",
        "price": Decimal("19.99"),
        "credits": 5000,
        "features": ("Advanced humanization", "Full history", "Export options", "Priority support"),
    },
    {
        "plan_id": "enterprise",
        "name": "Enterprise",
        "description": "All features with unlimited credits",
        "price": Decimal("49.99"),
        "credits": UNLIMITED_CREDITS,
        "features": ("All features", "Unlimited credits", "API access", "24/7 support"),
    },
)


def _build_catalog() -> Mapping[str, Plan]:
    return MappingProxyType({d["plan_id"]: Plan(**d) for d in PLAN_DEFINITIONS})


PLAN_CATALOG: Mapping[str, Plan] = _build_catalog()


def list_plans() -> Tuple[Plan, ...]:
    """All plans in display order."""
    return tuple(PLAN_CATALOG.values())


def get_plan(plan_id: Optional[str]) -> Optional[Plan]:
    return PLAN_CATALOG.get((plan_id or "").strip().lower())


def require_plan(plan_id: Optional[str]) -> Plan:
    """Resolve a plan or raise ValidationError for unknown ids."""
    plan = get_plan(plan_id)
    if plan is None:
        raise ValidationError("Invalid subscription plan", details={"planId": plan_id})
    return plan


def get_default_plan() -> Plan:
    plan = get_plan(settings.DEFAULT_PLAN)
    if plan is None:
        raise RuntimeError(f"DEFAULT_PLAN {settings.DEFAULT_PLAN!r} is not in the plan catalog")
    return plan
