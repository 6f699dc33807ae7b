"""
humanizer/models/plan.py

Plan model: a named tier defining credits per cycle and a feature set.
"""

from decimal import Decimal
from typing import Tuple
from pydantic import BaseModel, ConfigDict


UNLIMITED_CREDITS = -1


class Plan(BaseModel):
    """
    Plan represents a subscription tier.

    Examples:
    - free (default, 100 credits)
    - basic
    - pro
    - enterprise (unlimited, credits = -1)

    Plans carry a display price only; no payment processing happens here.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    description: str
    price: Decimal
    interval: str = "month"
    credits: int
    features: Tuple[str, ...] = ()

    @property
    def unlimited(self) -> bool:
        return self.credits == UNLIMITED_CREDITS
