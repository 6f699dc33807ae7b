"""
humanizer/models/subscription.py

Subscription model: an account's credit balance for one billing cycle.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict

from humanizer.models.plan import UNLIMITED_CREDITS


class Subscription(BaseModel):
    """
    Subscription holds the per-cycle credit balance of an account.

    Constraints:
    - Exactly one active subscription per account.
    - credits_used + credits_reserved never exceeds credits_total
      (unless credits_total is -1, meaning unlimited).
    - Never deleted; replaced (deactivated) on plan change.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    plan_type: str
    credits_total: int
    credits_used: int
    credits_reserved: int = 0
    start_date: datetime
    end_date: datetime
    active: bool = True

    @property
    def unlimited(self) -> bool:
        return self.credits_total == UNLIMITED_CREDITS

    @property
    def credits_remaining(self) -> int:
        """Credits still spendable; -1 for unlimited plans."""
        if self.unlimited:
            return UNLIMITED_CREDITS
        return max(0, self.credits_total - self.credits_used - self.credits_reserved)
