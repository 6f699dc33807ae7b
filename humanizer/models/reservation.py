"""
humanizer/models/reservation.py

Reservation: a pending, not-yet-finalized credit deduction tied to one in-flight request.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class ReservationStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    RELEASED = "released"


class Reservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation_id: str
    user_id: str
    subscription_id: int
    amount: int
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: datetime
    finalized_at: Optional[datetime] = None
