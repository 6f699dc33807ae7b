"""
humanizer/models/user.py

Account as seen by the service. Identity itself is owned by the auth provider;
only the opaque user_id and the account status are stored here.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: datetime
    status: str = "active"
