"""
humanizer/models/transformation.py

Transformation levels and the immutable history record.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class TransformationLevel(str, Enum):
    SLIGHT = "slight"
    MODERATE = "moderate"
    SUBSTANTIAL = "substantial"


DEFAULT_LEVEL = TransformationLevel.MODERATE


def normalize_level(level: Optional[str]) -> TransformationLevel:
    """Map caller input to a level; missing or unrecognized values degrade to moderate."""
    if isinstance(level, TransformationLevel):
        return level
    if not isinstance(level, str):
        return DEFAULT_LEVEL
    key = level.strip().lower()
    try:
        return TransformationLevel(key)
    except ValueError:
        return DEFAULT_LEVEL


class TransformationRecord(BaseModel):
    """Durable log entry of one completed transformation. Append-only."""
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    original_text: str
    transformed_text: str
    character_count: int
    credits_used: int
    level: TransformationLevel
    strategy: str
    created_at: datetime
