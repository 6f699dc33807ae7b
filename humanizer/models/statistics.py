from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict

from humanizer.models.transformation import DEFAULT_LEVEL, TransformationLevel


class UsageStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    total_transformations: int = 0
    total_characters_processed: int = 0
    total_credits_spent: int = 0
    average_text_length: float = 0.0
    most_recent_level: TransformationLevel = DEFAULT_LEVEL
    level_counts: Dict[TransformationLevel, int] = {}
    last_activity_date: Optional[datetime] = None

    @property
    def popular_level(self) -> TransformationLevel:
        """Most frequently used level; ties go to the most recent one."""
        if not self.level_counts or not any(self.level_counts.values()):
            return self.most_recent_level
        top = max(self.level_counts.values())
        leaders = [lvl for lvl, count in self.level_counts.items() if count == top]
        if self.most_recent_level in leaders:
            return self.most_recent_level
        return leaders[0]
