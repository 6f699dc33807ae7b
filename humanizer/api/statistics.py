from fastapi import APIRouter, Depends

from humanizer.core.auth import get_current_user_id
from humanizer.features.statistics.service import get_statistics


router = APIRouter(tags=["statistics"])


@router.get("/statistics")
def get_usage_statistics(user_id: str = Depends(get_current_user_id)):
    stats = get_statistics(user_id)
    return {
        "userId": stats.user_id,
        "totalTransformations": stats.total_transformations,
        "totalCharactersProcessed": stats.total_characters_processed,
        "totalCreditsSpent": stats.total_credits_spent,
        "averageTextLength": round(stats.average_text_length, 2),
        "mostRecentLevel": stats.most_recent_level.value,
        "popularTransformationLevel": stats.popular_level.value,
        "levelCounts": {level.value: count for level, count in stats.level_counts.items()},
        "lastActivityDate": stats.last_activity_date.isoformat() if stats.last_activity_date else None,
    }
