"""
humanizer/features/statistics/service.py

Running per-account usage counters.

Updates are a single UPDATE whose SET clause reads the current column
values, so concurrent updates for one account accumulate instead of
overwriting each other. The mean is (old_total_chars + n) / (old_count + 1),
which lands on the same value whatever order the updates arrive in.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import select, insert, update, cast, Float
from sqlalchemy.exc import IntegrityError

from humanizer.core.database import get_db_session, usage_statistics
from humanizer.features.credits.subscriptions import as_utc, utcnow
from humanizer.models.statistics import UsageStatistics
from humanizer.models.transformation import TransformationLevel, normalize_level

_LEVEL_COLUMNS = {
    TransformationLevel.SLIGHT: "slight_count",
    TransformationLevel.MODERATE: "moderate_count",
    TransformationLevel.SUBSTANTIAL: "substantial_count",
}


def _accumulate(session, user_id: str, char_count: int, credits_spent: int, level: TransformationLevel, now: datetime) -> bool:
    t = usage_statistics.c
    level_column = _LEVEL_COLUMNS[level]
    result = session.execute(
        update(usage_statistics)
        .where(t.user_id == user_id)
        .values(
            {
                "total_transformations": t.total_transformations + 1,
                "total_characters_processed": t.total_characters_processed + char_count,
                "total_credits_spent": t.total_credits_spent + credits_spent,
                "average_text_length": cast(t.total_characters_processed + char_count, Float)
                / (t.total_transformations + 1),
                "most_recent_level": level.value,
                level_column: getattr(t, level_column) + 1,
                "last_activity_date": now,
            }
        )
    )
    return result.rowcount == 1


def update_statistics(
    user_id: str,
    char_count: int,
    credits_spent: int,
    level,
    now: Optional[datetime] = None,
) -> UsageStatistics:
    """
    Fold one completed transformation into the account's statistics.

    First call for an account inserts the row; later calls accumulate.
    """
    level = normalize_level(level)
    now = now or utcnow()

    with get_db_session() as session:
        updated = _accumulate(session, user_id, char_count, credits_spent, level, now)

    if not updated:
        try:
            with get_db_session() as session:
                values = {
                    "user_id": user_id,
                    "total_transformations": 1,
                    "total_characters_processed": char_count,
                    "total_credits_spent": credits_spent,
                    "average_text_length": float(char_count),
                    "most_recent_level": level.value,
                    "slight_count": 0,
                    "moderate_count": 0,
                    "substantial_count": 0,
                    "last_activity_date": now,
                    "created_at": now,
                }
                values[_LEVEL_COLUMNS[level]] = 1
                session.execute(insert(usage_statistics).values(**values))
        except IntegrityError:
            # Another request inserted the first row; accumulate onto it
            with get_db_session() as session:
                _accumulate(session, user_id, char_count, credits_spent, level, now)

    return get_statistics(user_id)


def get_statistics(user_id: str) -> UsageStatistics:
    """Current statistics, or zeros when the account has no activity yet."""
    with get_db_session() as session:
        row = session.execute(
            select(usage_statistics).where(usage_statistics.c.user_id == user_id)
        ).first()
    if not row:
        return UsageStatistics(user_id=user_id)
    return UsageStatistics(
        user_id=row.user_id,
        total_transformations=row.total_transformations,
        total_characters_processed=row.total_characters_processed,
        total_credits_spent=row.total_credits_spent,
        average_text_length=float(row.average_text_length),
        most_recent_level=normalize_level(row.most_recent_level),
        level_counts={level: getattr(row, column) for level, column in _LEVEL_COLUMNS.items()},
        last_activity_date=as_utc(row.last_activity_date),
    )
