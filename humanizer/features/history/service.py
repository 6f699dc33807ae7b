"""
humanizer/features/history/service.py

Transformation history.

Handles:
- Appending an immutable record (inside the caller's transaction)
- Paginated, newest-first listing per account
- Single record lookup scoped to its owner
"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import select, insert, func
from sqlalchemy.orm import Session

from humanizer.core.config import settings
from humanizer.core.database import get_db_session, transformation_records
from humanizer.core.errors import NotFoundError, ValidationError
from humanizer.features.credits.subscriptions import as_utc, utcnow
from humanizer.models.transformation import TransformationLevel, TransformationRecord


def _row_to_record(row) -> TransformationRecord:
    return TransformationRecord(
        id=row.id,
        user_id=row.user_id,
        original_text=row.original_text,
        transformed_text=row.transformed_text,
        character_count=row.character_count,
        credits_used=row.credits_used,
        level=TransformationLevel(row.level),
        strategy=row.strategy,
        created_at=as_utc(row.created_at),
    )


def append(
    session: Session,
    *,
    user_id: str,
    reservation_id: str,
    original_text: str,
    transformed_text: str,
    character_count: int,
    credits_used: int,
    level: TransformationLevel,
    strategy: str,
    created_at: Optional[datetime] = None,
) -> TransformationRecord:
    """
    Insert a record using the caller's session.

    The caller owns the transaction so the append can be made atomic with the
    credit commit. One record per reservation (unique reservation_id).
    """
    created_at = created_at or utcnow()
    result = session.execute(
        insert(transformation_records).values(
            user_id=user_id,
            reservation_id=reservation_id,
            original_text=original_text,
            transformed_text=transformed_text,
            character_count=character_count,
            credits_used=credits_used,
            level=level.value,
            strategy=strategy,
            created_at=created_at,
        )
    )
    return TransformationRecord(
        id=result.inserted_primary_key[0],
        user_id=user_id,
        original_text=original_text,
        transformed_text=transformed_text,
        character_count=character_count,
        credits_used=credits_used,
        level=level,
        strategy=strategy,
        created_at=created_at,
    )


def list_for_user(user_id: str, page: int = 1, limit: Optional[int] = None) -> Tuple[int, List[TransformationRecord]]:
    """
    One page of an account's history, newest first.

    Returns:
        (total record count for the account, records on the requested page)
    """
    limit = settings.HISTORY_DEFAULT_LIMIT if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > settings.HISTORY_MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {settings.HISTORY_MAX_LIMIT}")

    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(transformation_records)
            .where(transformation_records.c.user_id == user_id)
        ).scalar_one()
        rows = session.execute(
            select(transformation_records)
            .where(transformation_records.c.user_id == user_id)
            .order_by(transformation_records.c.created_at.desc(), transformation_records.c.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
        return total, [_row_to_record(row) for row in rows]


def get_for_user(user_id: str, record_id: int) -> TransformationRecord:
    """Raises NotFoundError when the record is missing or belongs to another account."""
    with get_db_session() as session:
        row = session.execute(
            select(transformation_records)
            .where(transformation_records.c.id == record_id)
            .where(transformation_records.c.user_id == user_id)
        ).first()
    if not row:
        raise NotFoundError("Transformation not found")
    return _row_to_record(row)


def count_for_user(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(transformation_records)
            .where(transformation_records.c.user_id == user_id)
        ).scalar_one()
