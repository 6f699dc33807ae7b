"""
Account service.
- get_or_create_user(user_id): signup on first sight, with the default subscription
- get_user(user_id)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError

from humanizer.core.database import get_db_session, users as app_users
from humanizer.features.credits.subscriptions import as_utc, open_default_subscription
from humanizer.models.user import User


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if not row:
            return None
        return User(user_id=row.user_id, created_at=as_utc(row.created_at), status=row.status)


def get_or_create_user(user_id: str) -> User:
    """Return the account, creating it and its free subscription on first sight."""
    existing = get_user(user_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    try:
        with get_db_session() as session:
            session.execute(
                insert(app_users).values(
                    user_id=user_id,
                    status="active",
                    created_at=now,
                )
            )
    except IntegrityError:
        # Concurrent first request for the same account already created it
        pass

    open_default_subscription(user_id, now=now)
    return get_user(user_id) or User(user_id=user_id, created_at=now, status="active")
