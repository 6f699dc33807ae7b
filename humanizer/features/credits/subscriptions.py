"""
humanizer/features/credits/subscriptions.py

Subscription lifecycle.

Handles:
- Default subscription at signup
- Plan change (deactivate old row, insert new row)
- Billing cycle roll-over when a cycle has ended
- Active subscription lookup
"""

import calendar
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, insert, update, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from humanizer.core.database import get_db_session, subscriptions
from humanizer.core.errors import ConflictError
from humanizer.core.logging import log_event
from humanizer.features.plans.catalog import get_default_plan, require_plan
from humanizer.models.plan import Plan
from humanizer.models.subscription import Subscription


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month = Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


@contextmanager
def session_scope(session: Optional[Session] = None):
    """Join the caller's transaction when given one, otherwise open and commit our own."""
    if session is not None:
        yield session
        return
    with get_db_session() as own:
        yield own


def row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        plan_type=row.plan_type,
        credits_total=row.credits_total,
        credits_used=row.credits_used,
        credits_reserved=row.credits_reserved,
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        active=bool(row.active),
    )


def get_active_subscription(user_id: str, session: Optional[Session] = None) -> Optional[Subscription]:
    with session_scope(session) as s:
        row = s.execute(
            select(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .where(subscriptions.c.active == true())
        ).first()
        return row_to_subscription(row) if row else None


def roll_expired_cycle(session: Session, user_id: str, now: Optional[datetime] = None) -> bool:
    """Start a fresh cycle if the active one has ended.

    Usage resets to zero; in-flight reservations keep their hold.
    Returns True when a cycle was rolled.
    """
    now = now or utcnow()
    result = session.execute(
        update(subscriptions)
        .where(subscriptions.c.user_id == user_id)
        .where(subscriptions.c.active == true())
        .where(subscriptions.c.end_date <= now)
        .values(credits_used=0, start_date=now, end_date=add_months(now), updated_at=now)
    )
    rolled = result.rowcount == 1
    if rolled:
        log_event("info", "subscription.cycle_rolled", request_id=None, user_id=user_id, event_type="subscription")
    return rolled


def _insert_subscription(session: Session, user_id: str, plan: Plan, now: datetime) -> int:
    result = session.execute(
        insert(subscriptions).values(
            user_id=user_id,
            plan_type=plan.plan_id,
            credits_total=plan.credits,
            credits_used=0,
            credits_reserved=0,
            start_date=now,
            end_date=add_months(now),
            active=True,
            created_at=now,
            updated_at=now,
        )
    )
    return result.inserted_primary_key[0]


def open_default_subscription(user_id: str, now: Optional[datetime] = None) -> Subscription:
    """
    Create the signup subscription on the default plan (idempotent).

    Returns the existing active subscription if there already is one.
    """
    existing = get_active_subscription(user_id)
    if existing:
        return existing

    now = now or utcnow()
    plan = get_default_plan()
    try:
        with get_db_session() as session:
            _insert_subscription(session, user_id, plan, now)
    except IntegrityError:
        # Lost a signup race; the winner's row is the active one
        pass

    created = get_active_subscription(user_id)
    if created is None:
        raise ConflictError(f"Could not open a subscription for {user_id}")
    return created


def change_plan(user_id: str, plan_id: str, now: Optional[datetime] = None) -> Subscription:
    """
    Replace the active subscription with a fresh one on `plan_id`.

    The old row is deactivated, never deleted. Reservations still pending
    against it settle on that row.

    Raises:
        ValidationError: unknown plan
        ConflictError: concurrent plan change for the same account
    """
    plan = require_plan(plan_id)
    now = now or utcnow()
    try:
        with get_db_session() as session:
            session.execute(
                update(subscriptions)
                .where(subscriptions.c.user_id == user_id)
                .where(subscriptions.c.active == true())
                .values(active=False, updated_at=now)
            )
            new_id = _insert_subscription(session, user_id, plan, now)
            row = session.execute(select(subscriptions).where(subscriptions.c.id == new_id)).first()
            subscription = row_to_subscription(row)
    except IntegrityError as exc:
        raise ConflictError("Subscription changed concurrently, retry the request") from exc

    log_event(
        "info",
        "subscription.plan_changed",
        request_id=None,
        user_id=user_id,
        event_type="subscription",
        extra={"plan_id": plan.plan_id, "subscription_id": subscription.id},
    )
    return subscription
