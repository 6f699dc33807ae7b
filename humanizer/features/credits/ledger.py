"""
Credit ledger.

Owns the subscription balance and exposes three operations:
- reserve: atomically check remaining balance and place a hold
- commit: turn a hold into consumed credits
- release: drop a hold whose downstream work failed

Every balance mutation is a single conditional UPDATE whose WHERE clause
carries the invariant (enough balance, reservation still pending), so
concurrent requests for one account serialize on the subscription row and
can never both pass the check against the same remaining credits.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, or_, true
from sqlalchemy.orm import Session

from humanizer.core.database import get_db_session, subscriptions, credit_reservations
from humanizer.core.errors import InsufficientCreditsError, NoActiveSubscriptionError, ValidationError
from humanizer.core.logging import log_event
from humanizer.core.metrics import credit_reservations_total
from humanizer.features.credits.subscriptions import (
    get_active_subscription,
    roll_expired_cycle,
    row_to_subscription,
    session_scope,
    utcnow,
)
from humanizer.models.plan import UNLIMITED_CREDITS
from humanizer.models.reservation import Reservation, ReservationStatus
from humanizer.models.subscription import Subscription


def _has_room(amount: int):
    remaining = (
        subscriptions.c.credits_total
        - subscriptions.c.credits_used
        - subscriptions.c.credits_reserved
    )
    return or_(subscriptions.c.credits_total == UNLIMITED_CREDITS, remaining >= amount)


def reserve(user_id: str, amount: int, *, request_id: Optional[str] = None, now: Optional[datetime] = None) -> Reservation:
    """
    Hold `amount` credits on the account's active subscription.

    Raises:
        ValidationError: non-positive amount
        NoActiveSubscriptionError: account has no active subscription
        InsufficientCreditsError: remaining balance below `amount` (nothing is written)
    """
    if amount <= 0:
        raise ValidationError("Reservation amount must be positive")

    now = now or utcnow()
    reservation_id = str(uuid4())

    with get_db_session() as session:
        # First statement is a write so SQLite takes its write lock up front
        roll_expired_cycle(session, user_id, now)

        row = session.execute(
            select(subscriptions.c.id)
            .where(subscriptions.c.user_id == user_id)
            .where(subscriptions.c.active == true())
        ).first()
        if not row:
            credit_reservations_total.inc(labels={"outcome": "no_subscription"})
            raise NoActiveSubscriptionError("No active subscription found", request_id=request_id)
        subscription_id = row.id

        result = session.execute(
            update(subscriptions)
            .where(subscriptions.c.id == subscription_id)
            .where(subscriptions.c.active == true())
            .where(_has_room(amount))
            .values(credits_reserved=subscriptions.c.credits_reserved + amount, updated_at=now)
        )
        if result.rowcount != 1:
            current = row_to_subscription(
                session.execute(select(subscriptions).where(subscriptions.c.id == subscription_id)).first()
            )
            credit_reservations_total.inc(labels={"outcome": "insufficient"})
            log_event(
                "warning",
                "credits.insufficient",
                request_id=request_id,
                user_id=user_id,
                event_type="credits",
                extra={"needed": amount, "remaining": current.credits_remaining},
            )
            raise InsufficientCreditsError(needed=amount, remaining=current.credits_remaining, request_id=request_id)

        session.execute(
            insert(credit_reservations).values(
                id=reservation_id,
                user_id=user_id,
                subscription_id=subscription_id,
                amount=amount,
                status=ReservationStatus.PENDING.value,
                created_at=now,
            )
        )

    credit_reservations_total.inc(labels={"outcome": "reserved"})
    log_event(
        "info",
        "credits.reserved",
        request_id=request_id,
        user_id=user_id,
        event_type="credits",
        extra={"reservation_id": reservation_id, "amount": amount},
    )
    return Reservation(
        reservation_id=reservation_id,
        user_id=user_id,
        subscription_id=subscription_id,
        amount=amount,
        status=ReservationStatus.PENDING,
        created_at=now,
    )


def _finalize(session: Session, reservation: Reservation, status: ReservationStatus, now: datetime) -> bool:
    result = session.execute(
        update(credit_reservations)
        .where(credit_reservations.c.id == reservation.reservation_id)
        .where(credit_reservations.c.status == ReservationStatus.PENDING.value)
        .values(status=status.value, finalized_at=now)
    )
    return result.rowcount == 1


def record_outcome(reservation: Reservation, outcome: str, *, request_id: Optional[str] = None) -> None:
    """Count and log a finalized reservation. Callers that joined commit/release
    into their own session call this once that session has committed."""
    credit_reservations_total.inc(labels={"outcome": outcome})
    log_event(
        "info",
        f"credits.{outcome}",
        request_id=request_id,
        user_id=reservation.user_id,
        event_type="credits",
        extra={"reservation_id": reservation.reservation_id, "amount": reservation.amount},
    )


def commit(reservation: Reservation, *, session: Optional[Session] = None, request_id: Optional[str] = None) -> bool:
    """
    Finalize a pending reservation: the hold becomes consumed credits.

    Joins `session` when given so the caller can make the commit atomic with
    its own writes; the caller then reports it with record_outcome after its
    transaction commits. Returns False (no-op) if the reservation is not pending.
    """
    now = utcnow()
    with session_scope(session) as s:
        if not _finalize(s, reservation, ReservationStatus.COMMITTED, now):
            return False
        s.execute(
            update(subscriptions)
            .where(subscriptions.c.id == reservation.subscription_id)
            .values(
                credits_reserved=subscriptions.c.credits_reserved - reservation.amount,
                credits_used=subscriptions.c.credits_used + reservation.amount,
                updated_at=now,
            )
        )

    if session is None:
        record_outcome(reservation, "committed", request_id=request_id)
    return True


def release(reservation: Reservation, *, session: Optional[Session] = None, request_id: Optional[str] = None) -> bool:
    """
    Return a pending reservation's credits to the balance.

    Idempotent: releasing twice, or releasing a committed reservation, is a
    no-op that returns False.
    """
    now = utcnow()
    with session_scope(session) as s:
        if not _finalize(s, reservation, ReservationStatus.RELEASED, now):
            return False
        s.execute(
            update(subscriptions)
            .where(subscriptions.c.id == reservation.subscription_id)
            .values(
                credits_reserved=subscriptions.c.credits_reserved - reservation.amount,
                updated_at=now,
            )
        )

    if session is None:
        record_outcome(reservation, "released", request_id=request_id)
    return True


def get_reservation_status(reservation_id: str) -> Optional[ReservationStatus]:
    with get_db_session() as session:
        row = session.execute(
            select(credit_reservations.c.status).where(credit_reservations.c.id == reservation_id)
        ).first()
        return ReservationStatus(row.status) if row else None


def get_balance(user_id: str, now: Optional[datetime] = None) -> Subscription:
    """
    Current active subscription, rolled forward if its cycle has ended.

    Raises:
        NoActiveSubscriptionError: account has no active subscription
    """
    with get_db_session() as session:
        roll_expired_cycle(session, user_id, now)
    subscription = get_active_subscription(user_id)
    if subscription is None:
        raise NoActiveSubscriptionError("No active subscription found")
    return subscription
