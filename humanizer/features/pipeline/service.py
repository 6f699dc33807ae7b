"""
humanizer/features/pipeline/service.py

Credit-gated transformation pipeline.

Estimating -> Reserving -> Transforming -> Persisting -> Finalizing -> Done

Guarantees:
- Validation failures happen before any write.
- Credits are held (reserved) before the transformation runs and only
  consumed when the history record is written; the record insert and the
  reservation commit share one transaction, so every committed reservation
  has exactly one record and vice versa.
- Any failure after reserving, including cancellation, releases the hold.
- Statistics are best effort: failures are logged, never surfaced.
"""
import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from humanizer.core.database import get_db_session
from humanizer.core.errors import PersistenceError, ValidationError
from humanizer.core.logging import log_event
from humanizer.core.metrics import (
    pipeline_duration_seconds,
    pipelines_in_flight,
    transform_failures_total,
    transformations_total,
)
from humanizer.core.tracing import start_span
from humanizer.features.credits import ledger
from humanizer.features.credits.estimator import estimate_credits
from humanizer.features.history import service as history
from humanizer.features.statistics.service import update_statistics
from humanizer.features.transform.engine import TransformationEngine, get_engine
from humanizer.models.reservation import Reservation
from humanizer.models.transformation import TransformationRecord, normalize_level


class PipelineOrchestrator:
    def __init__(self, engine: Optional[TransformationEngine] = None):
        self._engine = engine

    @property
    def engine(self) -> TransformationEngine:
        return self._engine or get_engine()

    def run(
        self,
        user_id: str,
        text: Optional[str],
        level: Optional[str] = None,
        *,
        request_id: Optional[str] = None,
    ) -> TransformationRecord:
        """
        Transform `text` for `user_id`, paying from the account's balance.

        Raises:
            ValidationError: text missing or blank (no side effects)
            InsufficientCreditsError: balance too low (no side effects)
            NoActiveSubscriptionError: account has no active subscription
            TransformationTotalFailureError: every strategy failed (hold released)
            PersistenceError: record/commit write failed (hold released, transformed text attached)
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text is required", request_id=request_id)

        resolved_level = normalize_level(level)
        credits_needed = estimate_credits(text)
        char_count = len(text)

        outcome = "failed"
        started = time.perf_counter()
        pipelines_in_flight.inc()
        try:
            with start_span(
                "pipeline.transform",
                {"user_id": user_id, "level": resolved_level.value, "credits": credits_needed},
            ):
                reservation = ledger.reserve(user_id, credits_needed, request_id=request_id)

                try:
                    result = self.engine.transform(
                        text, resolved_level, request_id=request_id, user_id=user_id
                    )
                except BaseException:
                    self._release(reservation, request_id, stage="transform")
                    raise

                record = self._persist(
                    reservation,
                    text=text,
                    transformed_text=result.text,
                    char_count=char_count,
                    level=resolved_level,
                    strategy=result.strategy,
                    request_id=request_id,
                )
            ledger.record_outcome(reservation, "committed", request_id=request_id)
            outcome = "committed"
        finally:
            pipelines_in_flight.dec()
            pipeline_duration_seconds.observe(time.perf_counter() - started, {"outcome": outcome})

        transformations_total.inc(labels={"strategy": record.strategy, "level": record.level.value})
        self._update_statistics(record, request_id)
        log_event(
            "info",
            "transform.completed",
            request_id=request_id,
            user_id=user_id,
            event_type="transform",
            extra={
                "record_id": record.id,
                "strategy": record.strategy,
                "level": record.level.value,
                "credits": record.credits_used,
                "characters": record.character_count,
            },
        )
        return record

    def _persist(
        self,
        reservation: Reservation,
        *,
        text: str,
        transformed_text: str,
        char_count: int,
        level,
        strategy: str,
        request_id: Optional[str],
    ) -> TransformationRecord:
        try:
            with get_db_session() as session:
                record = history.append(
                    session,
                    user_id=reservation.user_id,
                    reservation_id=reservation.reservation_id,
                    original_text=text,
                    transformed_text=transformed_text,
                    character_count=char_count,
                    credits_used=reservation.amount,
                    level=level,
                    strategy=strategy,
                )
                if not ledger.commit(reservation, session=session, request_id=request_id):
                    raise PersistenceError(
                        "Credit reservation is no longer pending",
                        transformed_text=transformed_text,
                        request_id=request_id,
                    )
        except SQLAlchemyError as exc:
            transform_failures_total.inc(labels={"stage": "persist"})
            log_event(
                "error",
                "transform.persist_failed",
                request_id=request_id,
                user_id=reservation.user_id,
                event_type="transform",
                error_code=PersistenceError.code,
                extra={"reservation_id": reservation.reservation_id, "error": exc},
            )
            self._release(reservation, request_id, stage="persist")
            raise PersistenceError(
                "Transformation succeeded but could not be saved",
                transformed_text=transformed_text,
                request_id=request_id,
            ) from exc
        except BaseException:
            self._release(reservation, request_id, stage="persist")
            raise
        return record

    def _release(self, reservation: Reservation, request_id: Optional[str], *, stage: str) -> None:
        try:
            ledger.release(reservation, request_id=request_id)
        except SQLAlchemyError as exc:
            # Hold stays pending; reservation id is logged for reconciliation
            log_event(
                "error",
                "credits.release_failed",
                request_id=request_id,
                user_id=reservation.user_id,
                event_type="credits",
                extra={"reservation_id": reservation.reservation_id, "stage": stage, "error": exc},
            )

    def _update_statistics(self, record: TransformationRecord, request_id: Optional[str]) -> None:
        try:
            update_statistics(record.user_id, record.character_count, record.credits_used, record.level)
        except Exception as exc:
            transform_failures_total.inc(labels={"stage": "statistics"})
            log_event(
                "error",
                "statistics.update_failed",
                request_id=request_id,
                user_id=record.user_id,
                event_type="statistics",
                extra={"record_id": record.id, "error": exc},
                exc_info=True,
            )


def run_transformation(user_id: str, text: Optional[str], level: Optional[str] = None, *, request_id: Optional[str] = None) -> TransformationRecord:
    return PipelineOrchestrator().run(user_id, text, level, request_id=request_id)
