"""Pipeline guarantees: no charge without a delivered, recorded result."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

import humanizer.features.pipeline.service as pipeline_service
from humanizer.core.database import credit_reservations, get_db_session, transformation_records
from humanizer.core.errors import (
    InsufficientCreditsError,
    PersistenceError,
    TransformationServiceError,
    TransformationTotalFailureError,
    ValidationError,
)
from humanizer.core.metrics import (
    credit_reservations_total,
    pipeline_duration_seconds,
    pipelines_in_flight,
    transform_failures_total,
    transformations_total,
)
from humanizer.features.credits import ledger
from humanizer.features.pipeline.service import PipelineOrchestrator
from humanizer.features.statistics.service import get_statistics
from humanizer.features.transform.engine import TransformationEngine
from humanizer.features.transform.fallback import FallbackStrategy
from humanizer.features.users.service import get_or_create_user
from humanizer.models.reservation import ReservationStatus
from humanizer.models.transformation import TransformationLevel

USER = "pipe-user"


@pytest.fixture(autouse=True)
def account():
    get_or_create_user(USER)


class FailingStrategy:
    name = "remote"

    def transform(self, text, level):
        raise TransformationServiceError("remote down")


class Cancelled(BaseException):
    pass


class CancellingStrategy:
    name = "cancelling"

    def transform(self, text, level):
        raise Cancelled()


def _counts():
    with get_db_session() as session:
        records = session.execute(select(func.count()).select_from(transformation_records)).scalar_one()
        commits = session.execute(
            select(func.count()).select_from(credit_reservations)
            .where(credit_reservations.c.status == ReservationStatus.COMMITTED.value)
        ).scalar_one()
        pending = session.execute(
            select(func.count()).select_from(credit_reservations)
            .where(credit_reservations.c.status == ReservationStatus.PENDING.value)
        ).scalar_one()
    return records, commits, pending


def test_successful_run_charges_records_and_counts():
    record = PipelineOrchestrator().run(USER, "a" * 600, "substantial")

    assert record.credits_used == 2
    assert record.character_count == 600
    assert record.level == TransformationLevel.SUBSTANTIAL
    assert record.strategy == "fallback"

    balance = ledger.get_balance(USER)
    assert balance.credits_used == 2
    assert balance.credits_reserved == 0
    assert _counts() == (1, 1, 0)

    stats = get_statistics(USER)
    assert stats.total_transformations == 1
    assert stats.total_credits_spent == 2
    assert transformations_total.value({"strategy": "fallback", "level": "substantial"}) == 1
    assert pipelines_in_flight.value() == 0
    assert pipeline_duration_seconds.value({"outcome": "committed"}) == 1
    assert credit_reservations_total.value({"outcome": "committed"}) == 1


def test_missing_level_defaults_to_moderate():
    assert PipelineOrchestrator().run(USER, "Hello.").level == TransformationLevel.MODERATE


@pytest.mark.parametrize("text", [None, "", "   \n\t"])
def test_blank_text_has_no_side_effects(text):
    with pytest.raises(ValidationError):
        PipelineOrchestrator().run(USER, text)
    assert ledger.get_balance(USER).credits_remaining == 100
    assert _counts() == (0, 0, 0)


def test_insufficient_credits_has_no_side_effects():
    ledger.commit(ledger.reserve(USER, 99))
    with pytest.raises(InsufficientCreditsError) as exc:
        PipelineOrchestrator().run(USER, "b" * 600)

    assert exc.value.details["creditsNeeded"] == 2
    assert ledger.get_balance(USER).credits_used == 99
    assert _counts() == (0, 1, 0)


def test_fallback_after_remote_failure_charges_once():
    engine = TransformationEngine([FailingStrategy(), FallbackStrategy()])
    record = PipelineOrchestrator(engine).run(USER, "We utilize it.", "slight")

    assert record.transformed_text == "We use it."
    assert record.strategy == "fallback"
    assert ledger.get_balance(USER).credits_used == 1
    assert _counts() == (1, 1, 0)


def test_total_failure_releases_reservation():
    engine = TransformationEngine([FailingStrategy()])
    with pytest.raises(TransformationTotalFailureError):
        PipelineOrchestrator(engine).run(USER, "text")

    balance = ledger.get_balance(USER)
    assert balance.credits_used == 0
    assert balance.credits_reserved == 0
    assert _counts() == (0, 0, 0)
    assert pipelines_in_flight.value() == 0
    assert pipeline_duration_seconds.value({"outcome": "failed"}) == 1


def test_cancellation_during_transform_releases_reservation():
    with pytest.raises(Cancelled):
        PipelineOrchestrator(TransformationEngine([CancellingStrategy()])).run(USER, "text")

    assert ledger.get_balance(USER).credits_remaining == 100
    assert _counts() == (0, 0, 0)


def test_persistence_failure_releases_and_returns_text(monkeypatch):
    def broken_append(session, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(pipeline_service.history, "append", broken_append)

    with pytest.raises(PersistenceError) as exc:
        PipelineOrchestrator().run(USER, "We utilize it.", "slight")

    assert exc.value.status_code == 500
    assert exc.value.details["transformedText"] == "We use it."
    assert ledger.get_balance(USER).credits_remaining == 100
    assert _counts() == (0, 0, 0)
    assert transform_failures_total.value({"stage": "persist"}) == 1


def test_failed_commit_rolls_back_the_record(monkeypatch):
    monkeypatch.setattr(pipeline_service.ledger, "commit", lambda reservation, **kwargs: False)

    with pytest.raises(PersistenceError):
        PipelineOrchestrator().run(USER, "text")

    records, commits, _ = _counts()
    assert records == commits == 0


def test_statistics_failure_is_not_fatal(monkeypatch):
    def broken_stats(*args, **kwargs):
        raise RuntimeError("stats store down")

    monkeypatch.setattr(pipeline_service, "update_statistics", broken_stats)

    record = PipelineOrchestrator().run(USER, "text")
    assert record.id is not None
    assert ledger.get_balance(USER).credits_used == 1
    assert transform_failures_total.value({"stage": "statistics"}) == 1


def test_records_always_match_commits():
    engine_ok = TransformationEngine([FallbackStrategy()])
    engine_bad = TransformationEngine([FailingStrategy()])
    for i in range(6):
        engine = engine_bad if i % 3 == 0 else engine_ok
        try:
            PipelineOrchestrator(engine).run(USER, f"Sample {i}.")
        except TransformationTotalFailureError:
            pass

    records, commits, pending = _counts()
    assert records == commits == 4
    assert pending == 0
    assert ledger.get_balance(USER).credits_used == 4


def test_rolled_back_commit_is_reported_as_released_only(monkeypatch):
    real_commit = ledger.commit

    def commit_then_fail(reservation, **kwargs):
        real_commit(reservation, **kwargs)
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(pipeline_service.ledger, "commit", commit_then_fail)

    with pytest.raises(PersistenceError):
        PipelineOrchestrator().run(USER, "text")

    assert _counts() == (0, 0, 0)
    assert ledger.get_balance(USER).credits_remaining == 100
    assert credit_reservations_total.value({"outcome": "committed"}) == 0
    assert credit_reservations_total.value({"outcome": "released"}) == 1


def test_concurrent_runs_for_one_account_never_overspend():
    burst_user = "pipe-burst"
    get_or_create_user(burst_user)
    orchestrator = PipelineOrchestrator(TransformationEngine([FallbackStrategy()]))
    text = "We utilize it. " * 80  # 1200 characters, 4 credits

    def attempt(i):
        try:
            return orchestrator.run(burst_user, text, "slight", request_id=f"burst-{i}")
        except InsufficientCreditsError:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(30)))

    successes = [r for r in results if r is not None]
    assert len(successes) == 25

    balance = ledger.get_balance(burst_user)
    assert balance.credits_used == 100
    assert balance.credits_used <= balance.credits_total
    assert balance.credits_reserved == 0

    records, commits, pending = _counts()
    assert records == commits == len(successes)
    assert pending == 0

    stats = get_statistics(burst_user)
    assert stats.total_transformations == len(successes)
    assert stats.total_credits_spent == 100
    assert transform_failures_total.value({"stage": "statistics"}) == 0
