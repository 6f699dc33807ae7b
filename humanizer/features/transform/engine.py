"""
Transformation engine.

Holds an ordered chain of strategies and tries them in turn. A strategy
failing with TransformationServiceError is logged and the next one is tried;
the caller only sees a failure when the whole chain is exhausted.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from humanizer.core.config import Settings, settings as default_settings
from humanizer.core.errors import TransformationServiceError, TransformationTotalFailureError
from humanizer.core.logging import log_event
from humanizer.core.metrics import transform_fallback_total, transform_failures_total
from humanizer.features.transform.fallback import FallbackStrategy
from humanizer.features.transform.remote import RemoteStrategy
from humanizer.features.transform.strategy import TransformationStrategy
from humanizer.models.transformation import TransformationLevel


@dataclass(frozen=True)
class TransformResult:
    text: str
    strategy: str


class TransformationEngine:
    def __init__(self, strategies: Sequence[TransformationStrategy]):
        if not strategies:
            raise ValueError("TransformationEngine needs at least one strategy")
        self.strategies: List[TransformationStrategy] = list(strategies)

    @property
    def strategy_names(self) -> List[str]:
        return [s.name for s in self.strategies]

    def close(self) -> None:
        """Release strategy resources (the remote HTTP client)."""
        for strategy in self.strategies:
            close = getattr(strategy, "close", None)
            if close is not None:
                close()

    def transform(
        self,
        text: str,
        level: TransformationLevel,
        *,
        request_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> TransformResult:
        """
        Run the chain until a strategy succeeds.

        Raises:
            TransformationTotalFailureError: every strategy failed
        """
        failures: List[str] = []
        for strategy in self.strategies:
            try:
                transformed = strategy.transform(text, level)
            except TransformationServiceError as e:
                failures.append(f"{strategy.name}: {e.message}")
                transform_fallback_total.inc(labels={"strategy": strategy.name})
                log_event(
                    "warning",
                    "transform.strategy_failed",
                    request_id=request_id,
                    user_id=user_id,
                    event_type="transform",
                    error_code=e.code,
                    extra={"strategy": strategy.name, "error": e.message},
                )
                continue
            return TransformResult(text=transformed, strategy=strategy.name)

        transform_failures_total.inc(labels={"stage": "transform"})
        raise TransformationTotalFailureError(
            "Text transformation failed", details={"failures": failures}, request_id=request_id
        )


def build_strategies(cfg: Optional[Settings] = None) -> List[TransformationStrategy]:
    """Strategy chain from configuration: remote first when it is usable, fallback always last."""
    cfg = cfg or default_settings
    choice = (cfg.TRANSFORM_STRATEGY or "remote").strip().lower()
    chain: List[TransformationStrategy] = []
    if choice == "remote":
        if cfg.REMOTE_TRANSFORM_API_KEY:
            chain.append(
                RemoteStrategy(
                    cfg.REMOTE_TRANSFORM_URL,
                    cfg.REMOTE_TRANSFORM_API_KEY,
                    timeout_seconds=cfg.REMOTE_TRANSFORM_TIMEOUT_SECONDS,
                    response_field=cfg.REMOTE_TRANSFORM_RESPONSE_FIELD,
                )
            )
        else:
            log_event(
                "warning",
                "transform.remote_disabled",
                request_id=None,
                event_type="config",
                extra={"reason": "REMOTE_TRANSFORM_API_KEY not set, using local fallback only"},
            )
    chain.append(FallbackStrategy())
    return chain


def build_engine(cfg: Optional[Settings] = None) -> TransformationEngine:
    return TransformationEngine(build_strategies(cfg))


_engine: Optional[TransformationEngine] = None


def get_engine() -> TransformationEngine:
    """Process-wide engine, built lazily from settings."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def set_engine(engine: Optional[TransformationEngine]) -> None:
    """Swap the process-wide engine (None rebuilds from settings on next use)."""
    global _engine
    _engine = engine


def close_engine() -> None:
    """Close the process-wide engine, if one was built; the next get_engine() rebuilds it."""
    global _engine
    if _engine is not None:
        _engine.close()
        _engine = None
