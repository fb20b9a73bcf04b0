"""Healing coordinator orchestrating strategy plugins.

PATTERN: classify → select candidates → invoke sequentially → score → aggregate
CRITICAL: heal() never raises for strategy or data problems; every failure
mode is encoded in the returned HealingResult
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, NamedTuple, Optional

from ..config.healing_config import HealingConfig, get_healing_config
from ..models.healing_models import (
    ActionOutcome,
    DetailedHealingStats,
    FailureType,
    HealingAction,
    HealingAttemptResult,
    HealingContext,
    HealingResult,
    HealingStats,
    TestFailure,
)
from .base import HealingStrategy
from .classifier import FailureClassifier
from .errors import (
    AttemptBudgetExhausted,
    NoApplicableStrategyError,
    StrategyExecutionError,
)
from .registry import StrategyRegistry
from .scoring import ConfidenceScorer
from .statistics import StatisticsTracker

logger = logging.getLogger(__name__)


class RankedAttempt(NamedTuple):
    """One tried candidate with its aggregated confidence."""

    strategy: HealingStrategy
    attempt: HealingAttemptResult
    confidence: float


class HealingCoordinator:
    """
    Central control object for healing a single test failure.

    PATTERN: Sequential fallback across ordered candidates, early exit on
    the first attempt that is both successful and confident enough
    CRITICAL: Strategy errors and timeouts are contained per attempt
    GOTCHA: Statistics are updated exactly once per heal() call, whatever
    the outcome, including caller cancellation
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        classifier: Optional[FailureClassifier] = None,
        scorer: Optional[ConfidenceScorer] = None,
        tracker: Optional[StatisticsTracker] = None,
        config: Optional[HealingConfig] = None,
    ):
        """
        Initialize healing coordinator.

        Args:
            registry: Strategy registry shared with callers
            classifier: Failure classifier (creates default if None)
            scorer: Confidence scorer (creates default if None)
            tracker: Statistics tracker (creates default if None)
            config: Default healing config, used when heal() gets none
        """
        self.registry = registry
        self.classifier = classifier or FailureClassifier()
        self.scorer = scorer or ConfidenceScorer()
        self.tracker = tracker or StatisticsTracker()
        self.config = config or get_healing_config()
        self.logger = logger

    async def heal(
        self,
        failure: TestFailure,
        context: Optional[HealingContext] = None,
        config: Optional[HealingConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> HealingResult:
        """
        Attempt to heal a test failure.

        Args:
            failure: Failure raised by a test engine (never mutated)
            context: Healing context (defaults to one mirroring the failure)
            config: Per-call healing config (defaults to the coordinator's)
            cancel_event: Set by the caller to stop before the next strategy

        Returns:
            HealingResult; success is False for every non-healed outcome
        """
        start = time.perf_counter()
        config = config or self.config
        context = context or HealingContext.for_failure(failure)
        resolved = failure
        result: Optional[HealingResult] = None

        try:
            resolved = self.classifier.resolve(failure)
            self.logger.info(
                f"Starting healing for failure {resolved.id} "
                f"(test={resolved.test_id}, type={self._type_label(resolved)})"
            )
            result = await self._heal(resolved, context, config, cancel_event, start)
        except Exception as e:
            self.logger.error(
                f"Healing process failed for failure {failure.id}: {e}",
                exc_info=config.enable_detailed_logging,
            )
            result = self._empty_result(
                f"healing failed: {e}", "internal_error", resolved, start
            )
        finally:
            if result is None:
                # Caller's task was cancelled mid-flight
                self.tracker.record_attempt(
                    False, self._known_type(resolved), None, self._elapsed_ms(start)
                )
            else:
                self.tracker.record_attempt(
                    result.success,
                    self._known_type(resolved),
                    result.strategy,
                    result.duration_ms,
                )

        self.logger.info(
            f"Healing completed for failure {resolved.id}: success={result.success}, "
            f"confidence={result.confidence:.3f}, strategy={result.strategy}, "
            f"duration={result.duration_ms:.1f}ms"
        )
        return result

    async def _heal(
        self,
        failure: TestFailure,
        context: HealingContext,
        config: HealingConfig,
        cancel_event: Optional[asyncio.Event],
        start: float,
    ) -> HealingResult:
        try:
            candidates = self._select_candidates(failure, context, config)
        except (NoApplicableStrategyError, AttemptBudgetExhausted) as e:
            self.logger.info(str(e))
            return self._empty_result(e.result_message, e.reason, failure, start)

        ranking: List[RankedAttempt] = []
        chosen: Optional[RankedAttempt] = None
        cancelled = False

        for strategy in candidates:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"Healing cancelled for failure {failure.id}")
                cancelled = True
                break

            self.logger.debug(f"Trying strategy {strategy.name} for failure {failure.id}")
            attempt = await self._invoke(strategy, failure, context, config)
            confidence = self.scorer.score(
                failure.failure_type, attempt.confidence, attempt.actions
            )
            ranked = RankedAttempt(strategy, attempt, confidence)
            ranking.append(ranked)

            if attempt.success and confidence >= config.confidence_threshold:
                self.logger.debug(
                    f"Early success with strategy {strategy.name}, "
                    f"confidence={confidence:.3f}"
                )
                chosen = ranked
                break

        if not ranking:
            return self._empty_result("healing cancelled", "cancelled", failure, start)

        if chosen is None:
            # max() keeps the first of equal scores, i.e. the earlier candidate
            chosen = max(ranking, key=lambda r: r.confidence)

        return self._compose(failure, chosen, ranking, config, cancelled, start)

    def _select_candidates(
        self, failure: TestFailure, context: HealingContext, config: HealingConfig
    ) -> List[HealingStrategy]:
        candidates = self.registry.candidates_for(
            failure.failure_type, context, allowed=config.strategies
        )
        if not candidates:
            raise NoApplicableStrategyError(failure.failure_type)

        previous = len(failure.previous_attempts)
        budget = max(config.max_attempts - previous, 0)
        if budget == 0:
            raise AttemptBudgetExhausted(config.max_attempts, previous)

        return candidates[:budget]

    async def _invoke(
        self,
        strategy: HealingStrategy,
        failure: TestFailure,
        context: HealingContext,
        config: HealingConfig,
    ) -> HealingAttemptResult:
        """Run one strategy under the deadline, converting errors to a failed attempt."""
        try:
            attempt = await asyncio.wait_for(
                strategy.heal(failure, context), timeout=config.timeout_seconds
            )
            if not isinstance(attempt, HealingAttemptResult):
                raise TypeError(
                    f"heal() returned {type(attempt).__name__}, "
                    "expected HealingAttemptResult"
                )
            return attempt

        except asyncio.CancelledError:
            raise

        except Exception as e:
            error = StrategyExecutionError(strategy.name, e)
            if error.timed_out:
                message = f"Strategy timeout after {config.timeout_seconds}s"
                self.logger.warning(f"Strategy '{strategy.name}' timed out: {message}")
            else:
                message = StrategyExecutionError.describe(e)
                self.logger.error(
                    str(error), exc_info=config.enable_detailed_logging
                )
            return self._error_attempt(strategy, message)

    @staticmethod
    def _error_attempt(strategy: HealingStrategy, message: str) -> HealingAttemptResult:
        return HealingAttemptResult(
            success=False,
            confidence=0.0,
            actions=[
                HealingAction(
                    type="error",
                    description=f"Strategy {strategy.name} failed",
                    parameters={"strategy": strategy.name},
                    result=ActionOutcome.FAILURE,
                    message=message,
                )
            ],
            message=message,
        )

    def _compose(
        self,
        failure: TestFailure,
        best: RankedAttempt,
        ranking: List[RankedAttempt],
        config: HealingConfig,
        cancelled: bool,
        start: float,
    ) -> HealingResult:
        success = (
            best.attempt.success and best.confidence >= config.confidence_threshold
        )

        metadata: Dict[str, Any] = {
            "strategy": best.strategy.name,
            "version": best.strategy.version,
            "failure_type": self._type_label(failure),
            "threshold": config.confidence_threshold,
            "attempts": [
                {
                    "strategy": ranked.strategy.name,
                    "success": ranked.attempt.success,
                    "declared_confidence": ranked.attempt.confidence,
                    "confidence": ranked.confidence,
                    "message": ranked.attempt.message,
                }
                for ranked in ranking
            ],
        }
        if cancelled:
            metadata["cancelled"] = True

        message = best.attempt.message
        if not success and best.attempt.success:
            message = (
                f"{message} (confidence {best.confidence:.2f} below "
                f"threshold {config.confidence_threshold:.2f})"
            ).strip()
        if cancelled:
            message = f"{message} (cancelled after {len(ranking)} attempt(s))".strip()

        return HealingResult(
            id=self._healing_id(failure),
            success=success,
            actions=list(best.attempt.actions),
            confidence=best.confidence,
            duration_ms=self._elapsed_ms(start),
            message=message,
            metadata=metadata,
        )

    def _empty_result(
        self, message: str, reason: str, failure: TestFailure, start: float
    ) -> HealingResult:
        return HealingResult(
            id=self._healing_id(failure),
            success=False,
            actions=[],
            confidence=0.0,
            duration_ms=self._elapsed_ms(start),
            message=message,
            metadata={"reason": reason, "failure_type": self._type_label(failure)},
        )

    @staticmethod
    def _healing_id(failure: TestFailure) -> str:
        return f"healing-{failure.id}-{int(time.time() * 1000)}"

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return max((time.perf_counter() - start) * 1000, 0.0)

    @staticmethod
    def _known_type(failure: TestFailure) -> Optional[FailureType]:
        """Failure type as an enum, None when it is not a valid FailureType."""
        try:
            return FailureType(failure.failure_type)
        except (TypeError, ValueError):
            return None

    @classmethod
    def _type_label(cls, failure: TestFailure) -> str:
        known = cls._known_type(failure)
        return known.value if known is not None else str(failure.failure_type)

    async def calculate_confidence(
        self, failure: TestFailure, context: Optional[HealingContext] = None
    ) -> float:
        """
        Estimate the best achievable confidence without invoking any strategy.

        Returns:
            Highest scored estimate among candidates, 0 when none apply
        """
        failure = self.classifier.resolve(failure)
        context = context or HealingContext.for_failure(failure)
        candidates = self.registry.candidates_for(failure.failure_type, context)

        best = 0.0
        for strategy in candidates:
            try:
                estimate = await strategy.estimate_confidence(failure, context)
            except Exception as e:
                self.logger.warning(
                    f"Confidence estimate failed for strategy {strategy.name}: {e}"
                )
                continue
            best = max(best, self.scorer.score(failure.failure_type, estimate))
        return best

    def stats(self) -> HealingStats:
        return self.tracker.stats()

    def detailed_stats(self) -> DetailedHealingStats:
        return self.tracker.detailed_stats()

    def supported_failure_types(self) -> List[FailureType]:
        """Failure types with at least one registered strategy."""
        by_type = self.registry.statistics().strategies_by_type
        return [t for t in FailureType if by_type.get(t)]
