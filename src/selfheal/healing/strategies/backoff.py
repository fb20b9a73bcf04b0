"""Backoff adjustment strategy for timeouts and flaky networks."""

from typing import Optional

from ...models.healing_models import (
    ActionOutcome,
    FailureType,
    HealingAttemptResult,
    HealingContext,
    RiskTolerance,
    TestFailure,
)
from ..base import BaseHealingStrategy
from .retry import RerunCallback


class BackoffAdjustStrategy(BaseHealingStrategy):
    """
    Raise the test's timeout and, when a rerun callback is available,
    confirm the new value by re-running the step.

    The current timeout is read from ``failure.context.test_config["timeout"]``
    (milliseconds).
    """

    def __init__(
        self,
        rerun: Optional[RerunCallback] = None,
        multiplier: float = 2.0,
        default_timeout_ms: int = 30000,
        max_timeout_ms: int = 120000,
        confidence: float = 0.75,
        capped_confidence: float = 0.6,
    ):
        super().__init__(
            "backoff-adjust",
            "1.0.0",
            [FailureType.TIMEOUT, FailureType.NETWORK_ERROR],
        )
        self.rerun = rerun
        self.multiplier = multiplier
        self.default_timeout_ms = default_timeout_ms
        self.max_timeout_ms = max_timeout_ms
        self.confidence = confidence
        self.capped_confidence = capped_confidence

    def current_timeout(self, failure: TestFailure) -> int:
        value = failure.context.test_config.get("timeout", self.default_timeout_ms)
        try:
            return max(int(value), 1)
        except (TypeError, ValueError):
            return self.default_timeout_ms

    def next_timeout(self, current_ms: int, risk_tolerance: RiskTolerance) -> int:
        multiplier = self.multiplier
        if risk_tolerance == RiskTolerance.LOW:
            multiplier = 1 + (multiplier - 1) / 2
        return min(int(current_ms * multiplier), self.max_timeout_ms)

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        if self.current_timeout(failure) >= self.max_timeout_ms:
            return 0.0
        return self.confidence

    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        current = self.current_timeout(failure)
        if current >= self.max_timeout_ms:
            return self.failure_result(
                f"Timeout already at maximum ({self.max_timeout_ms}ms)",
                [
                    self.create_action(
                        "update_configuration",
                        "Timeout increase skipped",
                        {"original_timeout": current, "max_timeout": self.max_timeout_ms},
                        ActionOutcome.SKIPPED,
                        "Timeout already at maximum",
                    )
                ],
            )

        new_timeout = self.next_timeout(current, context.user_preferences.risk_tolerance)
        capped = new_timeout >= self.max_timeout_ms
        confidence = self.capped_confidence if capped else self.confidence

        actions = [
            self.create_action(
                "update_configuration",
                "Increasing timeout value",
                {"original_timeout": current, "new_timeout": new_timeout},
                ActionOutcome.SUCCESS,
                f"Timeout increased from {current}ms to {new_timeout}ms",
            )
        ]

        if self.rerun is None:
            return self.success_result(
                actions,
                confidence,
                f"Proposed timeout increase to {new_timeout}ms",
            )

        passed = await self.rerun(failure, {"timeout": new_timeout})
        actions.append(
            self.create_action(
                "retry",
                "Re-running with increased timeout",
                {"timeout": new_timeout},
                ActionOutcome.SUCCESS if passed else ActionOutcome.FAILURE,
                "Rerun passed" if passed else "Rerun failed",
            )
        )

        if not passed:
            return self.failure_result(
                f"Still failing with timeout {new_timeout}ms", actions
            )

        return self.success_result(
            actions,
            confidence,
            f"Healed {failure.failure_type.value} by raising timeout to {new_timeout}ms",
        )
