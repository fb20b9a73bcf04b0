"""Retry strategy with exponential backoff.

Re-runs the failed operation through a caller-supplied rerun callback,
waiting between tries with capped exponential backoff.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from ...models.healing_models import (
    ActionOutcome,
    FailureType,
    HealingAttemptResult,
    HealingContext,
    RiskTolerance,
    TestFailure,
)
from ..base import BaseHealingStrategy

# rerun(failure, overrides) -> True when the re-executed test step passes
RerunCallback = Callable[[TestFailure, Dict[str, Any]], Awaitable[bool]]


class RetryPolicy:
    """
    Retry policy with configurable exponential backoff.

    GOTCHA: Backoff delay is capped at max_delay
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        initial_delay: float = 0.1,
        max_delay: float = 5.0,
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Maximum number of tries
            backoff_factor: Exponential backoff multiplier
            initial_delay: Delay before the second try (seconds)
            max_delay: Maximum delay between tries (seconds)
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay before a retry.

        Args:
            attempt: Retry number (0-indexed)

        Returns:
            Delay in seconds
        """
        return min(self.initial_delay * self.backoff_factor**attempt, self.max_delay)

    def retries_for(self, risk_tolerance: RiskTolerance) -> int:
        """Number of tries allowed for the user's risk tolerance."""
        if risk_tolerance == RiskTolerance.LOW:
            return min(self.max_retries, 1)
        if risk_tolerance == RiskTolerance.HIGH:
            return self.max_retries + 2
        return self.max_retries


class RetryStrategy(BaseHealingStrategy):
    """Heal transient failures by re-running the failed step."""

    def __init__(
        self,
        rerun: Optional[RerunCallback] = None,
        policy: Optional[RetryPolicy] = None,
        confidence: float = 0.55,
    ):
        super().__init__(
            "retry",
            "1.0.0",
            [
                FailureType.ASSERTION_FAILED,
                FailureType.TIMEOUT,
                FailureType.NETWORK_ERROR,
            ],
        )
        self.rerun = rerun
        self.policy = policy or RetryPolicy()
        self.confidence = confidence

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        if self.rerun is None:
            return 0.0
        return self.decay(self.confidence, len(context.previous_attempts))

    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        if self.rerun is None:
            return self.failure_result(
                "No rerun callback configured",
                [
                    self.create_action(
                        "retry",
                        "Retry skipped",
                        result=ActionOutcome.SKIPPED,
                        message="No rerun callback configured",
                    )
                ],
            )

        max_tries = self.policy.retries_for(context.user_preferences.risk_tolerance)
        confidence = self.decay(self.confidence, len(context.previous_attempts))
        actions = []

        for attempt in range(max_tries):
            if attempt:
                delay = self.policy.calculate_delay(attempt - 1)
                self.logger.debug(f"Retrying {failure.test_id} in {delay:.2f}s")
                await asyncio.sleep(delay)

            parameters = {"retry_count": attempt + 1, "max_retries": max_tries}
            try:
                passed = await self.rerun(failure, {"attempt": attempt + 1})
            except Exception as e:
                self.logger.warning(
                    f"Rerun {attempt + 1}/{max_tries} raised for {failure.test_id}: {e}"
                )
                actions.append(
                    self.create_action(
                        "retry",
                        f"Retry {attempt + 1} of {max_tries}",
                        parameters,
                        ActionOutcome.FAILURE,
                        f"Rerun raised {type(e).__name__}: {e}",
                    )
                )
                continue

            if passed:
                actions.append(
                    self.create_action(
                        "retry",
                        f"Retry {attempt + 1} of {max_tries}",
                        parameters,
                        ActionOutcome.SUCCESS,
                        "Rerun passed",
                    )
                )
                return self.success_result(
                    actions,
                    confidence,
                    f"Healed {failure.failure_type.value} by retrying "
                    f"({attempt + 1} tries)",
                )

            actions.append(
                self.create_action(
                    "retry",
                    f"Retry {attempt + 1} of {max_tries}",
                    parameters,
                    ActionOutcome.FAILURE,
                    "Rerun failed",
                )
            )

        return self.failure_result(f"Still failing after {max_tries} retries", actions)
