"""Error taxonomy for the healing coordination engine.

None of these escape ``HealingCoordinator.heal``: they are raised inside the
coordinator and encoded into the returned ``HealingResult``.
"""

import asyncio
from typing import Optional

from ..models.healing_models import FailureType


class HealingError(Exception):
    """Base class for healing engine errors."""

    reason = "healing_error"


class StrategyExecutionError(HealingError):
    """A strategy raised, or overran its deadline."""

    reason = "strategy_error"

    def __init__(self, strategy_name: str, cause: BaseException):
        self.strategy_name = strategy_name
        self.cause = cause
        super().__init__(f"Strategy '{strategy_name}' failed: {self.describe(cause)}")

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, (TimeoutError, asyncio.TimeoutError))

    @staticmethod
    def describe(cause: BaseException) -> str:
        text = str(cause)
        return f"{type(cause).__name__}: {text}" if text else type(cause).__name__


class NoApplicableStrategyError(HealingError):
    """No registered strategy supports the failure's type."""

    reason = "no_applicable_strategy"
    result_message = "no applicable strategy"

    def __init__(self, failure_type: FailureType):
        self.failure_type = failure_type
        super().__init__(
            f"No applicable healing strategy for failure type: {failure_type.value}"
        )


class AttemptBudgetExhausted(HealingError):
    """``max_attempts`` already consumed by previous attempts."""

    reason = "attempt_budget_exhausted"
    result_message = "attempt budget exhausted"

    def __init__(self, max_attempts: int, previous_attempts: int):
        self.max_attempts = max_attempts
        self.previous_attempts = previous_attempts
        super().__init__(
            f"Attempt budget exhausted: {previous_attempts} previous attempt(s), "
            f"max_attempts={max_attempts}"
        )


class DuplicateStrategyError(HealingError):
    """A strategy with the same name and version is already registered."""

    reason = "duplicate_strategy"

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"Healing strategy already registered: {key}")


class ConfigurationWarning(UserWarning):
    """A configured strategy name does not match any registered strategy."""
