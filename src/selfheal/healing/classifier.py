"""Failure classification from raw error messages."""

import asyncio
import logging
from typing import Optional, Sequence, Tuple

from ..models.healing_models import FailureType, TestFailure

logger = logging.getLogger(__name__)

# Evaluated in order, first match wins.
DEFAULT_RULES: Tuple[Tuple[Tuple[str, ...], FailureType], ...] = (
    (("timeout",), FailureType.TIMEOUT),
    (("not found", "selector"), FailureType.ELEMENT_NOT_FOUND),
    (("network", "fetch"), FailureType.NETWORK_ERROR),
    (("assert", "expect"), FailureType.ASSERTION_FAILED),
)


class FailureClassifier:
    """
    Map raw error text to a FailureType.

    PATTERN: Ordered keyword rules, case-insensitive substring match
    CRITICAL: Never overrides a failure that is already classified
    """

    def __init__(
        self, rules: Sequence[Tuple[Sequence[str], FailureType]] = DEFAULT_RULES
    ):
        self.rules = tuple(
            (tuple(keyword.lower() for keyword in keywords), failure_type)
            for keywords, failure_type in rules
        )

    def classify(self, message: Optional[str]) -> FailureType:
        """Classify an error message."""
        if not message:
            return FailureType.UNKNOWN

        text = message.lower()
        for keywords, failure_type in self.rules:
            if any(keyword in text for keyword in keywords):
                return failure_type

        return FailureType.UNKNOWN

    def classify_exception(self, error: BaseException) -> FailureType:
        """Classify an exception raised by a test engine."""
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return FailureType.TIMEOUT
        if isinstance(error, AssertionError):
            return FailureType.ASSERTION_FAILED
        if isinstance(error, ConnectionError):
            return FailureType.NETWORK_ERROR
        return self.classify(f"{type(error).__name__}: {error}")

    def resolve(self, failure: TestFailure) -> TestFailure:
        """
        Return the failure with its type resolved.

        Only failures typed ``unknown`` that carry a message are classified;
        the result is a copy, the original failure is left untouched.
        """
        if failure.failure_type != FailureType.UNKNOWN or not failure.message:
            return failure

        failure_type = self.classify(failure.message)
        if failure_type == FailureType.UNKNOWN:
            return failure

        logger.debug(f"Classified failure {failure.id} as {failure_type.value}")
        return failure.model_copy(update={"failure_type": failure_type})
