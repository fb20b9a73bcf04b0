"""Stub strategies and failure factories for healing tests."""

import asyncio
from typing import Iterable, Optional

from selfheal.healing.base import HealingStrategy
from selfheal.models.healing_models import (
    ActionOutcome,
    FailureContext,
    FailureType,
    HealingAction,
    HealingAttemptResult,
    TestFailure,
)


class StubStrategy(HealingStrategy):
    """Strategy returning a canned attempt result."""

    def __init__(
        self,
        name: str,
        confidence: float = 0.5,
        success: bool = True,
        types: Iterable[FailureType] = (FailureType.TIMEOUT,),
        version: str = "1.0.0",
        successful_actions: int = 1,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
    ):
        super().__init__(name, version, types)
        self.confidence = confidence
        self.success = success
        self.successful_actions = successful_actions
        self.delay = delay
        self.error = error
        self.calls = 0

    async def heal(self, failure, context):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        actions = [
            HealingAction(
                type="retry",
                description=f"{self.name} action {i}",
                result=ActionOutcome.SUCCESS if self.success else ActionOutcome.FAILURE,
            )
            for i in range(max(self.successful_actions, 1))
        ]
        return HealingAttemptResult(
            success=self.success,
            confidence=self.confidence,
            actions=actions,
            message=f"{self.name} finished",
        )


class SyncRaisingStrategy(HealingStrategy):
    """Strategy whose heal raises before returning an awaitable."""

    def __init__(self, name: str = "sync-raiser", types=(FailureType.TIMEOUT,)):
        super().__init__(name, "1.0.0", types)
        self.calls = 0

    def heal(self, failure, context):  # not a coroutine on purpose
        self.calls += 1
        raise RuntimeError("selector engine crashed")


def make_failure(
    failure_type: FailureType = FailureType.TIMEOUT,
    message: str = "Test failed",
    previous_attempts=(),
    **context,
) -> TestFailure:
    return TestFailure(
        test_id="test-login",
        failure_type=failure_type,
        message=message,
        context=FailureContext(**context),
        previous_attempts=list(previous_attempts),
    )
