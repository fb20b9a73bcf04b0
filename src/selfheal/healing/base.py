"""Base classes for healing strategy plugins."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..models.healing_models import (
    ActionOutcome,
    FailureType,
    HealingAction,
    HealingAttemptResult,
    HealingContext,
    StrategyStatistics,
    TestFailure,
)
from .version import PluginKey, SemanticVersion

logger = logging.getLogger(__name__)


class HealingStrategy(ABC):
    """
    Plugin contract for healing strategies.

    PATTERN: Strategy pattern, one plugin per recovery technique
    CRITICAL: heal() must be async and must not block the event loop
    GOTCHA: The coordinator enforces a deadline, but strategies should
    still return promptly once they know they cannot help
    """

    def __init__(
        self,
        name: str,
        version: str,
        supported_failure_types: Iterable[FailureType],
    ):
        """
        Initialize strategy metadata.

        Args:
            name: Strategy name (unique together with version)
            version: Semantic version string
            supported_failure_types: Failure types this strategy can heal

        Raises:
            ValueError: If no failure types are declared or version is invalid
        """
        types = frozenset(FailureType(t) for t in supported_failure_types)
        if not types:
            raise ValueError(f"Strategy '{name}' must support at least one failure type")

        self.name = name
        self.version = version
        self.semantic_version = SemanticVersion.parse(version)
        self.supported_failure_types = types

    @property
    def key(self) -> PluginKey:
        return PluginKey(self.name, self.semantic_version)

    def can_heal(self, failure: TestFailure) -> bool:
        """Check whether the failure's type is supported."""
        return failure.failure_type in self.supported_failure_types

    @abstractmethod
    async def heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        """
        Attempt to heal a test failure.

        Args:
            failure: Failure to recover from (must not be mutated)
            context: Healing context (must not be mutated)

        Returns:
            Raw attempt result with the strategy-declared confidence
        """
        pass

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        """Pre-flight confidence estimate, without performing any action."""
        return 0.5

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}@{self.version})"


class PluginLifecycle(ABC):
    """Optional capability: strategies holding resources across calls."""

    @abstractmethod
    async def initialize(self, context: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def destroy(self) -> None:
        pass

    async def health(self) -> Dict[str, Any]:
        return {"status": "healthy"}


class ObservablePlugin(ABC):
    """Optional capability: strategies exporting events and metrics."""

    @abstractmethod
    def emit(self, event: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def get_metrics(self) -> Dict[str, Any]:
        pass


class BaseHealingStrategy(HealingStrategy):
    """
    Common functionality shared by the built-in strategies.

    Wraps the strategy-specific ``do_heal`` with per-strategy statistics and
    provides helpers for building actions and attempt results.
    """

    def __init__(
        self,
        name: str,
        version: str,
        supported_failure_types: Iterable[FailureType],
    ):
        super().__init__(name, version, supported_failure_types)
        self.logger = logging.getLogger(f"{__name__}.{name}")
        self._lock = threading.Lock()
        self._success_count = 0
        self._failure_count = 0

    async def heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        self.logger.info(f"Attempting to heal {failure.id} with strategy {self.name}")

        if not self.can_heal(failure):
            return self.failure_result(
                f"Strategy {self.name} cannot handle failure type: "
                f"{failure.failure_type.value}"
            )

        try:
            result = await self.do_heal(failure, context)
        except Exception:
            self._record(False)
            raise

        self._record(result.success)
        if result.success:
            self.logger.info(f"Healing successful: {failure.id} with {self.name}")
        else:
            self.logger.warning(f"Healing failed: {failure.id} with {self.name}")
        return result

    @abstractmethod
    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        """Strategy-specific healing implementation."""
        pass

    def _record(self, success: bool) -> None:
        with self._lock:
            if success:
                self._success_count += 1
            else:
                self._failure_count += 1

    def get_statistics(self) -> StrategyStatistics:
        with self._lock:
            success, failure = self._success_count, self._failure_count
        total = success + failure
        return StrategyStatistics(
            name=self.name,
            version=self.version,
            total_attempts=total,
            success_count=success,
            failure_count=failure,
            success_rate=success / total if total else 0.0,
            supported_failure_types=sorted(
                self.supported_failure_types, key=lambda t: t.value
            ),
        )

    def reset_statistics(self) -> None:
        with self._lock:
            self._success_count = 0
            self._failure_count = 0
        self.logger.info(f"Reset statistics for healing strategy: {self.name}")

    @staticmethod
    def decay(confidence: float, previous_attempts: int, factor: float = 0.8) -> float:
        """Reduce confidence by ``1 - factor`` per previous attempt."""
        return max(0.0, min(1.0, confidence * factor**previous_attempts))

    @staticmethod
    def create_action(
        action_type: str,
        description: str,
        parameters: Optional[Dict[str, Any]] = None,
        result: ActionOutcome = ActionOutcome.SUCCESS,
        message: str = "",
    ) -> HealingAction:
        return HealingAction(
            type=action_type,
            description=description,
            parameters=parameters or {},
            result=result,
            message=message,
        )

    @staticmethod
    def success_result(
        actions: List[HealingAction], confidence: float, message: str = "Healing successful"
    ) -> HealingAttemptResult:
        return HealingAttemptResult(
            success=True, confidence=confidence, actions=actions, message=message
        )

    @staticmethod
    def failure_result(
        message: str,
        actions: Optional[List[HealingAction]] = None,
        confidence: float = 0.0,
    ) -> HealingAttemptResult:
        return HealingAttemptResult(
            success=False, confidence=confidence, actions=actions or [], message=message
        )
