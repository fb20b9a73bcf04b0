"""Data models for the healing coordination engine.

This module contains the Pydantic models exchanged between test engines,
the healing coordinator and strategy plugins: failures, healing context,
per-strategy attempts, final healing results and statistics snapshots.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FailureType(str, Enum):
    """Categorical cause of a test failure."""

    ASSERTION_FAILED = "assertion_failed"
    TIMEOUT = "timeout"
    ELEMENT_NOT_FOUND = "element_not_found"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class ActionOutcome(str, Enum):
    """Outcome of a single healing action."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class RiskTolerance(str, Enum):
    """How aggressive strategies may be when repairing a test."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HealingAction(BaseModel):
    """A single step performed by a strategy while healing."""

    type: str = Field(description="Action tag (retry, update_selector, ...)")
    description: str = Field(default="", description="Human readable description")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)
    result: ActionOutcome = Field(default=ActionOutcome.SUCCESS)
    message: str = Field(default="")


def _no_actions_means_failure(model: Any) -> Any:
    if not model.actions and model.success:
        model.success = False
    return model


class HealingAttemptResult(BaseModel):
    """Raw outcome of one strategy invocation, before aggregation."""

    success: bool = Field(description="Strategy reports the failure as healed")
    confidence: float = Field(
        ge=0, le=1, description="Strategy-declared confidence"
    )
    actions: List[HealingAction] = Field(default_factory=list)
    message: str = Field(default="")

    @model_validator(mode="after")
    def _check_actions(self) -> "HealingAttemptResult":
        return _no_actions_means_failure(self)

    @property
    def successful_action_count(self) -> int:
        return sum(1 for a in self.actions if a.result == ActionOutcome.SUCCESS)


class HealingResult(BaseModel):
    """Final coordinator-produced result of a healing call."""

    id: str = Field(default_factory=lambda: f"healing-{uuid.uuid4().hex[:12]}")
    success: bool = Field(default=False)
    actions: List[HealingAction] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)
    duration_ms: float = Field(default=0.0, ge=0, description="Wall clock time")
    message: str = Field(default="")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_actions(self) -> "HealingResult":
        return _no_actions_means_failure(self)

    @property
    def strategy(self) -> Optional[str]:
        """Name of the chosen strategy, if any."""
        return self.metadata.get("strategy")


class FailureContext(BaseModel):
    """Snapshot of the test environment at the moment of failure."""

    model_config = ConfigDict(frozen=True)

    test_config: Dict[str, Any] = Field(default_factory=dict)
    environment: Dict[str, Any] = Field(default_factory=dict)
    custom: Dict[str, Any] = Field(
        default_factory=dict, description="Arbitrary engine-specific data"
    )


class TestFailure(BaseModel):
    """A test failure raised by a test engine. Immutable once built."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"failure-{uuid.uuid4().hex[:12]}")
    test_id: str = Field(description="Identifier of the failing test")
    failure_type: FailureType = Field(default=FailureType.UNKNOWN)
    message: str = Field(default="", description="Raw error message")
    stack: Optional[str] = Field(default=None, description="Stack trace")
    timestamp: datetime = Field(default_factory=datetime.now)
    context: FailureContext = Field(default_factory=FailureContext)
    previous_attempts: List[HealingResult] = Field(
        default_factory=list, description="Earlier healing results, oldest first"
    )

    def retry(self, result: HealingResult, **updates: Any) -> "TestFailure":
        """Build the failure for the next retry, carrying ``result`` in history."""
        payload = {
            "id": f"failure-{uuid.uuid4().hex[:12]}",
            "timestamp": datetime.now(),
            "previous_attempts": [*self.previous_attempts, result],
        }
        payload.update(updates)
        # dict(self) is shallow, so nested models are reused, not re-parsed
        return type(self).model_validate({**dict(self), **payload})


class SystemState(BaseModel):
    """Load and resource snapshot. Informational only."""

    load: float = Field(default=0.0, ge=0, description="Normalized load, 0..1")
    cpu_percent: float = Field(default=0.0)
    memory_percent: float = Field(default=0.0)
    disk_percent: float = Field(default=0.0)
    active_tests: int = Field(default=0)
    queue_length: int = Field(default=0)


class UserPreferences(BaseModel):
    """User-level healing preferences."""

    preferred_strategies: List[str] = Field(
        default_factory=list, description="Strategy names, most preferred first"
    )
    risk_tolerance: RiskTolerance = Field(default=RiskTolerance.MEDIUM)


class HealingContext(BaseModel):
    """Runtime snapshot passed to every strategy invocation."""

    model_config = ConfigDict(frozen=True)

    system_state: SystemState = Field(default_factory=SystemState)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    available_strategies: Set[str] = Field(
        default_factory=set, description="Eligible strategy names, empty means all"
    )
    previous_attempts: List[HealingResult] = Field(default_factory=list)

    @classmethod
    def for_failure(cls, failure: TestFailure, **kwargs: Any) -> "HealingContext":
        """Build a context mirroring the failure's retry history."""
        kwargs.setdefault("previous_attempts", list(failure.previous_attempts))
        return cls(**kwargs)


class HealingStats(BaseModel):
    """Aggregate counters exposed to observability collaborators."""

    total_attempts: int = Field(default=0)
    successful_attempts: int = Field(default=0)
    success_rate: float = Field(default=0.0, ge=0, le=1)


class FailureTypeCount(BaseModel):
    type: FailureType
    count: int


class DetailedHealingStats(HealingStats):
    """Extended statistics broken down by failure type and strategy."""

    failed_attempts: int = Field(default=0)
    success_rate_by_type: Dict[FailureType, float] = Field(default_factory=dict)
    success_rate_by_strategy: Dict[str, float] = Field(default_factory=dict)
    average_duration_ms: float = Field(default=0.0)
    top_failure_types: List[FailureTypeCount] = Field(default_factory=list)


class StrategyStatistics(BaseModel):
    """Per-strategy counters kept by the strategy itself."""

    name: str
    version: str
    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    supported_failure_types: List[FailureType] = Field(default_factory=list)


class RegistryStatistics(BaseModel):
    """Counts of registered strategies."""

    total_strategies: int = 0
    unique_names: int = 0
    strategies_with_lifecycle: int = 0
    strategies_with_observability: int = 0
    strategies_by_type: Dict[FailureType, int] = Field(default_factory=dict)


class HealingReport(BaseModel):
    """Original failure together with every healing result tried for it."""

    failure: TestFailure
    healing_attempts: List[HealingResult] = Field(default_factory=list)
    healed: bool = Field(default=False)

    @property
    def final_result(self) -> Optional[HealingResult]:
        return self.healing_attempts[-1] if self.healing_attempts else None
