"""Models package for the healing coordination engine."""

from .healing_models import (
    FailureType,
    ActionOutcome,
    RiskTolerance,
    HealingAction,
    HealingAttemptResult,
    HealingResult,
    FailureContext,
    TestFailure,
    SystemState,
    UserPreferences,
    HealingContext,
    HealingStats,
    FailureTypeCount,
    DetailedHealingStats,
    StrategyStatistics,
    RegistryStatistics,
    HealingReport,
)

__all__ = [
    # Failure and context models
    "FailureType",
    "FailureContext",
    "TestFailure",
    "SystemState",
    "UserPreferences",
    "RiskTolerance",
    "HealingContext",
    # Healing models
    "ActionOutcome",
    "HealingAction",
    "HealingAttemptResult",
    "HealingResult",
    "HealingReport",
    # Statistics models
    "HealingStats",
    "FailureTypeCount",
    "DetailedHealingStats",
    "StrategyStatistics",
    "RegistryStatistics",
]
