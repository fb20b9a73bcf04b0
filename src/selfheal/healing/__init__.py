"""Healing coordination engine."""

from .base import BaseHealingStrategy, HealingStrategy, ObservablePlugin, PluginLifecycle
from .classifier import FailureClassifier
from .coordinator import HealingCoordinator, RankedAttempt
from .errors import (
    AttemptBudgetExhausted,
    ConfigurationWarning,
    DuplicateStrategyError,
    HealingError,
    NoApplicableStrategyError,
    StrategyExecutionError,
)
from .registry import StrategyRegistry
from .scoring import ConfidenceScorer
from .statistics import StatisticsTracker
from .version import PluginKey, SemanticVersion

__all__ = [
    "HealingStrategy",
    "BaseHealingStrategy",
    "PluginLifecycle",
    "ObservablePlugin",
    "FailureClassifier",
    "HealingCoordinator",
    "RankedAttempt",
    "StrategyRegistry",
    "ConfidenceScorer",
    "StatisticsTracker",
    "SemanticVersion",
    "PluginKey",
    "HealingError",
    "StrategyExecutionError",
    "NoApplicableStrategyError",
    "AttemptBudgetExhausted",
    "DuplicateStrategyError",
    "ConfigurationWarning",
]
