"""Self-healing test harness: healing coordination engine."""

import logging

from .config import HealingConfig, get_healing_config
from .healing import (
    AttemptBudgetExhausted,
    BaseHealingStrategy,
    ConfidenceScorer,
    ConfigurationWarning,
    FailureClassifier,
    HealingCoordinator,
    HealingStrategy,
    NoApplicableStrategyError,
    StatisticsTracker,
    StrategyExecutionError,
    StrategyRegistry,
)
from .models import (
    FailureType,
    HealingAction,
    HealingAttemptResult,
    HealingContext,
    HealingResult,
    TestFailure,
)
from .services import HealingService, create_healing_service

__version__ = "0.1.0"


def configure_logging(level: int = logging.INFO) -> None:
    """Basic logging setup for entry points; the library adds no handlers."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


__all__ = [
    "HealingConfig",
    "get_healing_config",
    "FailureType",
    "TestFailure",
    "HealingContext",
    "HealingAction",
    "HealingAttemptResult",
    "HealingResult",
    "HealingStrategy",
    "BaseHealingStrategy",
    "StrategyRegistry",
    "FailureClassifier",
    "ConfidenceScorer",
    "StatisticsTracker",
    "HealingCoordinator",
    "StrategyExecutionError",
    "NoApplicableStrategyError",
    "AttemptBudgetExhausted",
    "ConfigurationWarning",
    "HealingService",
    "create_healing_service",
    "configure_logging",
]
