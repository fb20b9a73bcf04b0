"""High-level healing service used by test engines.

This service provides a facade for coordinating the healing components:
- Strategy registry with the built-in strategies
- Healing coordinator and its statistics
- Caller-side healing policy (enabled flag, retry loop with history)

PATTERN: Service facade, constructed once at startup and passed by reference
CRITICAL: No module-level singletons; every engine gets its state from here
"""

import logging
from typing import Any, Dict, Iterable, Optional

from ..config.healing_config import HealingConfig, get_healing_config
from ..healing.base import HealingStrategy
from ..healing.coordinator import HealingCoordinator
from ..healing.registry import StrategyRegistry
from ..healing.strategies import (
    BackoffAdjustStrategy,
    CSSFallbackStrategy,
    IDFallbackStrategy,
    LocatorProbe,
    RerunCallback,
    RetryStrategy,
    WaitForElementStrategy,
)
from ..models.healing_models import (
    DetailedHealingStats,
    HealingContext,
    HealingReport,
    HealingResult,
    HealingStats,
    TestFailure,
)
from ..utils.system_state import capture_system_state

logger = logging.getLogger(__name__)

# Coordinator outcomes after which another retry cannot help
_TERMINAL_REASONS = {"no_applicable_strategy", "attempt_budget_exhausted", "cancelled"}


class HealingService:
    """
    Healing context object shared by test engines.

    PATTERN: Service facade for healing operations
    CRITICAL: The enabled flag is enforced here, never in the coordinator
    GOTCHA: Retries build a new TestFailure carrying earlier results; the
    original failure is never mutated
    """

    def __init__(
        self,
        config: Optional[HealingConfig] = None,
        registry: Optional[StrategyRegistry] = None,
        coordinator: Optional[HealingCoordinator] = None,
    ):
        """
        Initialize healing service.

        Args:
            config: Healing configuration (loaded from env if None)
            registry: Strategy registry (creates empty registry if None)
            coordinator: Healing coordinator (created over registry if None)
        """
        self.config = config or get_healing_config()
        self.registry = registry or StrategyRegistry()
        self.coordinator = coordinator or HealingCoordinator(
            self.registry, config=self.config
        )
        self.logger = logger
        self.logger.info("HealingService initialized")

    async def start(self, plugin_context: Optional[Dict[str, Any]] = None) -> None:
        """Initialize strategies with lifecycle support."""
        await self.registry.initialize_all(plugin_context)

    async def stop(self) -> None:
        """Clean up strategies with lifecycle support."""
        await self.registry.cleanup_all()

    async def heal_failure(
        self,
        failure: TestFailure,
        context: Optional[HealingContext] = None,
    ) -> Optional[HealingResult]:
        """
        Heal a single failure if healing is enabled.

        Returns:
            HealingResult, or None when healing is disabled
        """
        if not self.config.enabled:
            self.logger.debug(f"Healing disabled, skipping failure {failure.id}")
            return None
        context = context or self.build_context(failure)
        return await self.coordinator.heal(failure, context, self.config)

    def build_context(self, failure: TestFailure, **kwargs: Any) -> HealingContext:
        """Default context for a failure, with a fresh system state snapshot."""
        kwargs.setdefault("system_state", capture_system_state())
        return HealingContext.for_failure(failure, **kwargs)

    async def heal_with_history(
        self,
        failure: TestFailure,
        rerun: RerunCallback,
        context: Optional[HealingContext] = None,
    ) -> HealingReport:
        """
        Heal and re-run until the test passes or healing gives up.

        Each round heals the current failure, re-runs the test when healing
        succeeded, and on a repeated failure creates a new TestFailure whose
        previous_attempts carry every earlier result.

        Args:
            failure: Original failure raised by the engine
            rerun: Re-executes the test, returns True when it passes
            context: Base healing context (retry history is filled in per round)

        Returns:
            HealingReport with the original failure and all healing results
        """
        report = HealingReport(failure=failure)
        if not self.config.enabled:
            return report

        current = failure
        while True:
            round_context = (
                context.model_copy(
                    update={"previous_attempts": list(current.previous_attempts)}
                )
                if context is not None
                else self.build_context(current)
            )
            result = await self.coordinator.heal(current, round_context, self.config)
            report.healing_attempts.append(result)

            if result.metadata.get("reason") in _TERMINAL_REASONS:
                break

            if result.success:
                try:
                    passed = await rerun(current, {"healing_id": result.id})
                except Exception as e:
                    self.logger.warning(f"Rerun after healing raised for {current.test_id}: {e}")
                    passed = False
                if passed:
                    report.healed = True
                    break

            current = current.retry(result)

        self.logger.info(
            f"Healing report for {failure.test_id}: healed={report.healed}, "
            f"attempts={len(report.healing_attempts)}"
        )
        return report

    def stats(self) -> HealingStats:
        return self.coordinator.stats()

    def detailed_stats(self) -> DetailedHealingStats:
        return self.coordinator.detailed_stats()


def create_healing_service(
    config: Optional[HealingConfig] = None,
    strategies: Optional[Iterable[HealingStrategy]] = None,
    register_defaults: bool = True,
    rerun: Optional[RerunCallback] = None,
    probe: Optional[LocatorProbe] = None,
) -> HealingService:
    """
    Build a healing service with its registry and coordinator.

    Args:
        config: Healing configuration (loaded from env if None)
        strategies: Extra strategies to register after the defaults
        register_defaults: Register the built-in strategies
        rerun: Rerun callback handed to the retry-based strategies
        probe: Locator probe handed to the locator strategies

    Returns:
        Ready-to-use HealingService
    """
    registry = StrategyRegistry()

    if register_defaults:
        for strategy in (
            BackoffAdjustStrategy(rerun=rerun),
            RetryStrategy(rerun=rerun),
            IDFallbackStrategy(probe=probe),
            CSSFallbackStrategy(probe=probe),
            WaitForElementStrategy(probe=probe),
        ):
            registry.register(strategy)

    for strategy in strategies or ():
        registry.register(strategy)

    return HealingService(config=config, registry=registry)
