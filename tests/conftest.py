"""Shared fixtures for healing tests."""

import pytest

from selfheal.config.healing_config import HealingConfig
from selfheal.healing.registry import StrategyRegistry


@pytest.fixture
def registry():
    """Create empty strategy registry."""
    return StrategyRegistry()


@pytest.fixture
def config():
    """Healing config independent of the environment."""
    return HealingConfig(
        enabled=True,
        confidence_threshold=0.5,
        max_attempts=3,
        strategies=[],
        timeout_seconds=1.0,
        enable_detailed_logging=False,
    )
