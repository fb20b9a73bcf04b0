"""Configuration for the healing coordination engine."""

from .healing_config import HealingConfig, get_healing_config

__all__ = ["HealingConfig", "get_healing_config"]
