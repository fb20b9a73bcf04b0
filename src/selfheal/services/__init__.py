"""Service layer for the healing engine."""

from .healing_service import HealingService, create_healing_service

__all__ = ["HealingService", "create_healing_service"]
