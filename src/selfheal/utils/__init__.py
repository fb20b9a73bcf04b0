"""Utility helpers for the healing engine."""

from .system_state import capture_system_state

__all__ = ["capture_system_state"]
