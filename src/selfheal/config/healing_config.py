"""Healing configuration with environment variable loading."""

import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class HealingConfig(BaseModel):
    """Per-call healing configuration handed over by test engines."""

    enabled: bool = Field(
        default_factory=lambda: _env_bool("HEALING_ENABLED", "true"),
        description="Whether callers should attempt healing at all",
    )
    confidence_threshold: float = Field(
        default_factory=lambda: float(
            os.getenv("HEALING_CONFIDENCE_THRESHOLD", "0.5")
        ),
        ge=0,
        le=1,
        description="Aggregated confidence an attempt must reach to count as healed",
    )
    max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("HEALING_MAX_ATTEMPTS", "3")),
        ge=0,
        description="Strategy invocations allowed across a test's retry history",
    )
    strategies: List[str] = Field(
        default_factory=lambda: _env_list("HEALING_STRATEGIES"),
        description="Allow list of strategy names (empty = no restriction)",
    )
    timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("HEALING_STRATEGY_TIMEOUT", "30")),
        gt=0,
        description="Deadline for a single strategy invocation",
    )
    enable_detailed_logging: bool = Field(
        default_factory=lambda: _env_bool("HEALING_DETAILED_LOGGING", "true"),
        description="Log tracebacks for contained strategy errors",
    )

    @field_validator("strategies", mode="before")
    @classmethod
    def _split_strategies(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @classmethod
    def from_env(cls) -> "HealingConfig":
        """Re-read configuration from the current environment."""
        return cls()


@lru_cache(maxsize=1)
def get_healing_config() -> HealingConfig:
    """Return the process default configuration, read once."""
    return HealingConfig()
