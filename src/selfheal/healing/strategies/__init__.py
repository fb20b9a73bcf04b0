"""Built-in healing strategies."""

from .retry import RetryPolicy, RetryStrategy, RerunCallback
from .backoff import BackoffAdjustStrategy
from .locators import (
    CSSFallbackStrategy,
    IDFallbackStrategy,
    LocatorProbe,
    WaitForElementStrategy,
    extract_selector,
)

__all__ = [
    "RetryPolicy",
    "RetryStrategy",
    "RerunCallback",
    "BackoffAdjustStrategy",
    "WaitForElementStrategy",
    "IDFallbackStrategy",
    "CSSFallbackStrategy",
    "LocatorProbe",
    "extract_selector",
]
