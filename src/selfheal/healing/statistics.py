"""Concurrency-safe healing statistics."""

import threading
from collections import Counter
from typing import Dict, Optional

from ..models.healing_models import (
    DetailedHealingStats,
    FailureType,
    FailureTypeCount,
    HealingStats,
)


class _Rate:
    __slots__ = ("total", "success")

    def __init__(self) -> None:
        self.total = 0
        self.success = 0

    @property
    def value(self) -> float:
        return self.success / self.total if self.total else 0.0


class StatisticsTracker:
    """
    Aggregate counters updated once per healing call.

    CRITICAL: All reads and writes happen under one lock, so snapshots are
    never torn and concurrent updates are never lost. The lock is a
    threading lock, safe for callers on threads as well as asyncio tasks.
    """

    def __init__(self, top_n: int = 5):
        self._lock = threading.Lock()
        self.top_n = top_n
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._total = 0
        self._successful = 0
        self._total_duration_ms = 0.0
        self._by_type: Dict[FailureType, _Rate] = {}
        self._by_strategy: Dict[str, _Rate] = {}
        self._type_counts: Counter = Counter()

    def record_attempt(
        self,
        success: bool,
        failure_type: Optional[FailureType] = None,
        strategy: Optional[str] = None,
        duration_ms: float = 0.0,
    ) -> None:
        """Record the outcome of one healing call."""
        with self._lock:
            self._total += 1
            if success:
                self._successful += 1
            self._total_duration_ms += max(duration_ms, 0.0)

            if failure_type is not None:
                self._type_counts[failure_type] += 1
                rate = self._by_type.setdefault(failure_type, _Rate())
                rate.total += 1
                rate.success += int(success)

            if strategy:
                rate = self._by_strategy.setdefault(strategy, _Rate())
                rate.total += 1
                rate.success += int(success)

    def stats(self) -> HealingStats:
        with self._lock:
            total, successful = self._total, self._successful
        return HealingStats(
            total_attempts=total,
            successful_attempts=successful,
            success_rate=successful / total if total else 0.0,
        )

    def detailed_stats(self) -> DetailedHealingStats:
        with self._lock:
            total, successful = self._total, self._successful
            # Counter.most_common keeps insertion order for equal counts
            top = self._type_counts.most_common(self.top_n)
            return DetailedHealingStats(
                total_attempts=total,
                successful_attempts=successful,
                success_rate=successful / total if total else 0.0,
                failed_attempts=total - successful,
                success_rate_by_type={t: r.value for t, r in self._by_type.items()},
                success_rate_by_strategy={
                    s: r.value for s, r in self._by_strategy.items()
                },
                average_duration_ms=self._total_duration_ms / total if total else 0.0,
                top_failure_types=[
                    FailureTypeCount(type=t, count=c) for t, c in top
                ],
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
