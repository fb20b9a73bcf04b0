"""Confidence scoring for healing attempts."""

import math
from typing import Dict, Iterable, Optional

from ..models.healing_models import ActionOutcome, FailureType, HealingAction

DEFAULT_BASELINES: Dict[FailureType, float] = {
    FailureType.ASSERTION_FAILED: 0.5,
    FailureType.ELEMENT_NOT_FOUND: 0.6,
    FailureType.TIMEOUT: 0.5,
    FailureType.NETWORK_ERROR: 0.4,
    FailureType.UNKNOWN: 0.3,
}


def clip(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


class ConfidenceScorer:
    """
    Deterministic aggregated confidence for a strategy attempt.

    score = 0.5 * baseline(type) + 0.5 * declared
            + min(action_bonus * (successful_actions - 1), max_action_bonus)
    clipped to [0, 1].
    """

    def __init__(
        self,
        baselines: Optional[Dict[FailureType, float]] = None,
        baseline_weight: float = 0.5,
        action_bonus: float = 0.1,
        max_action_bonus: float = 0.2,
    ):
        self.baselines = dict(DEFAULT_BASELINES)
        if baselines:
            self.baselines.update(baselines)
        self.baseline_weight = baseline_weight
        self.action_bonus = action_bonus
        self.max_action_bonus = max_action_bonus

    def baseline(self, failure_type: FailureType) -> float:
        return self.baselines.get(failure_type, self.baselines[FailureType.UNKNOWN])

    def score(
        self,
        failure_type: FailureType,
        declared_confidence: float,
        actions: Iterable[HealingAction] = (),
    ) -> float:
        declared = clip(declared_confidence)
        weight = self.baseline_weight
        score = weight * self.baseline(failure_type) + (1 - weight) * declared

        successful = sum(1 for a in actions if a.result == ActionOutcome.SUCCESS)
        if successful > 1:
            score += min(self.action_bonus * (successful - 1), self.max_action_bonus)

        return clip(score)
