"""Confidence arithmetic and the effective-score computation.

Every confidence update in the engine goes through ``reinforce`` or ``decay``
so the stored value stays within ``[0, 1]``: reinforcement saturates toward
1.0 and never lowers confidence, decay shrinks toward 0.0 and never raises it.
"""

from __future__ import annotations

import math
from datetime import datetime

from foldcast.config.models import ScoringSettings
from foldcast.patterns.models import OrganizationPattern, ensure_utc

MIN_RECENCY_FACTOR = 1e-6
_SECONDS_PER_DAY = 86_400.0


def clamp_confidence(value: float) -> float:
    """Clamp ``value`` into the closed unit interval."""
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def reinforce(confidence: float, rate: float) -> float:
    """Move ``confidence`` a fraction ``rate`` of the remaining distance to 1.0."""
    current = clamp_confidence(confidence)
    return clamp_confidence(current + clamp_confidence(rate) * (1.0 - current))


def decay(confidence: float, rate: float) -> float:
    """Remove a fraction ``rate`` of ``confidence``."""
    current = clamp_confidence(confidence)
    return clamp_confidence(current * (1.0 - clamp_confidence(rate)))


class ConfidenceScorer:
    """Rank patterns by confidence adjusted for staleness and experience."""

    def __init__(self, settings: ScoringSettings | None = None) -> None:
        self.settings = settings or ScoringSettings()

    def recency_factor(self, pattern: OrganizationPattern, now: datetime) -> float:
        """Return a multiplier in ``(0, 1]`` that shrinks as the pattern idles.

        The factor is ``decay_base`` raised to the number of idle decay periods,
        so with the defaults a pattern loses 10% of its weight per idle month.
        """
        idle = (ensure_utc(now) - ensure_utc(pattern.last_occurrence)).total_seconds()
        idle_days = max(0.0, idle / _SECONDS_PER_DAY)
        periods = idle_days / self.settings.decay_period_days
        return max(self.settings.decay_base**periods, MIN_RECENCY_FACTOR)

    def occurrence_weight(self, pattern: OrganizationPattern) -> float:
        """Return a weight in ``[occurrence_floor, 1)`` with diminishing returns."""
        floor = self.settings.occurrence_floor
        occurrences = max(1, pattern.occurrences)
        return floor + (1.0 - floor) * (1.0 - 1.0 / math.sqrt(occurrences))

    def effective_score(self, pattern: OrganizationPattern, now: datetime) -> float:
        """Return the ranking score of ``pattern`` at ``now`` (not persisted)."""
        if not pattern.is_active:
            return 0.0
        score = (
            clamp_confidence(pattern.confidence)
            * self.recency_factor(pattern, now)
            * self.occurrence_weight(pattern)
        )
        return clamp_confidence(score)


__all__ = [
    "MIN_RECENCY_FACTOR",
    "clamp_confidence",
    "reinforce",
    "decay",
    "ConfidenceScorer",
]
