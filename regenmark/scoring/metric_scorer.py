"""Pure metric scoring: raw sustainability indicators → 0-100 mark score."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from regenmark.scoring.catalog import CertificationType, ScoringConfig

SCORE_MIN = 0
SCORE_MAX = 100


@dataclass(frozen=True)
class MetricContribution:
    """One indicator's share of a metric score."""

    metric: str
    value: float
    weight: float
    contribution: float


@dataclass(frozen=True)
class MetricScore:
    """Score plus the per-indicator breakdown that produced it.

    Parameters
    ----------
    profile : str
        Certification type value or ``PRODUCT``.
    score : int
        Rounded and clamped weighted sum.
    raw_score : float
        Weighted sum before rounding and clamping.
    breakdown : tuple[MetricContribution, ...]
        One entry per indicator in the profile's weight table.
    """

    profile: str
    score: int
    raw_score: float
    breakdown: tuple[MetricContribution, ...]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_score(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def coerce_metric(value) -> float:
    """Normalize one reported indicator.

    Booleans are flags (met → 100).  Anything non-numeric, NaN or negative
    counts as 0 so a reporting gap never blocks the workflow.  Positive
    infinity and integers beyond float range saturate at 1000.
    """
    if isinstance(value, bool):
        return 100.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0 if value < 0 else float(SCORE_MAX) * 10
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or number < 0:
        return 0.0
    if math.isinf(number):
        return float(SCORE_MAX) * 10
    return number


class MetricScorer:
    """Weighted-sum scorer over a frozen ``ScoringConfig``.

    Stateless apart from the config; safe to share between threads.
    """

    def __init__(self, config: ScoringConfig) -> None:
        self.config = config

    def score(self, profile: CertificationType | str, metrics: Mapping | None) -> int:
        """Return ``clamp(round(Σ weight·value), 0, 100)`` for *profile*."""
        return self.breakdown(profile, metrics).score

    def breakdown(self, profile: CertificationType | str, metrics: Mapping | None) -> MetricScore:
        table = self.config.metric_table(profile)
        metrics = metrics if isinstance(metrics, Mapping) else {}

        rows = []
        raw = 0.0
        for name, weight in table.items():
            value = coerce_metric(metrics.get(name))
            contribution = value * weight
            raw += contribution
            rows.append(MetricContribution(metric=name, value=value, weight=weight,
                                           contribution=contribution))

        key = profile.value if isinstance(profile, CertificationType) else str(profile)
        return MetricScore(
            profile=key,
            score=clamp_score(round_half_up(raw)),
            raw_score=raw,
            breakdown=tuple(rows),
        )
