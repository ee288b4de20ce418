"""
Mark Aggregator — an owner's valid certifications → one trust score + tier.

Formula (weighted average over the types the owner actually holds):

    total = round( Σ score_t × weight_t  /  Σ weight_t )

    - only ACTIVE / EXPIRING_SOON marks count (expired and revoked marks are
      excluded, not down-weighted)
    - one mark per type: the highest score wins
    - zero-weight types are displayed but never move the total
    - an owner holding a single type can still reach 100

The aggregate is never stored as its own entity; callers recompute it from
the current mark set after every issuance, expiry or revocation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from regenmark.scoring.catalog import (
    COUNTING_STATUSES,
    CertificationType,
    MarkStatus,
    ScoringConfig,
)
from regenmark.scoring.metric_scorer import clamp_score, round_half_up


@dataclass(frozen=True)
class MarkSnapshot:
    """Read-only view of one certification as seen by the scoring engine."""

    type: CertificationType
    score: int
    status: MarkStatus
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    id: int | None = None


@dataclass(frozen=True)
class MarkContribution:
    type: CertificationType
    score: int
    weight: float
    contribution: float
    certification_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "score": self.score,
            "weight": self.weight,
            "contribution": round(self.contribution, 4),
            "certification_id": self.certification_id,
        }


@dataclass(frozen=True)
class AggregateScore:
    """Derived trust score of one owner.

    Parameters
    ----------
    total_score : int
        Weighted average of contributing marks, 0-100.
    tier : str
        Tier label resolved from the threshold table.
    breakdown : tuple[MarkContribution, ...]
        Per contributing mark: type, raw score, weight, contribution.
    active_marks_count : int
        Marks with a counting status before de-duplication.
    actual_weight : float
        Sum of weights of the types present.
    """

    total_score: int
    tier: str
    breakdown: tuple[MarkContribution, ...] = field(default_factory=tuple)
    active_marks_count: int = 0
    actual_weight: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_score": self.total_score,
            "tier": self.tier,
            "breakdown": [c.to_dict() for c in self.breakdown],
            "active_marks_count": self.active_marks_count,
            "actual_weight": round(self.actual_weight, 4),
        }


@dataclass(frozen=True)
class ScoreChange:
    """Difference between two aggregates of the same owner."""

    score_diff: int
    score_percentage_change: int
    tier_changed: bool
    tier_up: bool
    tier_down: bool
    old_tier: str
    new_tier: str
    new_marks: int

    def to_dict(self) -> dict:
        return {
            "score_diff": self.score_diff,
            "score_percentage_change": self.score_percentage_change,
            "tier_changed": self.tier_changed,
            "tier_up": self.tier_up,
            "tier_down": self.tier_down,
            "old_tier": self.old_tier,
            "new_tier": self.new_tier,
            "new_marks": self.new_marks,
        }


class MarkAggregator:
    """Pure aggregation over a frozen ``ScoringConfig``."""

    def __init__(self, config: ScoringConfig) -> None:
        self.config = config

    def empty(self) -> AggregateScore:
        return AggregateScore(total_score=0, tier=self.config.resolve_tier(0))

    def aggregate(self, marks: Iterable[MarkSnapshot]) -> AggregateScore:
        counting = [m for m in marks if MarkStatus(m.status) in COUNTING_STATUSES]
        if not counting:
            return self.empty()

        best: dict[CertificationType, MarkSnapshot] = {}
        for mark in counting:
            current = best.get(mark.type)
            if current is None or mark.score > current.score:
                best[mark.type] = mark

        weighted_sum = 0.0
        total_weight = 0.0
        breakdown = []
        for cert_type in CertificationType:
            mark = best.get(cert_type)
            if mark is None:
                continue
            weight = self.config.type_weight(cert_type)
            if weight <= 0:
                continue
            contribution = mark.score * weight
            weighted_sum += contribution
            total_weight += weight
            breakdown.append(MarkContribution(
                type=cert_type,
                score=mark.score,
                weight=weight,
                contribution=contribution,
                certification_id=mark.id,
            ))

        total = clamp_score(round_half_up(weighted_sum / total_weight)) if total_weight > 0 else 0
        return AggregateScore(
            total_score=total,
            tier=self.config.resolve_tier(total),
            breakdown=tuple(breakdown),
            active_marks_count=len(counting),
            actual_weight=total_weight,
        )

    @staticmethod
    def compare(old: AggregateScore, new: AggregateScore) -> ScoreChange:
        diff = new.total_score - old.total_score
        tier_changed = old.tier != new.tier
        return ScoreChange(
            score_diff=diff,
            score_percentage_change=(
                round_half_up(diff / old.total_score * 100) if old.total_score > 0 else 0
            ),
            tier_changed=tier_changed,
            tier_up=tier_changed and diff > 0,
            tier_down=tier_changed and diff < 0,
            old_tier=old.tier,
            new_tier=new.tier,
            new_marks=new.active_marks_count - old.active_marks_count,
        )
