"""
RegenMark catalog — certification types, statuses, weights and tiers.

Everything here is immutable.  ``ScoringConfig`` is built once (from the
defaults below or from app config overrides) and handed to the Metric
Scorer and Mark Aggregator at construction time; nothing reads module
globals at scoring time.

Default values come from the marketplace's published RegenMark programme:
    - type weights CARBON_SAVER .25, WATER_GUARDIAN .30, HUMAN_FIRST .30,
      HUMANE_HERO .15, CIRCULAR_CHAMPION 0 (held but folded into the others)
    - tiers Verde Claro (0) → Hoja Activa (20) → Eco-Guardia (40)
      → Estrella Verde (60) → Huella Cero (80)
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from regenmark.core.exceptions import ValidationError


class CertificationType(str, Enum):
    """Closed set of RegenMark certification types."""

    CARBON_SAVER = "CARBON_SAVER"
    WATER_GUARDIAN = "WATER_GUARDIAN"
    HUMAN_FIRST = "HUMAN_FIRST"
    HUMANE_HERO = "HUMANE_HERO"
    CIRCULAR_CHAMPION = "CIRCULAR_CHAMPION"

    @classmethod
    def parse(cls, value) -> CertificationType:
        """Coerce *value* to a member or raise ``ValidationError``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ValidationError(
                f"Invalid certification type '{value}'. "
                f"Must be one of: {', '.join(t.value for t in cls)}",
                details={"type": value},
            ) from None


class MarkStatus(str, Enum):
    """Lifecycle status of an issued certification."""

    ACTIVE = "ACTIVE"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


# Marks in these statuses count towards the aggregate score
COUNTING_STATUSES = frozenset({MarkStatus.ACTIVE, MarkStatus.EXPIRING_SOON})

# Metric profile for the generic product score (not a certification type)
PRODUCT_PROFILE = "PRODUCT"

TYPE_DISPLAY_NAMES = MappingProxyType({
    CertificationType.CARBON_SAVER: "Carbon Saver",
    CertificationType.WATER_GUARDIAN: "Water Guardian",
    CertificationType.HUMAN_FIRST: "Human First",
    CertificationType.HUMANE_HERO: "Humane Hero",
    CertificationType.CIRCULAR_CHAMPION: "Circular Champion",
})

DEFAULT_TYPE_WEIGHTS = {
    CertificationType.CARBON_SAVER: 0.25,
    CertificationType.WATER_GUARDIAN: 0.30,
    CertificationType.HUMAN_FIRST: 0.30,
    CertificationType.HUMANE_HERO: 0.15,
    CertificationType.CIRCULAR_CHAMPION: 0.0,
}

# Indicator weights per metric profile; every indicator is on a 0-100 scale
DEFAULT_METRIC_WEIGHTS = {
    PRODUCT_PROFILE: {
        "co2Reduction": 0.4,
        "waterSaving": 0.3,
        "energyEfficiency": 0.3,
    },
    CertificationType.CARBON_SAVER.value: {
        "carbonNeutral": 0.4,
        "emissionsReduction": 0.3,
        "carbonOffset": 0.2,
        "certified": 0.1,
    },
    CertificationType.WATER_GUARDIAN.value: {
        "waterSavingPercentage": 0.4,
        "waterRecycledPercentage": 0.3,
        "wasteWaterTreatment": 0.2,
        "certified": 0.1,
    },
    CertificationType.CIRCULAR_CHAMPION.value: {
        "recyclingRate": 0.4,
        "reuseRate": 0.3,
        "circularEconomy": 0.2,
        "wasteReduction": 0.1,
    },
    CertificationType.HUMAN_FIRST.value: {
        "fairWages": 0.3,
        "sustainabilityReport": 0.25,
        "localEmployeesPercentage": 0.25,
        "communityPrograms": 0.2,
    },
    CertificationType.HUMANE_HERO.value: {
        "crueltyFreeCertified": 0.5,
        "noAnimalTesting": 0.3,
        "ethicalSupplyChain": 0.2,
    },
}

DEFAULT_TIERS = (
    ("VERDE_CLARO", 0),
    ("HOJA_ACTIVA", 20),
    ("ECO_GUARDIA", 40),
    ("ESTRELLA_VERDE", 60),
    ("HUELLA_CERO", 80),
)
DEFAULT_BASE_TIER = "VERDE_CLARO"
NO_TIER = "NONE"

_WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class Tier:
    """One row of the ascending tier threshold table."""

    name: str
    min_score: int


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable weight and threshold tables for scoring and aggregation.

    Parameters
    ----------
    type_weights : Mapping[CertificationType, float]
        Relative weight of every certification type; sums to 1.
    metric_weights : Mapping[str, Mapping[str, float]]
        Indicator weights per metric profile, keyed by certification type
        value or :data:`PRODUCT_PROFILE`.
    tiers : tuple[Tier, ...]
        Tier cutoffs in strictly ascending order.
    base_tier : str
        Tier assigned below the lowest cutoff.
    """

    type_weights: Mapping[CertificationType, float]
    metric_weights: Mapping[str, Mapping[str, float]]
    tiers: tuple[Tier, ...]
    base_tier: str

    def type_weight(self, cert_type: CertificationType) -> float:
        return self.type_weights.get(cert_type, 0.0)

    def metric_table(self, profile: CertificationType | str) -> Mapping[str, float]:
        key = profile.value if isinstance(profile, CertificationType) else str(profile)
        table = self.metric_weights.get(key)
        if table is None:
            raise ValidationError(
                f"No metric weight table for '{key}'",
                details={"type": key},
            )
        return table

    def resolve_tier(self, score: int) -> str:
        """Return the highest tier whose cutoff does not exceed *score*."""
        tier = self.base_tier
        for row in self.tiers:
            if row.min_score <= score:
                tier = row.name
            else:
                break
        return tier


def build_scoring_config(
    type_weights: Mapping | None = None,
    metric_weights: Mapping | None = None,
    tiers=None,
    base_tier: str | None = None,
) -> ScoringConfig:
    """Validate and freeze scoring tables.

    Parameters
    ----------
    type_weights : Mapping, optional
        ``{type: weight}``; keys may be members or their string values.
        Must cover every type, be non-negative, and sum to 1.
    metric_weights : Mapping, optional
        ``{profile: {indicator: weight}}``; merged over the defaults.
        Weights are non-negative and each table sums to at most 1.
    tiers : iterable of (name, min_score), optional
        Ascending cutoffs.  Defaults to the RegenMark tier ladder.
    base_tier : str, optional
        Value below the lowest cutoff.  Defaults to ``VERDE_CLARO`` with the
        default ladder and ``NONE`` with a custom one.

    Raises
    ------
    ValueError
        If any invariant of the tables is violated.
    """
    raw_types = DEFAULT_TYPE_WEIGHTS if type_weights is None else type_weights
    weights: dict[CertificationType, float] = {}
    for key, value in raw_types.items():
        try:
            cert_type = CertificationType(key.value if isinstance(key, CertificationType) else str(key))
        except ValueError:
            raise ValueError(f"Unknown certification type in weight table: {key!r}") from None
        weight = float(value)
        if weight < 0 or math.isnan(weight):
            raise ValueError(f"Weight for {cert_type.value} must be non-negative, got {value!r}")
        weights[cert_type] = weight

    missing = [t.value for t in CertificationType if t not in weights]
    if missing:
        raise ValueError(f"Weight table is missing types: {', '.join(missing)}")
    total = sum(weights.values())
    if abs(total - 1.0) > _WEIGHT_TOLERANCE:
        raise ValueError(f"Certification type weights must sum to 1, got {total:.4f}")

    merged_metrics = {k: dict(v) for k, v in DEFAULT_METRIC_WEIGHTS.items()}
    for profile, table in (metric_weights or {}).items():
        key = profile.value if isinstance(profile, CertificationType) else str(profile)
        merged_metrics[key] = dict(table)
    for profile, table in merged_metrics.items():
        for indicator, weight in table.items():
            if float(weight) < 0 or math.isnan(float(weight)):
                raise ValueError(f"Metric weight {profile}.{indicator} must be non-negative")
        # Indicator values saturate at 1000
        profile_total = sum(float(w) for w in table.values())
        if profile_total > 1.0 + _WEIGHT_TOLERANCE:
            raise ValueError(f"Metric weights for {profile} must sum to at most 1, got {profile_total:.4f}")

    tier_rows = tuple(Tier(name=str(name), min_score=int(cutoff))
                      for name, cutoff in (DEFAULT_TIERS if tiers is None else tiers))
    if not tier_rows:
        raise ValueError("Tier table must not be empty")
    cutoffs = [t.min_score for t in tier_rows]
    if any(b <= a for a, b in zip(cutoffs, cutoffs[1:])):
        raise ValueError("Tier cutoffs must be strictly ascending")

    if base_tier is None:
        base_tier = DEFAULT_BASE_TIER if tiers is None else NO_TIER

    return ScoringConfig(
        type_weights=MappingProxyType(weights),
        metric_weights=MappingProxyType({
            k: MappingProxyType({ik: float(iv) for ik, iv in v.items()})
            for k, v in merged_metrics.items()
        }),
        tiers=tier_rows,
        base_tier=base_tier,
    )


DEFAULT_SCORING_CONFIG = build_scoring_config()
