"""Pure scoring layer: catalog, metric scorer, mark aggregator, expiry rules."""

from regenmark.scoring.aggregator import AggregateScore, MarkAggregator, MarkSnapshot, ScoreChange
from regenmark.scoring.catalog import (
    PRODUCT_PROFILE,
    CertificationType,
    MarkStatus,
    ScoringConfig,
    build_scoring_config,
)
from regenmark.scoring.engine import LifecyclePolicy, RegenMarkEngine, get_engine
from regenmark.scoring.expiry import reclassify
from regenmark.scoring.metric_scorer import MetricScorer

__all__ = [
    "AggregateScore",
    "CertificationType",
    "LifecyclePolicy",
    "MarkAggregator",
    "MarkSnapshot",
    "MarkStatus",
    "MetricScorer",
    "PRODUCT_PROFILE",
    "RegenMarkEngine",
    "ScoreChange",
    "ScoringConfig",
    "build_scoring_config",
    "get_engine",
    "reclassify",
]
