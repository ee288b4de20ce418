"""
Engine holder — one immutable bundle of scoring config + lifecycle policy.

Built once per Flask app from ``app.config`` and stored under
``app.extensions["regenmark"]``.  Services call :func:`get_engine`; tests can
build their own ``RegenMarkEngine`` with custom tables and pass it in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from regenmark.scoring.aggregator import AggregateScore, MarkAggregator, MarkSnapshot
from regenmark.scoring.catalog import DEFAULT_SCORING_CONFIG, ScoringConfig, build_scoring_config
from regenmark.scoring.expiry import add_months, reclassify
from regenmark.scoring.metric_scorer import MetricScorer

logger = logging.getLogger(__name__)

EXTENSION_KEY = "regenmark"


@dataclass(frozen=True)
class LifecyclePolicy:
    """Time and threshold parameters of the certification lifecycle."""

    validity_months: int = 12
    expiring_soon_window: timedelta = timedelta(days=60)
    approval_threshold: int = 60

    def __post_init__(self):
        if self.validity_months <= 0:
            raise ValueError("validity_months must be positive")
        if self.expiring_soon_window < timedelta(0):
            raise ValueError("expiring_soon_window must not be negative")
        if not 0 <= self.approval_threshold <= 100:
            raise ValueError("approval_threshold must be within 0-100")

    def expiry_for(self, issued_at: datetime) -> datetime:
        return add_months(issued_at, self.validity_months)


class RegenMarkEngine:
    """Scorer, aggregator and expiry rules sharing one configuration."""

    def __init__(self, scoring: ScoringConfig | None = None, policy: LifecyclePolicy | None = None):
        self.scoring = scoring or DEFAULT_SCORING_CONFIG
        self.policy = policy or LifecyclePolicy()
        self.scorer = MetricScorer(self.scoring)
        self.aggregator = MarkAggregator(self.scoring)

    def reclassify(self, mark: MarkSnapshot, now: datetime) -> MarkSnapshot:
        return reclassify(mark, now, self.policy.expiring_soon_window)

    def aggregate_at(self, marks, now: datetime) -> AggregateScore:
        """Reclassify every mark at *now*, then aggregate."""
        return self.aggregator.aggregate(self.reclassify(m, now) for m in marks)


def engine_from_config(app_config) -> RegenMarkEngine:
    """Build an engine from a Flask config mapping."""
    scoring = build_scoring_config(
        type_weights=app_config.get("REGENMARK_TYPE_WEIGHTS"),
        tiers=app_config.get("REGENMARK_TIERS"),
    )
    policy = LifecyclePolicy(
        validity_months=int(app_config.get("REGENMARK_VALIDITY_MONTHS", 12)),
        expiring_soon_window=timedelta(days=int(app_config.get("REGENMARK_EXPIRING_SOON_DAYS", 60))),
        approval_threshold=int(app_config.get("REGENMARK_APPROVAL_THRESHOLD", 60)),
    )
    return RegenMarkEngine(scoring, policy)


def init_engine(app) -> RegenMarkEngine:
    engine = engine_from_config(app.config)
    app.extensions[EXTENSION_KEY] = engine
    logger.debug(
        "RegenMark engine ready: validity=%d months, expiring window=%s, threshold=%d",
        engine.policy.validity_months, engine.policy.expiring_soon_window,
        engine.policy.approval_threshold,
    )
    return engine


def get_engine() -> RegenMarkEngine:
    """Return the engine of the current Flask app (defaults outside an app)."""
    from flask import current_app, has_app_context

    if has_app_context():
        engine = current_app.extensions.get(EXTENSION_KEY)
        if engine is not None:
            return engine
    return RegenMarkEngine()
