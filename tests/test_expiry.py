"""Tests for the Expiry Monitor, lifecycle policy and evaluation state variants.

Coverage:
  1. classify(): ACTIVE / EXPIRING_SOON / EXPIRED boundaries
  2. reclassify(): EXPIRED and REVOKED are never changed
  3. Calendar-month validity arithmetic
  4. days_until_expiration rounding
  5. LifecyclePolicy and RegenMarkEngine wiring
  6. Evaluation state variants reject impossible payloads
"""

from datetime import datetime, timedelta, timezone

import pytest

from regenmark.models.evaluation_state import (
    AiProcessing,
    Approved,
    EvaluationStatus,
    InReview,
    Pending,
    Rejected,
    is_terminal,
)
from regenmark.scoring.aggregator import MarkSnapshot
from regenmark.scoring.catalog import CertificationType, MarkStatus
from regenmark.scoring.engine import LifecyclePolicy, RegenMarkEngine
from regenmark.scoring.expiry import add_months, as_utc, classify, days_until_expiration, reclassify

UTC = timezone.utc
WINDOW = timedelta(days=60)
EXPIRES = datetime(2026, 1, 15, tzinfo=UTC)


def _snap(status=MarkStatus.ACTIVE, expires_at=EXPIRES):
    return MarkSnapshot(type=CertificationType.CARBON_SAVER, score=80, status=status,
                        issued_at=datetime(2025, 1, 15, tzinfo=UTC), expires_at=expires_at, id=1)


# ═══════════════════════════════════════════════════════════════════════════
# classify / reclassify
# ═══════════════════════════════════════════════════════════════════════════


class TestClassify:

    def test_active_outside_window(self):
        assert classify(EXPIRES, EXPIRES - timedelta(days=61), WINDOW) == MarkStatus.ACTIVE

    def test_expiring_soon_at_window_edge(self):
        assert classify(EXPIRES, EXPIRES - timedelta(days=60), WINDOW) == MarkStatus.EXPIRING_SOON

    def test_expiring_soon_one_second_before(self):
        assert classify(EXPIRES, EXPIRES - timedelta(seconds=1), WINDOW) == MarkStatus.EXPIRING_SOON

    def test_expired_at_instant(self):
        assert classify(EXPIRES, EXPIRES, WINDOW) == MarkStatus.EXPIRED

    def test_open_ended(self):
        assert classify(None, EXPIRES, WINDOW) == MarkStatus.ACTIVE

    def test_naive_datetimes_are_utc(self):
        naive = EXPIRES.replace(tzinfo=None)
        assert classify(naive, EXPIRES, WINDOW) == MarkStatus.EXPIRED
        assert as_utc(naive) == EXPIRES


class TestReclassify:

    def test_moves_to_expiring_soon(self):
        result = reclassify(_snap(), datetime(2025, 12, 15, tzinfo=UTC), WINDOW)
        assert result.status == MarkStatus.EXPIRING_SOON
        assert result.score == 80

    def test_unchanged_mark_is_same_object(self):
        mark = _snap()
        assert reclassify(mark, datetime(2025, 6, 1, tzinfo=UTC), WINDOW) is mark

    def test_expired_is_sticky(self):
        mark = _snap(status=MarkStatus.EXPIRED)
        assert reclassify(mark, datetime(2025, 2, 1, tzinfo=UTC), WINDOW).status == MarkStatus.EXPIRED

    def test_revoked_is_sticky(self):
        mark = _snap(status=MarkStatus.REVOKED)
        assert reclassify(mark, datetime(2027, 1, 1, tzinfo=UTC), WINDOW).status == MarkStatus.REVOKED


# ═══════════════════════════════════════════════════════════════════════════
# Date arithmetic
# ═══════════════════════════════════════════════════════════════════════════


class TestAddMonths:

    def test_twelve_months(self):
        assert add_months(datetime(2025, 1, 15, 9, 30, tzinfo=UTC), 12) == datetime(2026, 1, 15, 9, 30, tzinfo=UTC)

    def test_clamps_day(self):
        assert add_months(datetime(2025, 1, 31, tzinfo=UTC), 1) == datetime(2025, 2, 28, tzinfo=UTC)
        assert add_months(datetime(2024, 1, 31, tzinfo=UTC), 1) == datetime(2024, 2, 29, tzinfo=UTC)

    def test_leap_day_plus_year(self):
        assert add_months(datetime(2024, 2, 29, tzinfo=UTC), 12) == datetime(2025, 2, 28, tzinfo=UTC)

    def test_crosses_year(self):
        assert add_months(datetime(2025, 11, 30, tzinfo=UTC), 3) == datetime(2026, 2, 28, tzinfo=UTC)


class TestDaysUntilExpiration:

    def test_future(self):
        assert days_until_expiration(EXPIRES, EXPIRES - timedelta(days=31)) == 31

    def test_past_is_negative(self):
        assert days_until_expiration(EXPIRES, EXPIRES + timedelta(days=2)) == -2

    def test_rounds_to_nearest_day(self):
        assert days_until_expiration(EXPIRES, EXPIRES - timedelta(days=3, hours=13)) == 4

    def test_open_ended(self):
        assert days_until_expiration(None, EXPIRES) is None


# ═══════════════════════════════════════════════════════════════════════════
# Policy + engine
# ═══════════════════════════════════════════════════════════════════════════


class TestLifecyclePolicy:

    def test_defaults(self):
        policy = LifecyclePolicy()
        assert policy.validity_months == 12
        assert policy.expiring_soon_window == timedelta(days=60)
        assert policy.approval_threshold == 60
        assert policy.expiry_for(datetime(2025, 1, 15, tzinfo=UTC)) == EXPIRES

    @pytest.mark.parametrize("kwargs", [
        {"validity_months": 0},
        {"expiring_soon_window": timedelta(days=-1)},
        {"approval_threshold": 101},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            LifecyclePolicy(**kwargs)

    def test_engine_aggregate_at_reclassifies(self):
        engine = RegenMarkEngine()
        assert engine.aggregate_at([_snap()], datetime(2025, 6, 1, tzinfo=UTC)).total_score == 80
        assert engine.aggregate_at([_snap()], datetime(2026, 2, 1, tzinfo=UTC)).total_score == 0

    def test_engine_custom_window(self):
        engine = RegenMarkEngine(policy=LifecyclePolicy(expiring_soon_window=timedelta(days=10)))
        now = EXPIRES - timedelta(days=30)
        assert engine.reclassify(_snap(), now).status == MarkStatus.ACTIVE


# ═══════════════════════════════════════════════════════════════════════════
# Evaluation state variants
# ═══════════════════════════════════════════════════════════════════════════


class TestEvaluationStates:
    NOW = datetime(2025, 1, 15, tzinfo=UTC)

    def test_status_tags(self):
        assert Pending().status is EvaluationStatus.PENDING
        assert not is_terminal(Pending())
        assert is_terminal(Rejected(reviewer_id="r", feedback="missing audit", completed_at=self.NOW))

    def test_approved_requires_certification(self):
        with pytest.raises(ValueError):
            Approved(reviewer_id="r", review_score=80, certification_id=None, completed_at=self.NOW)

    def test_approved_score_range(self):
        with pytest.raises(ValueError):
            Approved(reviewer_id="r", review_score=101, certification_id=1, completed_at=self.NOW)

    def test_rejected_requires_feedback(self):
        with pytest.raises(ValueError):
            Rejected(reviewer_id="r", feedback="   ", completed_at=self.NOW)

    def test_in_review_requires_reviewer(self):
        with pytest.raises(ValueError):
            InReview(submitted_at=self.NOW, reviewer_id="")

    def test_ai_score_must_be_int(self):
        with pytest.raises(ValueError):
            AiProcessing(submitted_at=self.NOW, ai_score=True)

    def test_variants_are_frozen(self):
        state = Rejected(reviewer_id="r", feedback="missing audit", completed_at=self.NOW)
        with pytest.raises(AttributeError):
            state.feedback = ""
