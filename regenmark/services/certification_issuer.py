"""
RegenMark Certification Engine
Certification Issuer — approval and revocation as single units of work.

Approval write set (one transaction):
    1. reclassify the owner's existing marks at *now*
    2. create the Certification (ACTIVE, expires after the validity period)
    3. finalise the Evaluation as APPROVED, linked to the certification
    4. recompute the owner aggregate and persist it on the owner
    5. audit rows for every change

Either everything commits or nothing does.  Notifications are sent only
after the commit and can never undo it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm.exc import StaleDataError

from regenmark.core.exceptions import InternalError, InvalidStateError, NotFoundError, ValidationError
from regenmark.models import db
from regenmark.models.audit import write_audit
from regenmark.models.certification import Certification
from regenmark.models.evaluation import EVALUATION_TRANSITIONS
from regenmark.models.evaluation_state import Approved, EvaluationStatus
from regenmark.scoring.aggregator import AggregateScore, ScoreChange
from regenmark.scoring.catalog import MarkStatus
from regenmark.scoring.engine import RegenMarkEngine, get_engine
from regenmark.scoring.expiry import as_utc
from regenmark.services.notification import NotificationService, send_quietly
from regenmark.services.score_service import apply_aggregate, get_owner, refresh_owner_marks

logger = logging.getLogger(__name__)


def check_review_score(review_score, threshold: int) -> int:
    """Return *review_score* if it is an integer 0-100 at or above *threshold*."""
    if isinstance(review_score, bool) or not isinstance(review_score, int):
        raise ValidationError(
            "review_score must be an integer between 0 and 100",
            details={"review_score": review_score},
        )
    if not 0 <= review_score <= 100:
        raise ValidationError(
            "review_score must be between 0 and 100",
            details={"review_score": review_score},
        )
    if review_score < threshold:
        raise ValidationError(
            f"review_score must be at least {threshold} to approve",
            details={"review_score": review_score, "threshold": threshold},
        )
    return review_score


@dataclass(frozen=True)
class IssueResult:
    """Outcome of a committed approval."""

    certification: Certification
    aggregate: AggregateScore
    previous_aggregate: AggregateScore
    change: ScoreChange

    def to_dict(self, now: datetime | None = None) -> dict:
        return {
            "certification": self.certification.to_dict(now=now),
            "aggregate": self.aggregate.to_dict(),
            "previous_aggregate": self.previous_aggregate.to_dict(),
            "change": self.change.to_dict(),
        }


@dataclass(frozen=True)
class RevokeResult(IssueResult):
    """Outcome of a committed revocation."""


class CertificationIssuer:
    """Creates and revokes certifications, keeping owner aggregates in step."""

    def __init__(self, engine: RegenMarkEngine | None = None) -> None:
        self.engine = engine or get_engine()

    # ── Issue ─────────────────────────────────────────────────────────────

    def issue(self, evaluation, review_score, *, reviewer_id, reviewer_notes=None,
              now: datetime | None = None) -> IssueResult:
        """Approve *evaluation* and issue its certification atomically.

        Raises:
            InvalidStateError: evaluation is not IN_REVIEW, or another
                finalisation of the same evaluation committed first.
            ValidationError: review score out of range or below threshold.
            InternalError: the write set failed and was rolled back.
        """
        current = evaluation.evaluation_status
        if current not in EVALUATION_TRANSITIONS["approve"]["from"]:
            raise InvalidStateError(
                "Evaluation already processed" if evaluation.is_terminal
                else f"Cannot 'approve' evaluation {evaluation.id} (status={current.value})",
                current_status=current.value,
                action="approve",
            )
        check_review_score(review_score, self.engine.policy.approval_threshold)
        if not reviewer_id:
            raise ValidationError("reviewer_id is required", details={"reviewer_id": None})

        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        owner = evaluation.owner

        try:
            snapshots, _ = refresh_owner_marks(owner.id, now, self.engine, actor=reviewer_id)
            previous = self.engine.aggregator.aggregate(snapshots)

            certification = Certification(
                owner_id=owner.id,
                type=evaluation.type,
                score=review_score,
                status=MarkStatus.ACTIVE.value,
                issued_at=now,
                expires_at=self.engine.policy.expiry_for(now),
                verified_by=reviewer_id,
                evaluation_notes=reviewer_notes,
            )
            db.session.add(certification)
            db.session.flush()

            evaluation.apply_state(Approved(
                reviewer_id=reviewer_id,
                review_score=review_score,
                certification_id=certification.id,
                completed_at=now,
                reviewer_notes=reviewer_notes,
            ))

            aggregate = self.engine.aggregator.aggregate(
                [*snapshots, self.engine.reclassify(certification.to_snapshot(), now)]
            )
            apply_aggregate(owner, aggregate, now, actor=reviewer_id)

            write_audit(
                entity_type="evaluation",
                entity_id=evaluation.id,
                action="evaluation.approve",
                actor=reviewer_id,
                owner_id=owner.id,
                diff={
                    "status": {"old": current.value, "new": EvaluationStatus.APPROVED.value},
                    "review_score": {"old": None, "new": review_score},
                    "certification_id": {"old": None, "new": certification.id},
                },
            )
            write_audit(
                entity_type="certification",
                entity_id=certification.id,
                action="certification.issue",
                actor=reviewer_id,
                owner_id=owner.id,
                diff={
                    "type": {"old": None, "new": certification.type},
                    "score": {"old": None, "new": review_score},
                    "expires_at": {"old": None, "new": certification.expires_at.isoformat()},
                },
            )
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            logger.warning(
                "Concurrent finalisation refused",
                extra={"evaluation_id": evaluation.id, "action": "approve"},
            )
            raise InvalidStateError(
                "Evaluation already processed", current_status=None, action="approve",
            ) from exc
        except Exception as exc:
            db.session.rollback()
            logger.exception(
                "Certification issuance failed",
                extra={"evaluation_id": evaluation.id, "owner_id": owner.id},
            )
            raise InternalError("Certification issuance failed", operation="issue") from exc

        change = self.engine.aggregator.compare(previous, aggregate)
        logger.info(
            "Certification issued",
            extra={
                "evaluation_id": evaluation.id,
                "certification_id": certification.id,
                "owner_id": owner.id,
                "cert_type": certification.type,
                "score": aggregate.total_score,
                "tier": aggregate.tier,
                "actor": reviewer_id,
            },
        )

        send_quietly(NotificationService.notify_approved, evaluation, certification)
        send_quietly(NotificationService.notify_tier_change, owner, change)

        return IssueResult(
            certification=certification,
            aggregate=aggregate,
            previous_aggregate=previous,
            change=change,
        )

    # ── Revoke ────────────────────────────────────────────────────────────

    def revoke(self, certification_id, reason, *, revoked_by, now: datetime | None = None) -> RevokeResult:
        """Revoke an issued certification and recompute its owner's aggregate."""
        certification = db.session.get(Certification, certification_id)
        if certification is None:
            raise NotFoundError("Certification", certification_id)
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("reason must be a string", details={"reason": repr(reason)})
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A revocation reason is required", details={"reason": "empty"})

        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        current = self.engine.reclassify(certification.to_snapshot(), now).status
        if current in (MarkStatus.REVOKED, MarkStatus.EXPIRED):
            raise InvalidStateError(
                f"Certification {certification_id} is already {current.value}",
                current_status=current.value,
                action="revoke",
            )

        owner = get_owner(certification.owner_id)
        try:
            snapshots, _ = refresh_owner_marks(owner.id, now, self.engine, actor=revoked_by)
            previous = self.engine.aggregator.aggregate(snapshots)

            old_status = certification.status
            certification.status = MarkStatus.REVOKED.value
            certification.revoked_at = now
            certification.revoked_by = revoked_by
            certification.revocation_reason = reason
            db.session.flush()

            aggregate = self.engine.aggregator.aggregate(
                s if s.id != certification.id else certification.to_snapshot()
                for s in snapshots
            )
            apply_aggregate(owner, aggregate, now, actor=revoked_by)

            write_audit(
                entity_type="certification",
                entity_id=certification.id,
                action="certification.revoke",
                actor=revoked_by,
                owner_id=owner.id,
                diff={
                    "status": {"old": old_status, "new": MarkStatus.REVOKED.value},
                    "revocation_reason": {"old": None, "new": reason},
                },
            )
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.exception(
                "Certification revocation failed",
                extra={"certification_id": certification_id, "owner_id": owner.id},
            )
            raise InternalError("Certification revocation failed", operation="revoke") from exc

        change = self.engine.aggregator.compare(previous, aggregate)
        logger.info(
            "Certification revoked",
            extra={
                "certification_id": certification.id,
                "owner_id": owner.id,
                "score": aggregate.total_score,
                "tier": aggregate.tier,
                "actor": revoked_by,
            },
        )

        send_quietly(NotificationService.notify_revoked, certification)
        send_quietly(NotificationService.notify_tier_change, owner, change)

        return RevokeResult(
            certification=certification,
            aggregate=aggregate,
            previous_aggregate=previous,
            change=change,
        )


def revoke_certification(certification_id, reason, *, revoked_by, now=None) -> RevokeResult:
    return CertificationIssuer().revoke(certification_id, reason, revoked_by=revoked_by, now=now)
