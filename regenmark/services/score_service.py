"""Owner score projection — scorecards, recomputation and the expiry sweep.

All aggregation here reclassifies marks against the clock first, so a read
never reports an expired mark as active even if the sweep has not run yet.

Rules:
  - Owner.regen_score / Owner.tier are a projection; they are only written
    from a freshly computed AggregateScore, never patched.
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from regenmark.core.exceptions import InternalError, NotFoundError, ValidationError
from regenmark.models import db
from regenmark.models.audit import write_audit
from regenmark.models.certification import Certification
from regenmark.models.evaluation import Evaluation
from regenmark.models.evaluation_state import IN_FLIGHT_STATUSES
from regenmark.models.owner import OWNER_KINDS, Owner
from regenmark.scoring.aggregator import AggregateScore
from regenmark.scoring.catalog import PRODUCT_PROFILE, MarkStatus
from regenmark.scoring.engine import RegenMarkEngine, get_engine
from regenmark.scoring.expiry import as_utc
from regenmark.services.notification import NotificationService, send_quietly

logger = logging.getLogger(__name__)


def _utcnow(now: datetime | None = None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def get_owner(owner_id: int) -> Owner:
    owner = db.session.get(Owner, owner_id)
    if owner is None:
        raise NotFoundError("Owner", owner_id)
    return owner


def create_owner(name: str, *, kind: str = "vendor", user_id: str | None = None) -> Owner:
    """Register a vendor or product that can request certifications."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "empty"})
    if kind not in OWNER_KINDS:
        raise ValidationError(
            f"kind must be one of: {', '.join(sorted(OWNER_KINDS))}", details={"kind": kind},
        )
    owner = Owner(name=name, kind=kind, user_id=user_id)
    db.session.add(owner)
    db.session.commit()
    logger.info("Owner created", extra={"owner_id": owner.id})
    return owner


# ── Mark reclassification ────────────────────────────────────────────────────


def owner_certifications(owner_id: int) -> list[Certification]:
    stmt = (
        select(Certification)
        .where(Certification.owner_id == owner_id)
        .order_by(Certification.issued_at.desc(), Certification.id.desc())
    )
    return list(db.session.execute(stmt).scalars().all())


def reclassified(certifications, now: datetime, engine: RegenMarkEngine):
    """Pair every certification with its snapshot reclassified at *now*."""
    return [(cert, engine.reclassify(cert.to_snapshot(), now)) for cert in certifications]


def refresh_owner_marks(owner_id: int, now: datetime, engine: RegenMarkEngine, *, actor="system"):
    """Write reclassified statuses of one owner's marks into the session.

    Returns ``(snapshots, changes)`` where *changes* lists
    ``(certification, old_status, new_status)``.  Does not commit.
    """
    snapshots = []
    changes = []
    for cert, snap in reclassified(owner_certifications(owner_id), now, engine):
        if snap.status != cert.mark_status:
            old = cert.status
            cert.status = snap.status.value
            changes.append((cert, old, cert.status))
            write_audit(
                entity_type="certification",
                entity_id=cert.id,
                action="certification.reclassify",
                actor=actor,
                owner_id=owner_id,
                diff={"status": {"old": old, "new": cert.status}},
            )
        snapshots.append(snap)
    return snapshots, changes


def apply_aggregate(owner: Owner, aggregate: AggregateScore, now: datetime, *, actor="system") -> None:
    """Persist *aggregate* on the owner (flush only)."""
    if owner.regen_score != aggregate.total_score or owner.tier != aggregate.tier:
        write_audit(
            entity_type="owner",
            entity_id=owner.id,
            action="owner.rescore",
            actor=actor,
            owner_id=owner.id,
            diff={
                "regen_score": {"old": owner.regen_score, "new": aggregate.total_score},
                "tier": {"old": owner.tier, "new": aggregate.tier},
            },
        )
    owner.regen_score = aggregate.total_score
    owner.tier = aggregate.tier
    owner.score_updated_at = now


# ── Queries ──────────────────────────────────────────────────────────────────


def get_owner_scorecard(owner_id: int, now: datetime | None = None, *,
                        engine: RegenMarkEngine | None = None) -> dict:
    """Owner, every mark with its current status, in-flight evaluations and
    a fresh aggregate.  Read only: nothing is written."""
    engine = engine or get_engine()
    now = _utcnow(now)
    owner = get_owner(owner_id)

    pairs = reclassified(owner_certifications(owner_id), now, engine)
    aggregate = engine.aggregator.aggregate(snap for _, snap in pairs)

    in_flight = (
        db.session.execute(
            select(Evaluation)
            .where(
                Evaluation.owner_id == owner_id,
                Evaluation.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
            )
            .order_by(Evaluation.created_at.asc(), Evaluation.id.asc())
        )
        .scalars()
        .all()
    )

    return {
        "owner": owner.to_dict(),
        "aggregate": aggregate.to_dict(),
        "certifications": [cert.to_dict(now=now, status=snap.status.value) for cert, snap in pairs],
        "in_flight_evaluations": [e.to_dict(include_documents=False) for e in in_flight],
        "as_of": now.isoformat(),
    }


def score_product_metrics(metrics, *, engine: RegenMarkEngine | None = None) -> dict:
    """Generic product sustainability score with its per-indicator breakdown."""
    engine = engine or get_engine()
    result = engine.scorer.breakdown(PRODUCT_PROFILE, metrics)
    return {
        "score": result.score,
        "raw_score": round(result.raw_score, 4),
        "breakdown": [
            {
                "metric": row.metric,
                "value": row.value,
                "weight": row.weight,
                "contribution": round(row.contribution, 4),
            }
            for row in result.breakdown
        ],
    }


# ── Writers ──────────────────────────────────────────────────────────────────


def recompute_owner_score(owner_id: int, now: datetime | None = None, *,
                          engine: RegenMarkEngine | None = None,
                          actor: str = "system") -> AggregateScore:
    """Reclassify the owner's marks, recompute and persist the aggregate."""
    engine = engine or get_engine()
    now = _utcnow(now)
    owner = get_owner(owner_id)
    try:
        snapshots, _ = refresh_owner_marks(owner_id, now, engine, actor=actor)
        aggregate = engine.aggregator.aggregate(snapshots)
        apply_aggregate(owner, aggregate, now, actor=actor)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Owner rescore failed", extra={"owner_id": owner_id})
        raise InternalError("Failed to recompute owner score", operation="recompute") from exc

    logger.info(
        "Owner score recomputed",
        extra={"owner_id": owner_id, "score": aggregate.total_score, "tier": aggregate.tier},
    )
    return aggregate


def sweep_expirations(now: datetime | None = None, *,
                      engine: RegenMarkEngine | None = None) -> dict:
    """Persist EXPIRING_SOON / EXPIRED transitions that are due at *now*.

    Affected owners are recomputed in the same transaction.  Owners are
    notified about every mark that changed status and about tier changes.
    Running it twice at the same instant changes nothing the second time.
    """
    engine = engine or get_engine()
    now = _utcnow(now)
    cutoff = now + engine.policy.expiring_soon_window

    due = (
        db.session.execute(
            select(Certification)
            .where(
                Certification.status.in_([MarkStatus.ACTIVE.value, MarkStatus.EXPIRING_SOON.value]),
                Certification.expires_at <= cutoff,
            )
            .order_by(Certification.id)
        )
        .scalars()
        .all()
    )
    owner_ids = sorted({
        cert.owner_id for cert, snap in reclassified(due, now, engine)
        if snap.status != cert.mark_status
    })

    summary = {
        "checked": len(due),
        "expiring_soon": 0,
        "expired": 0,
        "owners_rescored": len(owner_ids),
        "run_at": now.isoformat(),
    }
    if not owner_ids:
        return summary

    changed = []
    tier_changes = []
    try:
        for owner_id in owner_ids:
            owner = get_owner(owner_id)
            previous = engine.aggregator.aggregate(c.to_snapshot() for c in owner_certifications(owner_id))
            snapshots, changes = refresh_owner_marks(owner_id, now, engine)
            aggregate = engine.aggregator.aggregate(snapshots)
            apply_aggregate(owner, aggregate, now)
            changed.extend(changes)
            tier_changes.append((owner, engine.aggregator.compare(previous, aggregate)))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Expiry sweep failed")
        raise InternalError("Expiry sweep failed", operation="sweep_expirations") from exc

    for cert, _old, new in changed:
        if new == MarkStatus.EXPIRED.value:
            summary["expired"] += 1
        elif new == MarkStatus.EXPIRING_SOON.value:
            summary["expiring_soon"] += 1
        if new in (MarkStatus.EXPIRED.value, MarkStatus.EXPIRING_SOON.value):
            send_quietly(NotificationService.notify_expiry, cert, new)
    for owner, change in tier_changes:
        send_quietly(NotificationService.notify_tier_change, owner, change)

    logger.info(
        "Expiry sweep: %d expiring soon, %d expired, %d owners rescored",
        summary["expiring_soon"], summary["expired"], summary["owners_rescored"],
    )
    return summary
