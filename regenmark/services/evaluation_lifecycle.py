"""
Evaluation Lifecycle Service

Drives a certification request through the review workflow:

    request → submit → score_metrics → start_review → approve | reject

  - Transition validation against EVALUATION_TRANSITIONS
  - Status payloads written only through Evaluation.apply_state
  - Audit trail via write_audit in the same transaction as the change
  - Owner notifications after commit

Approval is delegated to the Certification Issuer, which owns the
certification + aggregate write set.

Usage:
    from regenmark.services.evaluation_lifecycle import request_evaluation

    evaluation = request_evaluation(owner.id, "CARBON_SAVER", requested_by="user-1")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from regenmark.core.exceptions import (
    DuplicateEvaluationError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from regenmark.models import db
from regenmark.models.audit import write_audit
from regenmark.models.evaluation import (
    DOCUMENT_OPEN_STATUSES,
    EVALUATION_TRANSITIONS,
    Evaluation,
    EvaluationDocument,
)
from regenmark.models.evaluation_state import (
    IN_FLIGHT_STATUSES,
    AiProcessing,
    EvaluationStatus,
    InReview,
    Rejected,
    Submitted,
)
from regenmark.scoring.catalog import CertificationType
from regenmark.scoring.engine import RegenMarkEngine, get_engine
from regenmark.services.certification_issuer import CertificationIssuer, IssueResult
from regenmark.services.document_storage import StoredDocument
from regenmark.services.notification import NotificationService, send_quietly
from regenmark.services.score_service import get_owner

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Transition checks ────────────────────────────────────────────────────────


def validate_transition(evaluation: Evaluation, action: str) -> dict:
    """
    Validate whether an action is valid for the current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    current = evaluation.status
    rule = EVALUATION_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": current, "to": None,
                "reason": f"Unknown action: {action}"}

    if evaluation.is_terminal:
        return {"valid": False, "from": current, "to": rule["to"].value,
                "reason": "Evaluation already processed"}

    if evaluation.evaluation_status not in rule["from"]:
        return {"valid": False, "from": current, "to": rule["to"].value,
                "reason": f"Cannot '{action}' from status '{current}'"}

    return {"valid": True, "from": current, "to": rule["to"].value, "reason": None}


def available_actions(evaluation: Evaluation) -> list[str]:
    """Actions that are legal from the evaluation's current status."""
    return [action for action in EVALUATION_TRANSITIONS
            if validate_transition(evaluation, action)["valid"]]


def _ensure_transition(evaluation: Evaluation, action: str) -> None:
    validation = validate_transition(evaluation, action)
    if not validation["valid"]:
        raise InvalidStateError(validation["reason"], current_status=evaluation.status, action=action)


def _record(evaluation: Evaluation, action: str, actor: str | None, diff: dict) -> None:
    """Audit the transition and commit; refuses a stale concurrent write."""
    try:
        write_audit(
            entity_type="evaluation",
            entity_id=evaluation.id,
            action=f"evaluation.{action}",
            actor=actor,
            owner_id=evaluation.owner_id,
            diff=diff,
        )
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise InvalidStateError("Evaluation already processed", action=action) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Evaluation %s failed", action, extra={"evaluation_id": evaluation.id})
        raise InternalError(f"Failed to {action} evaluation", operation=action) from exc

    logger.info(
        "Evaluation %s", action,
        extra={"evaluation_id": evaluation.id, "owner_id": evaluation.owner_id,
               "action": action, "actor": actor},
    )


# ── Input normalisation ──────────────────────────────────────────────────────


def _document_fields(document) -> dict:
    if isinstance(document, StoredDocument):
        document = document.to_dict()
    if not isinstance(document, Mapping):
        raise ValidationError("document must be an object", details={"document": repr(document)})

    name = str(document.get("name") or document.get("file_name") or "").strip()
    url = str(document.get("url") or "").strip()
    if not name or not url:
        raise ValidationError(
            "Each document needs a name and url",
            details={"name": name or None, "url": url or None},
        )
    file_size = document.get("file_size")
    if file_size is not None:
        try:
            file_size = int(file_size)
        except (TypeError, ValueError):
            raise ValidationError("file_size must be an integer",
                                  details={"file_size": file_size}) from None
    return {
        "name": name,
        "file_name": document.get("file_name") or name,
        "url": url,
        "file_size": file_size,
        "mime_type": document.get("mime_type"),
    }


def _metrics_payload(metrics) -> dict | None:
    if metrics is None:
        return None
    if not isinstance(metrics, Mapping):
        raise ValidationError("metrics must be an object", details={"metrics": repr(metrics)})
    return {str(k): v for k, v in metrics.items()}


def _is_in_flight_conflict(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "uq_evaluations_in_flight" in msg or (
        "unique" in msg and "evaluations.owner_id" in msg
    )


# ── Queries ──────────────────────────────────────────────────────────────────


def get_evaluation(evaluation_id: int) -> Evaluation:
    evaluation = db.session.get(Evaluation, evaluation_id)
    if evaluation is None:
        raise NotFoundError("Evaluation", evaluation_id)
    return evaluation


def list_evaluations(status: str | None = None, owner_id: int | None = None,
                     cert_type: str | None = None) -> list[Evaluation]:
    """Evaluations for the review queue: in-flight first, then oldest first."""
    stmt = select(Evaluation)
    if status:
        try:
            stmt = stmt.where(Evaluation.status == EvaluationStatus(str(status).upper()).value)
        except ValueError:
            raise ValidationError(f"Unknown evaluation status '{status}'",
                                  details={"status": status}) from None
    if owner_id is not None:
        stmt = stmt.where(Evaluation.owner_id == owner_id)
    if cert_type:
        stmt = stmt.where(Evaluation.type == CertificationType.parse(cert_type).value)

    in_flight_first = case(
        (Evaluation.status.in_([s.value for s in IN_FLIGHT_STATUSES]), 0), else_=1,
    )
    stmt = stmt.order_by(in_flight_first, Evaluation.created_at.asc(), Evaluation.id.asc())
    return list(db.session.execute(stmt).scalars().all())


# ── Operations ───────────────────────────────────────────────────────────────


def request_evaluation(owner_id: int, type, *, requested_by: str | None,
                       documents=None, metrics=None) -> Evaluation:
    """
    Open a new evaluation for (owner, type).

    With documents the evaluation starts SUBMITTED, otherwise PENDING.

    Raises:
        NotFoundError: unknown owner.
        ValidationError: unknown type or malformed documents/metrics.
        DuplicateEvaluationError: another evaluation of the same type is
            still in flight for this owner.
    """
    owner = get_owner(owner_id)
    cert_type = CertificationType.parse(type)
    docs = [_document_fields(d) for d in (documents or [])]
    payload = _metrics_payload(metrics)

    evaluation = Evaluation(
        owner_id=owner.id,
        type=cert_type.value,
        status=EvaluationStatus.PENDING.value,
        requested_by=requested_by,
        metrics=payload,
    )
    if docs:
        evaluation.apply_state(Submitted(submitted_at=_utcnow()))
    for position, fields in enumerate(docs):
        evaluation.documents.append(
            EvaluationDocument(position=position, uploaded_by=requested_by, **fields)
        )
    db.session.add(evaluation)

    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        if _is_in_flight_conflict(exc):
            logger.info(
                "Duplicate evaluation refused",
                extra={"owner_id": owner_id, "cert_type": cert_type.value, "actor": requested_by},
            )
            raise DuplicateEvaluationError(owner_id, cert_type.value) from exc
        logger.exception("Evaluation request failed", extra={"owner_id": owner_id})
        raise InternalError("Failed to create evaluation", operation="request") from exc

    _record(evaluation, "request", requested_by, {
        "status": {"old": None, "new": evaluation.status},
        "type": {"old": None, "new": evaluation.type},
        "documents": {"old": 0, "new": len(docs)},
    })

    if evaluation.evaluation_status is EvaluationStatus.SUBMITTED:
        send_quietly(NotificationService.notify_submitted, evaluation)
    return evaluation


def attach_documents(evaluation_id: int, documents, *, uploaded_by: str | None) -> list[EvaluationDocument]:
    """Attach a batch of evidence while the evaluation is PENDING or SUBMITTED.

    Every document is validated before any is attached; the batch commits
    as one unit or not at all.
    """
    evaluation = get_evaluation(evaluation_id)
    if evaluation.is_terminal:
        raise InvalidStateError("Evaluation already processed",
                                current_status=evaluation.status, action="attach_document")
    if evaluation.evaluation_status not in DOCUMENT_OPEN_STATUSES:
        raise InvalidStateError(
            f"Documents cannot be attached while the evaluation is {evaluation.status}",
            current_status=evaluation.status,
            action="attach_document",
        )
    if isinstance(documents, (Mapping, StoredDocument)) or not isinstance(documents, (list, tuple)):
        raise ValidationError("documents must be a list", details={"documents": repr(documents)})
    if not documents:
        raise ValidationError("At least one document is required", details={"documents": 0})

    fields = [_document_fields(d) for d in documents]
    before = len(evaluation.documents)
    attached = []
    for offset, row in enumerate(fields):
        doc = EvaluationDocument(position=before + offset, uploaded_by=uploaded_by, **row)
        evaluation.documents.append(doc)
        attached.append(doc)
    _record(evaluation, "attach_document", uploaded_by, {
        "documents": {"old": before, "new": len(evaluation.documents)},
        "name": {"old": None, "new": ", ".join(doc.name for doc in attached)},
    })
    return attached


def attach_document(evaluation_id: int, document, *, uploaded_by: str | None) -> EvaluationDocument:
    """Attach one piece of evidence metadata."""
    return attach_documents(evaluation_id, [document], uploaded_by=uploaded_by)[0]


def submit_evaluation(evaluation_id: int, *, actor: str | None = None) -> Evaluation:
    """PENDING → SUBMITTED; at least one document must be attached."""
    evaluation = get_evaluation(evaluation_id)
    _ensure_transition(evaluation, "submit")
    if not evaluation.documents:
        raise ValidationError("At least one document is required",
                              details={"documents": 0})

    previous = evaluation.status
    evaluation.apply_state(Submitted(submitted_at=_utcnow()))
    _record(evaluation, "submit", actor, {"status": {"old": previous, "new": evaluation.status}})

    send_quietly(NotificationService.notify_submitted, evaluation)
    return evaluation


def score_metrics(evaluation_id: int, metrics=None, *, actor: str | None = "system",
                  engine: RegenMarkEngine | None = None) -> Evaluation:
    """SUBMITTED → AI_PROCESSING; store the provisional metric score.

    *metrics* replaces the stored indicators when given; otherwise the
    indicators supplied with the request are scored.
    """
    engine = engine or get_engine()
    evaluation = get_evaluation(evaluation_id)
    _ensure_transition(evaluation, "score_metrics")

    payload = _metrics_payload(metrics)
    if payload is not None:
        evaluation.metrics = payload
    ai_score = engine.scorer.score(evaluation.cert_type, evaluation.metrics or {})

    previous = evaluation.status
    evaluation.apply_state(AiProcessing(submitted_at=evaluation.submitted_at, ai_score=ai_score))
    _record(evaluation, "score_metrics", actor, {
        "status": {"old": previous, "new": evaluation.status},
        "ai_score": {"old": None, "new": ai_score},
    })
    return evaluation


def start_review(evaluation_id: int, reviewer_id: str) -> Evaluation:
    """SUBMITTED | AI_PROCESSING → IN_REVIEW."""
    evaluation = get_evaluation(evaluation_id)
    _ensure_transition(evaluation, "start_review")
    if not reviewer_id:
        raise ValidationError("reviewer_id is required", details={"reviewer_id": None})

    previous = evaluation.status
    evaluation.apply_state(InReview(
        submitted_at=evaluation.submitted_at,
        reviewer_id=reviewer_id,
        ai_score=evaluation.ai_score,
    ))
    _record(evaluation, "start_review", reviewer_id, {
        "status": {"old": previous, "new": evaluation.status},
        "reviewer_id": {"old": None, "new": reviewer_id},
    })
    return evaluation


def approve_evaluation(evaluation_id: int, review_score, *, reviewer_id: str,
                       reviewer_notes: str | None = None, now: datetime | None = None,
                       engine: RegenMarkEngine | None = None) -> IssueResult:
    """IN_REVIEW → APPROVED, issuing the certification atomically."""
    evaluation = get_evaluation(evaluation_id)
    _ensure_transition(evaluation, "approve")
    return CertificationIssuer(engine).issue(
        evaluation, review_score,
        reviewer_id=reviewer_id, reviewer_notes=reviewer_notes, now=now,
    )


def reject_evaluation(evaluation_id: int, feedback: str, *, reviewer_id: str,
                      review_score=None, reviewer_notes: str | None = None,
                      now: datetime | None = None) -> Evaluation:
    """IN_REVIEW → REJECTED.  No certification; the owner aggregate is untouched."""
    evaluation = get_evaluation(evaluation_id)
    _ensure_transition(evaluation, "reject")

    if feedback is not None and not isinstance(feedback, str):
        raise ValidationError("feedback must be a string", details={"feedback": repr(feedback)})
    feedback = (feedback or "").strip()
    if not feedback:
        raise ValidationError("Feedback is required when rejecting", details={"feedback": "empty"})
    if review_score is not None and (
        isinstance(review_score, bool) or not isinstance(review_score, int)
        or not 0 <= review_score <= 100
    ):
        raise ValidationError("review_score must be an integer between 0 and 100",
                              details={"review_score": review_score})
    if not reviewer_id:
        raise ValidationError("reviewer_id is required", details={"reviewer_id": None})

    previous = evaluation.status
    evaluation.apply_state(Rejected(
        reviewer_id=reviewer_id,
        feedback=feedback,
        completed_at=now or _utcnow(),
        review_score=review_score,
        reviewer_notes=reviewer_notes,
    ))
    _record(evaluation, "reject", reviewer_id, {
        "status": {"old": previous, "new": evaluation.status},
        "feedback": {"old": None, "new": feedback},
    })

    send_quietly(NotificationService.notify_rejected, evaluation)
    return evaluation
