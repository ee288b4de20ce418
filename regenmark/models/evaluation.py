"""
RegenMark Certification Engine
Evaluation domain models.

Models:
    - Evaluation: a request to obtain one certification, driven through the
      review workflow by ``services.evaluation_lifecycle``.
    - EvaluationDocument: evidence file metadata attached to an evaluation.

Integrity enforced by the schema, not only by the service layer:
    - uq_evaluations_in_flight: at most one non-terminal evaluation per
      (owner, type); concurrent duplicate requests fail on insert.
    - ck_evaluations_*: APPROVED ⇔ linked certification; REJECTED ⇒ feedback.
    - version_id: optimistic lock so two concurrent finalisations of the same
      row cannot both commit.
"""

from datetime import datetime, timezone

from regenmark.models import db
from regenmark.models.evaluation_state import (
    IN_FLIGHT_STATUSES,
    STATE_CLASSES,
    TERMINAL_STATUSES,
    AiProcessing,
    Approved,
    EvaluationState,
    EvaluationStatus,
    InReview,
    Pending,
    Rejected,
    Submitted,
)
from regenmark.scoring.catalog import CertificationType

# ── Transition table ─────────────────────────────────────────────────────────

EVALUATION_TRANSITIONS = {
    "submit": {
        "from": [EvaluationStatus.PENDING],
        "to": EvaluationStatus.SUBMITTED,
    },
    "score_metrics": {
        "from": [EvaluationStatus.SUBMITTED],
        "to": EvaluationStatus.AI_PROCESSING,
    },
    "start_review": {
        "from": [EvaluationStatus.SUBMITTED, EvaluationStatus.AI_PROCESSING],
        "to": EvaluationStatus.IN_REVIEW,
    },
    "approve": {
        "from": [EvaluationStatus.IN_REVIEW],
        "to": EvaluationStatus.APPROVED,
    },
    "reject": {
        "from": [EvaluationStatus.IN_REVIEW],
        "to": EvaluationStatus.REJECTED,
    },
}

# Statuses in which evidence may still be attached
DOCUMENT_OPEN_STATUSES = frozenset({EvaluationStatus.PENDING, EvaluationStatus.SUBMITTED})

_IN_FLIGHT_SQL = ", ".join(f"'{s.value}'" for s in sorted(IN_FLIGHT_STATUSES))
_STATUS_SQL = ", ".join(f"'{s.value}'" for s in EvaluationStatus)
_TYPE_SQL = ", ".join(f"'{t.value}'" for t in CertificationType)


class Evaluation(db.Model):
    """Certification request tracked through the review workflow."""

    __tablename__ = "evaluations"
    __table_args__ = (
        db.Index(
            "uq_evaluations_in_flight", "owner_id", "type",
            unique=True,
            sqlite_where=db.text(f"status IN ({_IN_FLIGHT_SQL})"),
            postgresql_where=db.text(f"status IN ({_IN_FLIGHT_SQL})"),
        ),
        db.Index("ix_evaluations_status_submitted", "status", "submitted_at"),
        db.CheckConstraint(f"status IN ({_STATUS_SQL})", name="ck_evaluations_status"),
        db.CheckConstraint(f"type IN ({_TYPE_SQL})", name="ck_evaluations_type"),
        db.CheckConstraint(
            "(status = 'APPROVED' AND certification_id IS NOT NULL AND review_score IS NOT NULL)"
            " OR (status != 'APPROVED' AND certification_id IS NULL)",
            name="ck_evaluations_approved_link",
        ),
        db.CheckConstraint(
            "status != 'REJECTED' OR (feedback IS NOT NULL AND length(trim(feedback)) > 0)",
            name="ck_evaluations_rejected_feedback",
        ),
        db.CheckConstraint(
            "ai_score IS NULL OR ai_score BETWEEN 0 AND 100", name="ck_evaluations_ai_score",
        ),
        db.CheckConstraint(
            "review_score IS NULL OR review_score BETWEEN 0 AND 100",
            name="ck_evaluations_review_score",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("owners.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=EvaluationStatus.PENDING.value)

    requested_by = db.Column(db.String(64), nullable=True)
    metrics = db.Column(db.JSON, nullable=True, comment="Raw indicators used for the AI score")
    ai_score = db.Column(db.Integer, nullable=True)

    reviewer_id = db.Column(db.String(64), nullable=True)
    review_score = db.Column(db.Integer, nullable=True)
    reviewer_notes = db.Column(db.Text, nullable=True)
    feedback = db.Column(db.Text, nullable=True)

    certification_id = db.Column(
        db.Integer, db.ForeignKey("certifications.id", ondelete="RESTRICT"),
        nullable=True, unique=True,
    )

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    documents = db.relationship(
        "EvaluationDocument", backref="evaluation", lazy="select",
        cascade="all, delete-orphan", order_by="EvaluationDocument.position",
    )
    certification = db.relationship("Certification", foreign_keys=[certification_id])

    # ── State ────────────────────────────────────────────────────────────

    @property
    def cert_type(self) -> CertificationType:
        return CertificationType(self.type)

    @property
    def evaluation_status(self) -> EvaluationStatus:
        return EvaluationStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.evaluation_status in TERMINAL_STATUSES

    @property
    def state(self) -> EvaluationState:
        """Typed view of the current status and its payload."""
        status = self.evaluation_status
        if status is EvaluationStatus.PENDING:
            return Pending()
        if status is EvaluationStatus.SUBMITTED:
            return Submitted(submitted_at=self.submitted_at)
        if status is EvaluationStatus.AI_PROCESSING:
            return AiProcessing(submitted_at=self.submitted_at, ai_score=self.ai_score)
        if status is EvaluationStatus.IN_REVIEW:
            return InReview(
                submitted_at=self.submitted_at, reviewer_id=self.reviewer_id, ai_score=self.ai_score,
            )
        if status is EvaluationStatus.APPROVED:
            return Approved(
                reviewer_id=self.reviewer_id,
                review_score=self.review_score,
                certification_id=self.certification_id,
                completed_at=self.completed_at,
                reviewer_notes=self.reviewer_notes,
            )
        return Rejected(
            reviewer_id=self.reviewer_id,
            feedback=self.feedback,
            completed_at=self.completed_at,
            review_score=self.review_score,
            reviewer_notes=self.reviewer_notes,
        )

    def apply_state(self, state: EvaluationState) -> None:
        """Write *state* into the status columns."""
        if type(state) is not STATE_CLASSES[state.status]:
            raise TypeError(f"Unknown evaluation state {state!r}")
        self.status = state.status.value

        if isinstance(state, (Submitted, AiProcessing, InReview)):
            self.submitted_at = state.submitted_at
        if isinstance(state, AiProcessing):
            self.ai_score = state.ai_score
        elif isinstance(state, InReview):
            self.reviewer_id = state.reviewer_id
            self.ai_score = state.ai_score
            self.review_started_at = datetime.now(timezone.utc)
        elif isinstance(state, Approved):
            self.reviewer_id = state.reviewer_id
            self.review_score = state.review_score
            self.reviewer_notes = state.reviewer_notes
            self.certification_id = state.certification_id
            self.completed_at = state.completed_at
        elif isinstance(state, Rejected):
            self.reviewer_id = state.reviewer_id
            self.review_score = state.review_score
            self.reviewer_notes = state.reviewer_notes
            self.feedback = state.feedback
            self.completed_at = state.completed_at

    def to_dict(self, include_documents=True):
        d = {
            "id": self.id,
            "owner_id": self.owner_id,
            "type": self.type,
            "status": self.status,
            "requested_by": self.requested_by,
            "metrics": self.metrics,
            "ai_score": self.ai_score,
            "reviewer_id": self.reviewer_id,
            "review_score": self.review_score,
            "reviewer_notes": self.reviewer_notes,
            "feedback": self.feedback,
            "certification_id": self.certification_id,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "review_started_at": self.review_started_at.isoformat() if self.review_started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_documents:
            d["documents"] = [doc.to_dict() for doc in self.documents]
        return d

    def __repr__(self):
        return f"<Evaluation {self.id}: {self.type} owner={self.owner_id} {self.status}>"


class EvaluationDocument(db.Model):
    """Evidence metadata; file bytes live in document storage, never here."""

    __tablename__ = "evaluation_documents"
    __table_args__ = (
        db.UniqueConstraint("evaluation_id", "position", name="uq_evaluation_documents_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    evaluation_id = db.Column(
        db.Integer, db.ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(255), nullable=False)
    file_name = db.Column(db.String(255), nullable=True)
    url = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(120), nullable=True)
    uploaded_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "evaluation_id": self.evaluation_id,
            "position": self.position,
            "name": self.name,
            "file_name": self.file_name,
            "url": self.url,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EvaluationDocument {self.id}: {self.name}>"
