"""
Evaluation workflow states as a tagged union.

Each status has its own frozen dataclass carrying exactly the payload that is
valid in that status, so e.g. a rejected evaluation with a linked
certification cannot be constructed.  ``Evaluation.state`` builds the variant
from the row; ``Evaluation.apply_state`` is the only writer of the status
columns.

    PENDING ─submit→ SUBMITTED ─score_metrics→ AI_PROCESSING
                        │                          │
                        └──────start_review────────┴→ IN_REVIEW ─approve→ APPROVED
                                                               └─reject──→ REJECTED
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union


class EvaluationStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    AI_PROCESSING = "AI_PROCESSING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


IN_FLIGHT_STATUSES = frozenset({
    EvaluationStatus.PENDING,
    EvaluationStatus.SUBMITTED,
    EvaluationStatus.AI_PROCESSING,
    EvaluationStatus.IN_REVIEW,
})
TERMINAL_STATUSES = frozenset({EvaluationStatus.APPROVED, EvaluationStatus.REJECTED})


def _check_score(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ValueError(f"{name} must be an integer within 0-100, got {value!r}")


@dataclass(frozen=True)
class Pending:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.PENDING


@dataclass(frozen=True)
class Submitted:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.SUBMITTED

    submitted_at: datetime


@dataclass(frozen=True)
class AiProcessing:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.AI_PROCESSING

    submitted_at: datetime
    ai_score: int

    def __post_init__(self):
        _check_score("ai_score", self.ai_score)


@dataclass(frozen=True)
class InReview:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.IN_REVIEW

    submitted_at: datetime
    reviewer_id: str
    ai_score: int | None = None

    def __post_init__(self):
        if not self.reviewer_id:
            raise ValueError("reviewer_id is required in review")
        if self.ai_score is not None:
            _check_score("ai_score", self.ai_score)


@dataclass(frozen=True)
class Approved:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.APPROVED

    reviewer_id: str
    review_score: int
    certification_id: int
    completed_at: datetime
    reviewer_notes: str | None = None

    def __post_init__(self):
        _check_score("review_score", self.review_score)
        if self.certification_id is None:
            raise ValueError("an approved evaluation must link its certification")


@dataclass(frozen=True)
class Rejected:
    status: ClassVar[EvaluationStatus] = EvaluationStatus.REJECTED

    reviewer_id: str
    feedback: str
    completed_at: datetime
    review_score: int | None = None
    reviewer_notes: str | None = None

    def __post_init__(self):
        if not (self.feedback or "").strip():
            raise ValueError("a rejected evaluation must carry feedback")
        if self.review_score is not None:
            _check_score("review_score", self.review_score)


EvaluationState = Union[Pending, Submitted, AiProcessing, InReview, Approved, Rejected]

STATE_CLASSES = {
    cls.status: cls for cls in (Pending, Submitted, AiProcessing, InReview, Approved, Rejected)
}


def is_terminal(state: EvaluationState) -> bool:
    return state.status in TERMINAL_STATUSES
