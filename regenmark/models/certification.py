"""
RegenMark Certification Engine
Certification (mark) domain model.

Models:
    - Certification: one issued, time-bounded RegenMark for exactly one owner.

Business rules:
    - Created only by the certification issuer; score is fixed at issuance.
    - status changes only through the expiry monitor or explicit revocation.
    - expires_at = issued_at + validity period (calendar months).
"""

from datetime import datetime, timezone

from regenmark.models import db
from regenmark.scoring.aggregator import MarkSnapshot
from regenmark.scoring.catalog import CertificationType, MarkStatus
from regenmark.scoring.expiry import days_until_expiration

_STATUS_SQL = ", ".join(f"'{s.value}'" for s in MarkStatus)
_TYPE_SQL = ", ".join(f"'{t.value}'" for t in CertificationType)


class Certification(db.Model):
    """Issued RegenMark."""

    __tablename__ = "certifications"
    __table_args__ = (
        db.CheckConstraint(f"status IN ({_STATUS_SQL})", name="ck_certifications_status"),
        db.CheckConstraint(f"type IN ({_TYPE_SQL})", name="ck_certifications_type"),
        db.CheckConstraint("score BETWEEN 0 AND 100", name="ck_certifications_score"),
        db.CheckConstraint("expires_at > issued_at", name="ck_certifications_validity"),
        db.CheckConstraint(
            "status != 'REVOKED' OR revoked_at IS NOT NULL",
            name="ck_certifications_revoked_at",
        ),
        db.Index("ix_certifications_owner_status", "owner_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("owners.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=MarkStatus.ACTIVE.value)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    verified_by = db.Column(db.String(64), nullable=True, comment="Reviewer who approved the evaluation")
    evaluation_notes = db.Column(db.Text, nullable=True)

    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_by = db.Column(db.String(64), nullable=True)
    revocation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def cert_type(self) -> CertificationType:
        return CertificationType(self.type)

    @property
    def mark_status(self) -> MarkStatus:
        return MarkStatus(self.status)

    def to_snapshot(self) -> MarkSnapshot:
        return MarkSnapshot(
            type=self.cert_type,
            score=self.score,
            status=self.mark_status,
            issued_at=self.issued_at,
            expires_at=self.expires_at,
            id=self.id,
        )

    def to_dict(self, now=None, status=None):
        """Serialize; *status* overrides the stored value with a reclassified one."""
        now = now or datetime.now(timezone.utc)
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "type": self.type,
            "score": self.score,
            "status": (status or self.status),
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "days_until_expiration": days_until_expiration(self.expires_at, now),
            "verified_by": self.verified_by,
            "evaluation_notes": self.evaluation_notes,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "revocation_reason": self.revocation_reason,
        }

    def __repr__(self):
        return f"<Certification {self.id}: {self.type} {self.score} {self.status}>"
