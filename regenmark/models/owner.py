"""
RegenMark Certification Engine
Owner domain model.

Models:
    - Owner: a vendor or product that can hold certifications.  Carries the
      persisted aggregate (regen_score / tier) last written by the issuer,
      revocation or the expiry sweep.
"""

from datetime import datetime, timezone

from regenmark.models import db
from regenmark.scoring.catalog import DEFAULT_BASE_TIER

OWNER_KINDS = frozenset({"vendor", "product"})


class Owner(db.Model):
    """Vendor or product entity that certifications and evaluations belong to."""

    __tablename__ = "owners"
    __table_args__ = (
        db.CheckConstraint("kind IN ('vendor', 'product')", name="ck_owners_kind"),
        db.CheckConstraint("regen_score BETWEEN 0 AND 100", name="ck_owners_regen_score"),
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(20), nullable=False, default="vendor")
    name = db.Column(db.String(200), nullable=False)
    user_id = db.Column(
        db.String(64), nullable=True, index=True,
        comment="Account that receives notifications for this owner",
    )

    # Persisted aggregate (projection of current marks)
    regen_score = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(40), nullable=False, default=DEFAULT_BASE_TIER)
    score_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    certifications = db.relationship(
        "Certification", backref="owner", lazy="select",
        order_by="Certification.issued_at.desc()",
    )
    evaluations = db.relationship(
        "Evaluation", backref="owner", lazy="select",
        order_by="Evaluation.created_at.desc()",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "user_id": self.user_id,
            "regen_score": self.regen_score,
            "tier": self.tier,
            "score_updated_at": self.score_updated_at.isoformat() if self.score_updated_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Owner {self.id}: {self.kind} {self.name!r} score={self.regen_score}>"
