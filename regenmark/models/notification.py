"""
RegenMark Certification Engine
Notification domain model.

Models:
    - Notification: in-app message for the account behind an owner.
"""

from datetime import datetime, timezone

from regenmark.models import db

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_KINDS = {
    "REGENMARK_SUBMITTED",
    "REGENMARK_APPROVED",
    "REGENMARK_REJECTED",
    "REGENMARK_REVOKED",
    "REGENMARK_EXPIRING",
    "REGENMARK_EXPIRED",
    "TIER_CHANGED",
}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("owners.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    recipient = db.Column(db.String(64), nullable=True, index=True, comment="user_id of the owner account")
    kind = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="info")
    action_url = db.Column(db.String(300), nullable=True)

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="evaluation/certification/owner")
    entity_id = db.Column(db.Integer, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "recipient": self.recipient,
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "action_url": self.action_url,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.kind} {self.title[:40]}>"
