"""
RegenMark Certification Engine
Notification Service.

Creates in-app notifications for owner accounts on lifecycle events
(submission, approval, rejection, revocation, expiry, tier change).

Lifecycle services call the ``notify_*`` helpers only after their own
transaction has committed, through :func:`send_quietly`, so a failed
notification is logged and never rolls back the event it reports.
"""

import logging
from datetime import datetime, timezone

from regenmark.models import db
from regenmark.models.notification import Notification
from regenmark.scoring.catalog import TYPE_DISPLAY_NAMES, CertificationType

logger = logging.getLogger(__name__)

REGENMARK_ACTION_URL = "/dashboard/vendor/regenmarks"


def _display(cert_type) -> str:
    try:
        return TYPE_DISPLAY_NAMES[CertificationType(cert_type)]
    except (KeyError, ValueError):
        return str(cert_type)


def send_quietly(notify, *args, **kwargs):
    """Run a notification helper; log and swallow any failure."""
    try:
        return notify(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception(
            "Notification dispatch failed",
            extra={"action": getattr(notify, "__name__", str(notify))},
        )
        return None


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, kind, title, message="", severity="info", recipient=None,
               owner_id=None, action_url=None, entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            owner_id=owner_id,
            recipient=recipient,
            kind=kind,
            title=title,
            message=message,
            severity=severity,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def notify_owner(owner, kind, title, message="", action_url=REGENMARK_ACTION_URL, *,
                     severity="info", entity_type="", entity_id=None):
        """Notify the account behind *owner*."""
        return NotificationService.create(
            kind=kind,
            title=title,
            message=message,
            severity=severity,
            recipient=owner.user_id,
            owner_id=owner.id,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_owner(owner_id, unread_only=False, limit=50, offset=0):
        """Notifications of one owner, newest first."""
        q = Notification.query.filter_by(owner_id=owner_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(owner_id):
        q = Notification.query.filter_by(owner_id=owner_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count

    # ── Lifecycle helpers ─────────────────────────────────────────────────

    @staticmethod
    def notify_submitted(evaluation):
        return NotificationService.notify_owner(
            evaluation.owner,
            "REGENMARK_SUBMITTED",
            "RegenMark request submitted",
            f"Your evaluation request for {_display(evaluation.type)} has been received. "
            "We will let you know once it is under review.",
            entity_type="evaluation",
            entity_id=evaluation.id,
        )

    @staticmethod
    def notify_approved(evaluation, certification):
        return NotificationService.notify_owner(
            evaluation.owner,
            "REGENMARK_APPROVED",
            f"RegenMark {_display(certification.type)} approved",
            f"Your {_display(certification.type)} certification was approved "
            f"with a score of {certification.score}/100.",
            severity="success",
            entity_type="certification",
            entity_id=certification.id,
        )

    @staticmethod
    def notify_rejected(evaluation):
        return NotificationService.notify_owner(
            evaluation.owner,
            "REGENMARK_REJECTED",
            f"RegenMark {_display(evaluation.type)} rejected",
            f"Your evaluation was not approved. Feedback: {evaluation.feedback}",
            severity="warning",
            entity_type="evaluation",
            entity_id=evaluation.id,
        )

    @staticmethod
    def notify_revoked(certification):
        return NotificationService.notify_owner(
            certification.owner,
            "REGENMARK_REVOKED",
            f"RegenMark {_display(certification.type)} revoked",
            f"Reason: {certification.revocation_reason}",
            severity="error",
            entity_type="certification",
            entity_id=certification.id,
        )

    @staticmethod
    def notify_expiry(certification, status):
        """Warn about a mark that just became EXPIRING_SOON or EXPIRED."""
        expired = status == "EXPIRED"
        when = certification.expires_at.date().isoformat() if certification.expires_at else "soon"
        return NotificationService.notify_owner(
            certification.owner,
            "REGENMARK_EXPIRED" if expired else "REGENMARK_EXPIRING",
            f"RegenMark {_display(certification.type)} "
            + ("expired" if expired else "expiring soon"),
            (f"Your certification expired on {when} and no longer counts towards your score."
             if expired else
             f"Your certification expires on {when}. Request a new evaluation to keep it."),
            severity="error" if expired else "warning",
            entity_type="certification",
            entity_id=certification.id,
        )

    @staticmethod
    def notify_tier_change(owner, change):
        """Notify a tier change; returns None when the tier did not move."""
        if not change.tier_changed:
            return None
        direction = "up" if change.tier_up else "down"
        return NotificationService.notify_owner(
            owner,
            "TIER_CHANGED",
            f"Tier {direction}: {change.new_tier}",
            f"Your RegenMark tier moved from {change.old_tier} to {change.new_tier} "
            f"({change.score_diff:+d} points).",
            severity="success" if change.tier_up else "warning",
            entity_type="owner",
            entity_id=owner.id,
        )
