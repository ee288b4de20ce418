"""regenmark_initial_schema

Creates the RegenMark tables:
  - owners                — vendors / products with the persisted aggregate
  - certifications        — issued marks (12-month validity by default)
  - evaluations           — review workflow rows, optimistic version column
  - evaluation_documents  — evidence metadata
  - notifications         — in-app owner messages
  - audit_logs            — append-only lifecycle trail

Tables created conditionally (IF NOT EXISTS semantics) so databases that
already received them via db.create_all() can be stamped and upgraded.

Revision ID: a1f3c9e2b7d4
Revises:
Create Date: 2026-10-19 09:12:44.318207
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f3c9e2b7d4'
down_revision = None
branch_labels = None
depends_on = None

_TYPES = "'CARBON_SAVER', 'WATER_GUARDIAN', 'HUMAN_FIRST', 'HUMANE_HERO', 'CIRCULAR_CHAMPION'"
_IN_FLIGHT = "'AI_PROCESSING', 'IN_REVIEW', 'PENDING', 'SUBMITTED'"


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Owner ─────────────────────────────────────────────────────────────
    if "owners" not in existing:
        op.create_table(
            "owners",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column(
                "user_id", sa.String(length=64), nullable=True,
                comment="Account that receives notifications for this owner",
            ),
            sa.Column("regen_score", sa.Integer(), nullable=False),
            sa.Column("tier", sa.String(length=40), nullable=False),
            sa.Column("score_updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("kind IN ('vendor', 'product')", name="ck_owners_kind"),
            sa.CheckConstraint("regen_score BETWEEN 0 AND 100", name="ck_owners_regen_score"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_owners_user_id", "owners", ["user_id"])

    # ── Certification ─────────────────────────────────────────────────────
    if "certifications" not in existing:
        op.create_table(
            "certifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("score", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column(
                "verified_by", sa.String(length=64), nullable=True,
                comment="Reviewer who approved the evaluation",
            ),
            sa.Column("evaluation_notes", sa.Text(), nullable=True),
            sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("revoked_by", sa.String(length=64), nullable=True),
            sa.Column("revocation_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('ACTIVE', 'EXPIRING_SOON', 'EXPIRED', 'REVOKED')",
                name="ck_certifications_status",
            ),
            sa.CheckConstraint(f"type IN ({_TYPES})", name="ck_certifications_type"),
            sa.CheckConstraint("score BETWEEN 0 AND 100", name="ck_certifications_score"),
            sa.CheckConstraint("expires_at > issued_at", name="ck_certifications_validity"),
            sa.CheckConstraint(
                "status != 'REVOKED' OR revoked_at IS NOT NULL",
                name="ck_certifications_revoked_at",
            ),
            sa.ForeignKeyConstraint(["owner_id"], ["owners.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_certifications_owner_id", "certifications", ["owner_id"])
        op.create_index("ix_certifications_expires_at", "certifications", ["expires_at"])
        op.create_index("ix_certifications_owner_status", "certifications", ["owner_id", "status"])

    # ── Evaluation ────────────────────────────────────────────────────────
    if "evaluations" not in existing:
        op.create_table(
            "evaluations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("requested_by", sa.String(length=64), nullable=True),
            sa.Column("metrics", sa.JSON(), nullable=True, comment="Raw indicators used for the AI score"),
            sa.Column("ai_score", sa.Integer(), nullable=True),
            sa.Column("reviewer_id", sa.String(length=64), nullable=True),
            sa.Column("review_score", sa.Integer(), nullable=True),
            sa.Column("reviewer_notes", sa.Text(), nullable=True),
            sa.Column("feedback", sa.Text(), nullable=True),
            sa.Column("certification_id", sa.Integer(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("review_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("version_id", sa.Integer(), nullable=False),
            sa.CheckConstraint(
                "status IN ('PENDING', 'SUBMITTED', 'AI_PROCESSING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
                name="ck_evaluations_status",
            ),
            sa.CheckConstraint(f"type IN ({_TYPES})", name="ck_evaluations_type"),
            sa.CheckConstraint(
                "(status = 'APPROVED' AND certification_id IS NOT NULL AND review_score IS NOT NULL)"
                " OR (status != 'APPROVED' AND certification_id IS NULL)",
                name="ck_evaluations_approved_link",
            ),
            sa.CheckConstraint(
                "status != 'REJECTED' OR (feedback IS NOT NULL AND length(trim(feedback)) > 0)",
                name="ck_evaluations_rejected_feedback",
            ),
            sa.CheckConstraint("ai_score IS NULL OR ai_score BETWEEN 0 AND 100", name="ck_evaluations_ai_score"),
            sa.CheckConstraint(
                "review_score IS NULL OR review_score BETWEEN 0 AND 100",
                name="ck_evaluations_review_score",
            ),
            sa.ForeignKeyConstraint(["owner_id"], ["owners.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["certification_id"], ["certifications.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("certification_id"),
        )
        op.create_index("ix_evaluations_owner_id", "evaluations", ["owner_id"])
        op.create_index("ix_evaluations_status_submitted", "evaluations", ["status", "submitted_at"])
        op.create_index(
            "uq_evaluations_in_flight", "evaluations", ["owner_id", "type"],
            unique=True,
            sqlite_where=sa.text(f"status IN ({_IN_FLIGHT})"),
            postgresql_where=sa.text(f"status IN ({_IN_FLIGHT})"),
        )

    if "evaluation_documents" not in existing:
        op.create_table(
            "evaluation_documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("evaluation_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=True),
            sa.Column("url", sa.String(length=500), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=120), nullable=True),
            sa.Column("uploaded_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["evaluation_id"], ["evaluations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("evaluation_id", "position", name="uq_evaluation_documents_position"),
        )
        op.create_index("ix_evaluation_documents_evaluation_id", "evaluation_documents", ["evaluation_id"])

    # ── Notification ──────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=True),
            sa.Column("recipient", sa.String(length=64), nullable=True, comment="user_id of the owner account"),
            sa.Column("kind", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("action_url", sa.String(length=300), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True, comment="evaluation/certification/owner"),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["owner_id"], ["owners.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_owner_id", "notifications", ["owner_id"])
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])

    # ── AuditLog ──────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False, comment="owner | evaluation | certification"),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("diff_json", sa.Text(), nullable=True, comment="JSON: {field: {old, new}}"),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["owner_id"], ["owners.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_owner_id", "audit_logs", ["owner_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("evaluation_documents")
    op.drop_table("evaluations")
    op.drop_table("certifications")
    op.drop_table("owners")
