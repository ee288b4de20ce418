"""
RegenMark Certification Engine
Reviewer RegenMark blueprint.

Endpoint groups:
  Review queue    GET  /api/v1/admin/regenmarks/evaluations
  Workflow        POST /api/v1/admin/regenmarks/evaluations/<id>/score
                  POST /api/v1/admin/regenmarks/evaluations/<id>/review
                  POST /api/v1/admin/regenmarks/evaluate
  Certifications  POST /api/v1/admin/regenmarks/certifications/<id>/revoke
  Jobs            GET  /api/v1/admin/regenmarks/jobs
                  POST /api/v1/admin/regenmarks/jobs/expiry-sweep

All endpoints require review privileges (X-User-Role: reviewer | admin).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from regenmark.auth import current_user_id, require_reviewer
from regenmark.blueprints import paginate_list, register_error_handlers
from regenmark.services import evaluation_lifecycle as lifecycle
from regenmark.services.certification_issuer import revoke_certification
from regenmark.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

admin_regenmark_bp = Blueprint(
    "admin_regenmark", __name__, url_prefix="/api/v1/admin/regenmarks",
)
register_error_handlers(admin_regenmark_bp)


def _score_value(value):
    """JSON numbers like 75.0 are accepted as integers."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ═════════════════════════════════════════════════════════════════════════
# Review queue
# ═════════════════════════════════════════════════════════════════════════


@admin_regenmark_bp.route("/evaluations", methods=["GET"])
@require_reviewer
def list_evaluations():
    """Query params: status?, owner_id?, type?, limit?, offset?"""
    evaluations = lifecycle.list_evaluations(
        status=request.args.get("status"),
        owner_id=request.args.get("owner_id", type=int),
        cert_type=request.args.get("type"),
    )
    page, total = paginate_list(evaluations)
    return jsonify({
        "items": [e.to_dict() for e in page],
        "total": total,
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Workflow
# ═════════════════════════════════════════════════════════════════════════


@admin_regenmark_bp.route("/evaluations/<int:evaluation_id>/score", methods=["POST"])
@require_reviewer
def score_evaluation(evaluation_id):
    """Run the metric scorer.  Body: {metrics?: {...}}"""
    data = request.get_json(silent=True) or {}
    evaluation = lifecycle.score_metrics(evaluation_id, data.get("metrics"), actor=current_user_id())
    return jsonify(evaluation.to_dict()), 200


@admin_regenmark_bp.route("/evaluations/<int:evaluation_id>/review", methods=["POST"])
@require_reviewer
def start_review(evaluation_id):
    evaluation = lifecycle.start_review(evaluation_id, current_user_id())
    return jsonify(evaluation.to_dict()), 200


@admin_regenmark_bp.route("/evaluate", methods=["POST"])
@require_reviewer
def evaluate():
    """Approve or reject an evaluation in review.

    Body: {evaluation_id, approved: bool, review_score?, reviewer_notes?, feedback?}
    """
    data = request.get_json(silent=True) or {}
    evaluation_id = data.get("evaluation_id")
    if not evaluation_id:
        return jsonify({"error": "evaluation_id is required"}), 400
    if "approved" not in data:
        return jsonify({"error": "approved is required"}), 400

    if data.get("approved"):
        result = lifecycle.approve_evaluation(
            evaluation_id,
            _score_value(data.get("review_score")),
            reviewer_id=current_user_id(),
            reviewer_notes=data.get("reviewer_notes"),
        )
        evaluation = lifecycle.get_evaluation(evaluation_id)
        return jsonify({
            "message": "Evaluation approved successfully",
            "evaluation": evaluation.to_dict(include_documents=False),
            **result.to_dict(),
        }), 200

    evaluation = lifecycle.reject_evaluation(
        evaluation_id,
        data.get("feedback"),
        reviewer_id=current_user_id(),
        review_score=_score_value(data.get("review_score")),
        reviewer_notes=data.get("reviewer_notes"),
    )
    return jsonify({
        "message": "Evaluation rejected",
        "evaluation": evaluation.to_dict(include_documents=False),
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Certifications
# ═════════════════════════════════════════════════════════════════════════


@admin_regenmark_bp.route("/certifications/<int:certification_id>/revoke", methods=["POST"])
@require_reviewer
def revoke(certification_id):
    """Body: {reason}"""
    data = request.get_json(silent=True) or {}
    result = revoke_certification(certification_id, data.get("reason"), revoked_by=current_user_id())
    return jsonify(result.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Jobs
# ═════════════════════════════════════════════════════════════════════════


@admin_regenmark_bp.route("/jobs", methods=["GET"])
@require_reviewer
def list_jobs():
    return jsonify({"jobs": SchedulerService.list_jobs()}), 200


@admin_regenmark_bp.route("/jobs/expiry-sweep", methods=["POST"])
@require_reviewer
def run_expiry_sweep():
    outcome = SchedulerService.run_job("expiry_sweep")
    status = 200 if outcome["status"] == "success" else 500
    return jsonify(outcome), status
