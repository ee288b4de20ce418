"""
RegenMark Certification Engine
Owner-facing RegenMark blueprint.

Endpoint groups:
  Owners          POST /api/v1/regenmarks/owners
                  GET  /api/v1/regenmarks/owners/<id>/scorecard
  Notifications   GET  /api/v1/regenmarks/owners/<id>/notifications
                  POST /api/v1/regenmarks/notifications/<id>/read
  Evaluations     POST /api/v1/regenmarks/evaluations          (JSON or multipart)
                  GET  /api/v1/regenmarks/evaluations/<id>
                  POST /api/v1/regenmarks/evaluations/<id>/documents
                  POST /api/v1/regenmarks/evaluations/<id>/submit
  Scoring         POST /api/v1/regenmarks/score/product

The caller is taken from X-User-Id (see regenmark.auth).
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import json
import logging

from flask import Blueprint, jsonify, request

from regenmark.auth import current_user_id, require_identity
from regenmark.blueprints import register_error_handlers
from regenmark.core.exceptions import ValidationError
from regenmark.scoring.catalog import CertificationType
from regenmark.services import evaluation_lifecycle as lifecycle
from regenmark.services import score_service
from regenmark.services.document_storage import get_document_storage
from regenmark.services.notification import NotificationService

logger = logging.getLogger(__name__)

regenmark_bp = Blueprint("regenmark", __name__, url_prefix="/api/v1/regenmarks")
register_error_handlers(regenmark_bp)


# ── Request helpers ───────────────────────────────────────────────────────────


def _as_int(value, field):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value}) from None


def _json_field(raw, field):
    """Decode a JSON-encoded multipart form field."""
    if raw in (None, ""):
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be valid JSON", details={field: raw}) from None


def _store_uploads(prefix: str = "") -> list:
    """Store every uploaded ``document*`` file; return StoredDocument list."""
    storage = get_document_storage()
    stored = []
    for key in sorted(request.files):
        if not key.startswith("document"):
            continue
        for upload in request.files.getlist(key):
            stored.append(storage.store(upload.read(), upload.filename, upload.mimetype, prefix=prefix))
    return stored


def _evaluation_payload(evaluation):
    d = evaluation.to_dict()
    d["available_actions"] = lifecycle.available_actions(evaluation)
    return d


# ═════════════════════════════════════════════════════════════════════════
# Owners
# ═════════════════════════════════════════════════════════════════════════


@regenmark_bp.route("/owners", methods=["POST"])
@require_identity
def create_owner():
    """Register a vendor or product.

    Body: {name, kind?: "vendor"|"product", user_id?}
    """
    data = request.get_json(silent=True) or {}
    name, kind = data.get("name"), data.get("kind") or "vendor"
    if not isinstance(name, str) or not name.strip():
        return jsonify({"error": "name is required"}), 400
    if not isinstance(kind, str):
        raise ValidationError("kind must be a string", details={"kind": repr(kind)})
    owner = score_service.create_owner(
        name.strip(),
        kind=kind.strip().lower(),
        user_id=data.get("user_id") or current_user_id(),
    )
    return jsonify(owner.to_dict()), 201


@regenmark_bp.route("/owners/<int:owner_id>/scorecard", methods=["GET"])
def get_scorecard(owner_id):
    """Current marks, in-flight evaluations and a freshly computed score."""
    return jsonify(score_service.get_owner_scorecard(owner_id)), 200


@regenmark_bp.route("/owners/<int:owner_id>/notifications", methods=["GET"])
@require_identity
def list_notifications(owner_id):
    score_service.get_owner(owner_id)
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_owner(
        owner_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total}), 200


@regenmark_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@require_identity
def mark_notification_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if not notif:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify(notif.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Evaluations
# ═════════════════════════════════════════════════════════════════════════


@regenmark_bp.route("/evaluations", methods=["POST"])
@require_identity
def create_evaluation():
    """Request an evaluation.

    JSON body: {owner_id, type, documents?: [{name, url, ...}], metrics?: {...}}
    Multipart: owner_id, type, metrics? (JSON string), document_* files
    Returns: evaluation dict (201).
    """
    if request.files:
        form = request.form
        owner_id = _as_int(form.get("owner_id"), "owner_id")
        raw_type = form.get("type")
        metrics = _json_field(form.get("metrics"), "metrics")
        documents = None
    else:
        data = request.get_json(silent=True) or {}
        owner_id = _as_int(data.get("owner_id"), "owner_id")
        raw_type = data.get("type")
        metrics = data.get("metrics")
        documents = data.get("documents")

    if owner_id is None:
        return jsonify({"error": "owner_id is required"}), 400
    if not raw_type:
        return jsonify({"error": "type is required"}), 400

    cert_type = CertificationType.parse(raw_type)
    score_service.get_owner(owner_id)
    if request.files:
        documents = _store_uploads(prefix=cert_type.value)

    evaluation = lifecycle.request_evaluation(
        owner_id, cert_type,
        requested_by=current_user_id(),
        documents=documents,
        metrics=metrics,
    )
    return jsonify(_evaluation_payload(evaluation)), 201


@regenmark_bp.route("/evaluations/<int:evaluation_id>", methods=["GET"])
def get_evaluation(evaluation_id):
    evaluation = lifecycle.get_evaluation(evaluation_id)
    return jsonify(_evaluation_payload(evaluation)), 200


@regenmark_bp.route("/evaluations/<int:evaluation_id>/documents", methods=["POST"])
@require_identity
def attach_documents(evaluation_id):
    """Attach evidence: multipart ``document*`` files or a JSON document object."""
    evaluation = lifecycle.get_evaluation(evaluation_id)
    if request.files:
        documents = _store_uploads(prefix=evaluation.type)
    else:
        data = request.get_json(silent=True) or {}
        documents = data.get("documents") or [data]

    attached = lifecycle.attach_documents(evaluation_id, documents, uploaded_by=current_user_id())
    return jsonify({"documents": [d.to_dict() for d in attached]}), 201


@regenmark_bp.route("/evaluations/<int:evaluation_id>/submit", methods=["POST"])
@require_identity
def submit_evaluation(evaluation_id):
    evaluation = lifecycle.submit_evaluation(evaluation_id, actor=current_user_id())
    return jsonify(_evaluation_payload(evaluation)), 200


# ═════════════════════════════════════════════════════════════════════════
# Scoring
# ═════════════════════════════════════════════════════════════════════════


@regenmark_bp.route("/score/product", methods=["POST"])
def score_product():
    """Body: {metrics: {co2Reduction, waterSaving, energyEfficiency}}"""
    data = request.get_json(silent=True) or {}
    return jsonify(score_service.score_product_metrics(data.get("metrics") or {})), 200
