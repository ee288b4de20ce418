"""
RegenMark Certification Engine
Blueprint registry and shared helpers.
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from regenmark.core.exceptions import (
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-ordered list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], len(items)


def register_error_handlers(bp):
    """Map engine exceptions to JSON responses on *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify({"error": str(error)}), 404

    # DuplicateEvaluationError lists InvalidStateError first in its MRO: 409.
    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        body = {"error": str(error), "current_status": error.current_status, "action": error.action}
        details = getattr(error, "details", None)
        if details:
            body["details"] = details
        return jsonify(body), 409

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return jsonify({"error": str(error), "details": error.details}), 422

    @bp.errorhandler(InternalError)
    def _handle_internal(error: InternalError):
        return jsonify({"error": str(error), "operation": error.operation}), 500

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error"}), 500
