"""
RegenMark Certification Engine
Caller identity.

Authentication happens upstream (gateway / marketplace session).  The
gateway forwards the caller as headers:

    X-User-Id:   opaque account id
    X-User-Role: "reviewer" or "admin" grant review privileges

``init_auth`` loads them into ``g`` for every request; ``require_reviewer``
guards the admin endpoints.
"""

import functools
import logging

from flask import g, jsonify, request

logger = logging.getLogger(__name__)

REVIEWER_ROLES = {"reviewer", "admin"}


def _load_identity():
    g.user_id = (request.headers.get("X-User-Id") or "").strip() or None
    g.user_role = (request.headers.get("X-User-Role") or "").strip().lower() or None
    g.is_reviewer = g.user_role in REVIEWER_ROLES


def current_user_id():
    return getattr(g, "user_id", None)


def require_identity(f):
    """Decorator: the caller must be identified."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not current_user_id():
            return jsonify({"error": "Authentication required. Provide X-User-Id header."}), 401
        return f(*args, **kwargs)
    return decorated


def require_reviewer(f):
    """Decorator: the caller must hold review privileges."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not current_user_id():
            return jsonify({"error": "Authentication required. Provide X-User-Id header."}), 401
        if not getattr(g, "is_reviewer", False):
            logger.warning(
                "Access denied: role '%s' tried to access reviewer endpoint %s",
                g.user_role, request.path,
            )
            return jsonify({"error": "Insufficient permissions"}), 403
        return f(*args, **kwargs)
    return decorated


def init_auth(app):
    app.before_request(_load_identity)
