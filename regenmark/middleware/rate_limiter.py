"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in regenmark/__init__.py with no default
limits; this module applies limits per blueprint, keyed by caller.

Usage:
    from regenmark.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)


def caller_key():
    """Rate limit key: the identified caller if any, else remote IP."""
    user_id = getattr(g, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per caller):
        - Owner-facing API: REGENMARK_API_RATE_LIMIT   (default 60/minute)
        - Reviewer API:     REGENMARK_ADMIN_RATE_LIMIT (default 200/minute)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    api_limit = app.config.get("REGENMARK_API_RATE_LIMIT", "60/minute")
    admin_limit = app.config.get("REGENMARK_ADMIN_RATE_LIMIT", "200/minute")

    bp = app.blueprints.get("regenmark")
    if bp:
        limiter.limit(api_limit, key_func=caller_key)(bp)

    bp = app.blueprints.get("admin_regenmark")
    if bp:
        limiter.limit(admin_limit, key_func=caller_key)(bp)

    app.logger.info("Rate limiter configured — api: %s, admin: %s", api_limit, admin_limit)
