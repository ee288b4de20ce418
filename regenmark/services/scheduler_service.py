"""
RegenMark Certification Engine
Scheduler Service.

Job registry plus a manual/cron trigger.  Jobs are plain functions taking
the Flask app; an external scheduler (cron, a platform job runner) calls
``POST /api/v1/admin/regenmarks/jobs/expiry-sweep`` or
``flask sweep-expirations``.

Architecture:
    - register_job: decorator that adds a job function to the registry
    - SchedulerService: runs a job inside an app context and keeps the
      outcome of the last run per job in memory
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("expiry_sweep")
        def run_expiry_sweep(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


_DEFAULT_SCHEDULES = {
    "expiry_sweep": {"hour": "3", "minute": "0", "description": "Daily at 03:00"},
}


class SchedulerService:
    """
    Lightweight scheduler service.

    Jobs are executed within the Flask app context.
    """

    _app: Flask | None = None
    _last_runs: dict[str, dict] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        from regenmark.services import scheduled_jobs  # noqa: F401  (registers jobs)

        cls._app = app
        cls._last_runs = {}
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            if has_app_context() and current_app._get_current_object() is cls._app:
                result = fn(cls._app)
            else:
                with cls._app.app_context():
                    result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome = {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
            "ran_at": datetime.now(timezone.utc).isoformat(),
        }
        cls._last_runs[job_name] = outcome
        return outcome

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their schedule and last run."""
        return [
            {
                "job_name": name,
                "description": (fn.__doc__ or f"Scheduled job: {name}").strip(),
                "schedule": _DEFAULT_SCHEDULES.get(
                    name, {"hour": "0", "minute": "0", "description": "Daily at midnight"},
                ),
                "last_run": cls._last_runs.get(name),
            }
            for name, fn in _job_registry.items()
        ]
