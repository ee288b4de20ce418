"""
RegenMark Certification Engine
Scheduled Jobs.

Jobs:
    - expiry_sweep: persists EXPIRING_SOON / EXPIRED transitions, rescoring
      affected owners and warning them
"""

from __future__ import annotations

import logging
from typing import Any

from regenmark.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("expiry_sweep")
def run_expiry_sweep(app) -> dict[str, Any]:
    """Reclassify due certifications and recompute affected owners."""
    from regenmark.services.score_service import sweep_expirations

    summary = sweep_expirations()
    logger.info("expiry_sweep finished: %s", summary)
    return summary
