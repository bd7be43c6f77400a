"""
Partner Hub — Scheduled Jobs.

Jobs:
    - escalation_sweep: Runs the escalation check across every organization
    - stale_escalation_cleanup: Fails escalation logs stuck in ``pending``
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from partnerhub.models import db
from partnerhub.models.escalation import LOG_STATUS_PENDING, EscalationLog
from partnerhub.services.escalation_service import run_escalation_check
from partnerhub.services.scheduler_service import register_job

logger = logging.getLogger(__name__)

ABANDONED_REASON = "Abandoned while pending"


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Escalation Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("escalation_sweep")
def escalation_sweep(app) -> dict[str, Any]:
    """Evaluate every active escalation rule against open tasks."""
    summary = run_escalation_check()
    # Keep the stored job result small
    return {
        "tasks_checked": summary["tasks_checked"],
        "escalations_triggered": summary["escalations_triggered"],
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Stale Escalation Cleanup
# ═══════════════════════════════════════════════════════════════════════════

@register_job("stale_escalation_cleanup")
def stale_escalation_cleanup(app) -> dict[str, Any]:
    """Mark escalation logs left pending by a crashed run as failed."""
    minutes = int(app.config.get("ESCALATION_STALE_PENDING_MINUTES", 60))
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)

    stale = EscalationLog.query.filter(
        EscalationLog.status == LOG_STATUS_PENDING,
        EscalationLog.created_at < cutoff,
    ).all()
    for log in stale:
        log.mark_failed(ABANDONED_REASON)

    db.session.commit()
    logger.info("Stale escalation cleanup: failed %d pending log(s)", len(stale))
    return {"failed": len(stale), "cutoff": cutoff.isoformat()}
