"""
Dedup guard — at most one firing per (rule, task, UTC day).

Two layers:
  1. ``already_fired`` — cheap read check before any work is done.
  2. ``claim`` — inserts the ``pending`` log row and commits it. The
     unique constraint on (rule_id, task_id, fired_on) turns the second
     of two overlapping sweeps into a ConflictError instead of a double
     firing.

A claim row that is never finalized (process crash mid-action) is swept
up by the ``stale_escalation_cleanup`` job.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from partnerhub.core.exceptions import ConflictError
from partnerhub.models import db
from partnerhub.models.escalation import LOG_STATUS_PENDING, EscalationLog
from partnerhub.services.escalation_triggers import utc_today

logger = logging.getLogger(__name__)


def day_start(today: date) -> datetime:
    """UTC midnight at the start of ``today``."""
    return datetime.combine(today, time.min, tzinfo=timezone.utc)


def already_fired(rule_id: int, task_id: int, today: date | None = None) -> bool:
    """True if a log for the pair is bucketed on ``today`` or was created during it."""
    today = today or utc_today()
    start = day_start(today)
    return (
        db.session.query(EscalationLog.id)
        .filter(
            EscalationLog.rule_id == rule_id,
            EscalationLog.task_id == task_id,
            or_(
                EscalationLog.fired_on == today,
                (EscalationLog.created_at >= start)
                & (EscalationLog.created_at < start + timedelta(days=1)),
            ),
        )
        .first()
    ) is not None


def claim(rule, task, today: date | None = None) -> EscalationLog:
    """Insert and commit the pending log row for this firing.

    Raises:
        ConflictError: another sweep already claimed (rule, task, today).
    """
    today = today or utc_today()
    log = EscalationLog(
        rule_id=rule.id,
        task_id=task.id,
        project_id=task.project_id,
        action=rule.action,
        status=LOG_STATUS_PENDING,
        notified_users=[],
        failure_reasons=[],
        fired_on=today,
    )
    db.session.add(log)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Escalation already claimed rule=%s task=%s day=%s", rule.id, task.id, today,
                    extra={"rule_id": rule.id, "task_id": task.id})
        raise ConflictError(
            resource="EscalationLog",
            field="(rule_id, task_id, fired_on)",
            value=f"({rule.id}, {task.id}, {today.isoformat()})",
        )
    return log
