"""
Escalation orchestrator — the sweep.

    select_candidate_tasks → for each task: active rules (priority order)
    → rule_fires_for_task → already_fired → executor.execute

Processing is sequential: tasks in due-date order, then rules in priority
order, so the logs of one sweep come back in a deterministic order.

Usage:
    from partnerhub.services.escalation_service import run_escalation_check
    summary = run_escalation_check(project_id=1)
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from flask import current_app
from sqlalchemy import func

from partnerhub.core.exceptions import ConflictError, NotFoundError
from partnerhub.models import db
from partnerhub.models.escalation import (
    RULE_STATUS_ACTIVE,
    TRIGGER_DAYS_AFTER_DUE,
    TRIGGER_DAYS_BEFORE_DUE,
    EscalationLog,
    EscalationRule,
)
from partnerhub.models.project import CLOSED_TASK_STATUSES, Project, Task
from partnerhub.services import escalation_executor
from partnerhub.services.escalation_guard import already_fired
from partnerhub.services.escalation_rule_service import get_active_rules_for_task
from partnerhub.services.escalation_triggers import rule_fires_for_task, utc_today

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_PAST_DAYS = 30
DEFAULT_WINDOW_FUTURE_DAYS = 7


# ═════════════════════════════════════════════════════════════════════════════
# Candidate selection
# ═════════════════════════════════════════════════════════════════════════════


def _max_active_trigger_value(trigger_type: str, organization_id: int | None) -> int:
    q = db.session.query(func.max(EscalationRule.trigger_value)).filter(
        EscalationRule.status == RULE_STATUS_ACTIVE,
        EscalationRule.trigger_type == trigger_type,
    )
    if organization_id is not None:
        q = q.filter(EscalationRule.organization_id == organization_id)
    return q.scalar() or 0


def candidate_window(today: date, organization_id: int | None = None) -> tuple[date, date]:
    """Due-date window ``[today - past, today + future]`` for the sweep.

    With ESCALATION_WINDOW_WIDEN the bounds grow to the largest active
    days_after_due / days_before_due trigger value, so a 45-days-overdue
    rule is still reachable by the scheduled sweep.
    """
    past = current_app.config.get("ESCALATION_WINDOW_PAST_DAYS", DEFAULT_WINDOW_PAST_DAYS)
    future = current_app.config.get("ESCALATION_WINDOW_FUTURE_DAYS", DEFAULT_WINDOW_FUTURE_DAYS)
    if current_app.config.get("ESCALATION_WINDOW_WIDEN", True):
        past = max(past, _max_active_trigger_value(TRIGGER_DAYS_AFTER_DUE, organization_id))
        future = max(future, _max_active_trigger_value(TRIGGER_DAYS_BEFORE_DUE, organization_id))
    return today - timedelta(days=past), today + timedelta(days=future)


def select_candidate_tasks(
    *,
    project_id: int | None = None,
    organization_id: int | None = None,
    today: date | None = None,
) -> list[Task]:
    """Open, dated tasks whose due date falls inside the candidate window."""
    today = today or utc_today()
    start, end = candidate_window(today, organization_id)

    q = Task.query.filter(
        Task.status.notin_(CLOSED_TASK_STATUSES),
        Task.due_date.isnot(None),
        Task.due_date >= start,
        Task.due_date <= end,
    )
    if organization_id is not None:
        q = q.join(Project, Task.project_id == Project.id).filter(
            Project.organization_id == organization_id,
        )
    if project_id is not None:
        q = q.filter(Task.project_id == project_id)
    return q.order_by(Task.due_date.asc(), Task.id.asc()).all()


# ═════════════════════════════════════════════════════════════════════════════
# Per-task evaluation
# ═════════════════════════════════════════════════════════════════════════════


def check_task(task: Task, *, today: date | None = None, organization_id: int | None = None) -> list[EscalationLog]:
    """Evaluate every applicable rule against one task and fire the due ones."""
    if task.status in CLOSED_TASK_STATUSES or task.due_date is None:
        return []

    today = today or utc_today()
    org_id = organization_id
    if org_id is None and task.project is not None:
        org_id = task.project.organization_id
    if org_id is None:
        logger.debug("Task %s has no organization scope, skipping", task.id, extra={"task_id": task.id})
        return []

    task_id = task.id
    logs = []
    for rule in get_active_rules_for_task(task.project_id, org_id):
        if not rule_fires_for_task(rule, task, today):
            continue
        if already_fired(rule.id, task_id, today):
            continue
        try:
            log = escalation_executor.execute(rule, task, today=today)
        except ConflictError:
            # A concurrent sweep claimed the slot first
            continue
        logs.append(log)
    return logs


# ═════════════════════════════════════════════════════════════════════════════
# Entry points
# ═════════════════════════════════════════════════════════════════════════════


def _scoped_task(task_id: int, organization_id: int | None) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id, organization_id=organization_id)
    if organization_id is not None and (task.project is None or task.project.organization_id != organization_id):
        raise NotFoundError(resource="Task", resource_id=task_id, organization_id=organization_id)
    return task


def _scoped_project(project_id: int, organization_id: int | None) -> Project:
    project = db.session.get(Project, project_id)
    if project is None or (organization_id is not None and project.organization_id != organization_id):
        raise NotFoundError(resource="Project", resource_id=project_id, organization_id=organization_id)
    return project


def run_escalation_check(
    *,
    project_id: int | None = None,
    task_id: int | None = None,
    organization_id: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Run one sweep, optionally narrowed to a project or a single task.

    A failure while checking one task is logged and rolled back; the sweep
    moves on. Failures selecting candidates propagate to the caller.

    Returns:
        {"tasks_checked": int, "escalations_triggered": int, "logs": [dict]}

    Raises:
        NotFoundError: ``task_id`` / ``project_id`` absent or outside the organization,
            or ``task_id`` not in ``project_id`` when both are given.
    """
    today = today or utc_today()

    if task_id is not None:
        task = _scoped_task(task_id, organization_id)
        if project_id is not None and task.project_id != project_id:
            raise NotFoundError(resource="Task", resource_id=task_id, organization_id=organization_id)
        tasks = [task]
    else:
        if project_id is not None:
            _scoped_project(project_id, organization_id)
        tasks = select_candidate_tasks(
            project_id=project_id, organization_id=organization_id, today=today,
        )

    task_ids = [t.id for t in tasks]
    logs: list[EscalationLog] = []
    for tid, task in zip(task_ids, tasks):
        try:
            logs.extend(check_task(task, today=today, organization_id=organization_id))
        except Exception:
            db.session.rollback()
            logger.exception("Escalation check failed for task %s", tid,
                             extra={"task_id": tid, "organization_id": organization_id})

    summary = {
        "tasks_checked": len(tasks),
        "escalations_triggered": len(logs),
        "logs": [log.to_dict() for log in logs],
    }
    logger.info(
        "Escalation check: %d task(s) checked, %d escalation(s) triggered",
        summary["tasks_checked"], summary["escalations_triggered"],
        extra={"organization_id": organization_id, "project_id": project_id},
    )
    return summary
