"""
Escalation history & statistics — read-only.

Logs carry no organization id; organization scoping goes through
``EscalationLog.project_id → Project.organization_id``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func

from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.models import db
from partnerhub.models.escalation import RULE_STATUS_ACTIVE, EscalationLog, EscalationRule
from partnerhub.models.project import Project
from partnerhub.utils.helpers import clamp_paging, paginate_query

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=24)

_SORTABLE = {
    "created_at": EscalationLog.created_at,
    "executed_at": EscalationLog.executed_at,
    "fired_on": EscalationLog.fired_on,
    "status": EscalationLog.status,
    "action": EscalationLog.action,
}


def _scoped_logs(organization_id: int | None):
    q = EscalationLog.query
    if organization_id is not None:
        q = q.join(Project, EscalationLog.project_id == Project.id).filter(
            Project.organization_id == organization_id,
        )
    return q


def _grouped_counts(organization_id: int | None, column) -> dict[str, int]:
    q = db.session.query(column, func.count(EscalationLog.id))
    if organization_id is not None:
        q = q.join(Project, EscalationLog.project_id == Project.id).filter(
            Project.organization_id == organization_id,
        )
    return {key: count for key, count in q.group_by(column).all()}


def get_statistics(organization_id: int | None = None, *, now: datetime | None = None) -> dict:
    """Dashboard counters.

    Returns:
        {
            "total_rules", "active_rules", "total_logs",
            "logs_by_status": {status: n}, "logs_by_action": {action: n},
            "recent_escalations": logs created in the last 24 hours,
        }
    """
    now = now or datetime.now(timezone.utc)

    rules = EscalationRule.query
    if organization_id is not None:
        rules = rules.filter(EscalationRule.organization_id == organization_id)

    return {
        "total_rules": rules.count(),
        "active_rules": rules.filter(EscalationRule.status == RULE_STATUS_ACTIVE).count(),
        "total_logs": _scoped_logs(organization_id).count(),
        "logs_by_status": _grouped_counts(organization_id, EscalationLog.status),
        "logs_by_action": _grouped_counts(organization_id, EscalationLog.action),
        "recent_escalations": _scoped_logs(organization_id)
        .filter(EscalationLog.created_at >= now - RECENT_WINDOW)
        .count(),
    }


def _as_datetime(value: date | datetime | None, *, end_of_day: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)


def list_logs(
    organization_id: int | None = None,
    *,
    project_id: int | None = None,
    task_id: int | None = None,
    rule_id: int | None = None,
    action: str | None = None,
    status: str | None = None,
    date_from: date | datetime | None = None,
    date_to: date | datetime | None = None,
    page: int = 1,
    per_page: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    """Paginated log listing with filters. Dates bound ``created_at`` inclusively."""
    q = _scoped_logs(organization_id)
    if project_id is not None:
        q = q.filter(EscalationLog.project_id == project_id)
    if task_id is not None:
        q = q.filter(EscalationLog.task_id == task_id)
    if rule_id is not None:
        q = q.filter(EscalationLog.rule_id == rule_id)
    if action:
        q = q.filter(EscalationLog.action == action)
    if status:
        q = q.filter(EscalationLog.status == status)
    if date_from is not None:
        q = q.filter(EscalationLog.created_at >= _as_datetime(date_from))
    if date_to is not None:
        q = q.filter(EscalationLog.created_at <= _as_datetime(date_to, end_of_day=True))

    column = _SORTABLE.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort by {sort_by}",
                              details={"sort_by": f"one of {', '.join(sorted(_SORTABLE))}"})
    ordered = column.asc() if str(sort_order).lower() == "asc" else column.desc()
    q = q.order_by(ordered, EscalationLog.id.desc())

    page, per_page = clamp_paging(page, per_page)
    items, total = paginate_query(q, page, per_page)
    return {
        "items": [log.to_dict() for log in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def get_escalation_history(project_id: int, organization_id: int | None = None) -> list[dict]:
    """All logs of one project, newest first."""
    project = db.session.get(Project, project_id)
    if project is None or (organization_id is not None and project.organization_id != organization_id):
        raise NotFoundError(resource="Project", resource_id=project_id, organization_id=organization_id)
    logs = (
        EscalationLog.query
        .filter(EscalationLog.project_id == project_id)
        .order_by(EscalationLog.created_at.desc(), EscalationLog.id.desc())
        .all()
    )
    return [log.to_dict() for log in logs]
