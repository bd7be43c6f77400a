"""
Trigger evaluation — pure decisions, no database access.

    days_diff = due_date - today   (positive: due in the future, negative: overdue)

    days_before_due  fires when 0 <= days_diff <= trigger_value
    days_after_due   fires when days_diff < 0 and |days_diff| >= trigger_value
    progress_below   fires when progress < trigger_value and days_diff <= 3

Comparisons happen on calendar days; datetimes are truncated to their date.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from partnerhub.models.escalation import (
    TRIGGER_DAYS_AFTER_DUE,
    TRIGGER_DAYS_BEFORE_DUE,
    TRIGGER_PROGRESS_BELOW,
)

# progress_below only matters once the due date is this close (or passed)
PROGRESS_CHECK_HORIZON_DAYS = 3


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def days_until_due(due_date: date | datetime, today: date | datetime | None = None) -> int:
    """Whole days from ``today`` to ``due_date``; negative when overdue."""
    today = _as_date(today) if today is not None else utc_today()
    return (_as_date(due_date) - today).days


def should_fire(trigger_type: str, trigger_value: int, days_diff: int, progress: int | None) -> bool:
    if trigger_type == TRIGGER_DAYS_BEFORE_DUE:
        return 0 <= days_diff <= trigger_value
    if trigger_type == TRIGGER_DAYS_AFTER_DUE:
        return days_diff < 0 and abs(days_diff) >= trigger_value
    if trigger_type == TRIGGER_PROGRESS_BELOW:
        return (progress or 0) < trigger_value and days_diff <= PROGRESS_CHECK_HORIZON_DAYS
    return False


def rule_fires_for_task(rule, task, today: date | None = None) -> bool:
    """Evaluate ``rule`` against ``task``. Tasks without a due date never fire."""
    if task.due_date is None:
        return False
    days_diff = days_until_due(task.due_date, today)
    return should_fire(rule.trigger_type, rule.trigger_value, days_diff, task.progress)


def days_overdue(task, today: date | None = None) -> int:
    """Days past due (0 when not overdue or undated)."""
    if task.due_date is None:
        return 0
    return max(-days_until_due(task.due_date, today), 0)
