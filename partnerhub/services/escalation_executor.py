"""
Escalation action executor.

``execute(rule, task)`` claims the (rule, task, day) slot, runs the rule's
primary action through NotificationService and finalizes the log as
``executed`` or ``failed``. Dispatch errors never propagate; they become
the log's failure reason.

After the primary result is committed, an overdue task linked to a
partner with an SMS number gets one urgent SMS through the organization's
provider credentials. That side-channel can only append a failure reason;
it never changes the status decided by the primary action.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from partnerhub.integrations.sms_gateway import SmsSendResult, sms_gateway
from partnerhub.models import db
from partnerhub.models.escalation import (
    ACTION_ESCALATE_TO_MANAGER,
    ACTION_NOTIFY_OWNER,
    ACTION_NOTIFY_STAKEHOLDERS,
    EscalationLog,
    EscalationRule,
)
from partnerhub.models.project import Task
from partnerhub.services import escalation_guard
from partnerhub.services.escalation_triggers import days_overdue, utc_today
from partnerhub.services.notification import NotificationService
from partnerhub.services.sms_settings_service import get_sms_credentials

logger = logging.getLogger(__name__)

SMS_FAILURE_PREFIX = "SMS delivery failed: "


class EscalationActionError(Exception):
    """A primary action could not run (missing assignee, project or target)."""


# ═════════════════════════════════════════════════════════════════════════════
# Message building
# ═════════════════════════════════════════════════════════════════════════════


def build_notification_message(rule: EscalationRule, task: Task, is_escalation: bool = False) -> str:
    prefix = "[ESCALATION] " if is_escalation else ""
    due = task.due_date.isoformat() if task.due_date else "not set"
    return (
        f'{prefix}Task "{task.title}" requires attention.\n\n'
        f"Rule: {rule.name}\n"
        f"Due: {due}\n"
        f"Progress: {task.progress or 0}%\n"
        f"Status: {task.status}"
    )


def _send(user_id, rule, task, *, channel="in_app", severity="warning",
          metadata=None, is_escalation=False):
    title = f"ESCALATION: {rule.name}" if is_escalation else f"Escalation: {rule.name}"
    NotificationService.send(
        user_id,
        title,
        build_notification_message(rule, task, is_escalation),
        channel,
        metadata,
        severity=severity,
        entity_type="task",
        entity_id=task.id,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Primary actions
# ═════════════════════════════════════════════════════════════════════════════


def _notify_owner(rule: EscalationRule, task: Task, log: EscalationLog) -> None:
    if not task.assignee_id:
        raise EscalationActionError("Task has no assignee to notify")
    _send(task.assignee_id, rule, task)
    log.notified_users = [task.assignee_id]
    log.action_detail = f"Notified task assignee (user {task.assignee_id})"


def _notify_stakeholders(rule: EscalationRule, task: Task, log: EscalationLog) -> None:
    if not task.project_id or task.project is None:
        raise EscalationActionError("Task has no project, cannot notify stakeholders")
    project = task.project

    recipients = []
    for user_id in (project.owner_id, project.manager_id):
        if user_id and user_id not in recipients:
            recipients.append(user_id)

    notified = []
    for user_id in recipients:
        _send(user_id, rule, task)
        notified.append(user_id)
        log.notified_users = list(notified)

    log.action_detail = f"Notified {len(notified)} stakeholder(s)"


def _resolve_manager(rule: EscalationRule, task: Task) -> int | None:
    if rule.escalate_to_user_id:
        return rule.escalate_to_user_id
    project = task.project
    if project is None:
        return None
    return project.manager_id or project.owner_id


def _escalate_to_manager(rule: EscalationRule, task: Task, log: EscalationLog) -> None:
    manager_id = _resolve_manager(rule, task)
    if not manager_id:
        raise EscalationActionError("No manager found to escalate to")
    _send(
        manager_id, rule, task,
        channel="both",
        severity="error",
        metadata={"escalation": True, "rule_id": rule.id, "priority": "high"},
        is_escalation=True,
    )
    log.escalated_to_user_id = manager_id
    log.notified_users = [manager_id]
    log.action_detail = f"Escalated to manager (user {manager_id})"


_ACTIONS = {
    ACTION_NOTIFY_OWNER: _notify_owner,
    ACTION_NOTIFY_STAKEHOLDERS: _notify_stakeholders,
    ACTION_ESCALATE_TO_MANAGER: _escalate_to_manager,
}


# ═════════════════════════════════════════════════════════════════════════════
# SMS side-channel
# ═════════════════════════════════════════════════════════════════════════════


def send_partner_sms(task: Task, today: date | None = None) -> SmsSendResult | None:
    """Send the overdue SMS to the task's partner.

    Returns None when the step does not apply: no partner, no phone
    number, not overdue, or no usable credentials for the organization.
    """
    partner = task.partner
    if partner is None or not partner.sms_phone_number:
        return None
    project = task.project
    if project is None:
        return None
    overdue = days_overdue(task, today)
    if overdue <= 0:
        return None
    credentials = get_sms_credentials(project.organization_id)
    if credentials is None:
        return None

    result = sms_gateway.send_escalation(credentials, partner.sms_phone_number, task.title, overdue)
    if result.success:
        logger.info("SMS sent to partner %s for task %s", partner.name, task.id,
                    extra={"task_id": task.id, "organization_id": project.organization_id})
    return result


def _run_sms_side_channel(log: EscalationLog, rule: EscalationRule, task: Task, today: date) -> None:
    try:
        result = send_partner_sms(task, today)
        reason = None if result is None or result.success else result.error or "unknown error"
    except Exception as exc:
        logger.exception("SMS side-channel error rule=%s task=%s", rule.id, task.id,
                         extra={"rule_id": rule.id, "task_id": task.id})
        if isinstance(exc, SQLAlchemyError):
            db.session.rollback()
        reason = str(exc) or type(exc).__name__

    if reason is None:
        return
    log.add_failure(f"{SMS_FAILURE_PREFIX}{reason}")
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# Entry point
# ═════════════════════════════════════════════════════════════════════════════


def execute(rule: EscalationRule, task: Task, *, today: date | None = None) -> EscalationLog:
    """Fire ``rule`` for ``task`` once and return the finalized log.

    The returned log is always ``executed`` or ``failed``.

    Raises:
        ConflictError: the slot for (rule, task, today) is already claimed.
    """
    today = today or utc_today()
    log = escalation_guard.claim(rule, task, today)
    extra = {"rule_id": rule.id, "task_id": task.id, "project_id": task.project_id}

    handler = _ACTIONS.get(rule.action)
    try:
        if handler is None:
            raise EscalationActionError(f"Unsupported escalation action: {rule.action}")
        handler(rule, task, log)
        log.mark_executed()
        logger.info("Escalation executed: rule %s on task %s", rule.name, task.id, extra=extra)
    except Exception as exc:
        if isinstance(exc, SQLAlchemyError):
            db.session.rollback()
        log.mark_failed(str(exc) or type(exc).__name__)
        if isinstance(exc, EscalationActionError):
            logger.warning("Escalation failed: rule %s on task %s: %s", rule.name, task.id, exc, extra=extra)
        else:
            logger.exception("Escalation failed: rule %s on task %s", rule.name, task.id, extra=extra)
    db.session.commit()

    _run_sms_side_channel(log, rule, task, today)

    db.session.refresh(log)
    return log
