"""
Partner Hub — Escalation domain models.

Models:
    - EscalationRule: trigger condition + action, project-scoped or org-wide
    - EscalationLog: one row per (rule, task) firing attempt per UTC day
"""

from datetime import datetime, timezone

from partnerhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TRIGGER_DAYS_BEFORE_DUE = "days_before_due"
TRIGGER_DAYS_AFTER_DUE = "days_after_due"
TRIGGER_PROGRESS_BELOW = "progress_below"
TRIGGER_TYPES = {TRIGGER_DAYS_BEFORE_DUE, TRIGGER_DAYS_AFTER_DUE, TRIGGER_PROGRESS_BELOW}

ACTION_NOTIFY_OWNER = "notify_owner"
ACTION_NOTIFY_STAKEHOLDERS = "notify_stakeholders"
ACTION_ESCALATE_TO_MANAGER = "escalate_to_manager"
ESCALATION_ACTIONS = {ACTION_NOTIFY_OWNER, ACTION_NOTIFY_STAKEHOLDERS, ACTION_ESCALATE_TO_MANAGER}

RULE_STATUS_ACTIVE = "active"
RULE_STATUS_INACTIVE = "inactive"
RULE_STATUSES = {RULE_STATUS_ACTIVE, RULE_STATUS_INACTIVE}

LOG_STATUS_PENDING = "pending"
LOG_STATUS_EXECUTED = "executed"
LOG_STATUS_FAILED = "failed"
LOG_STATUSES = {LOG_STATUS_PENDING, LOG_STATUS_EXECUTED, LOG_STATUS_FAILED}


def _utcnow():
    return datetime.now(timezone.utc)


class EscalationRule(db.Model):
    """
    Configurable escalation rule.

    ``project_id`` NULL means the rule applies to every project of the
    owning organization. Rules are evaluated in ascending ``priority``.
    """

    __tablename__ = "escalation_rules"
    __table_args__ = (
        db.CheckConstraint("trigger_value >= 1", name="ck_escalation_rule_trigger_value"),
        db.Index("ix_escalation_rules_org_status", "organization_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
        comment="NULL = all projects in the organization",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    trigger_type = db.Column(db.String(30), nullable=False, default=TRIGGER_DAYS_AFTER_DUE,
                             comment="days_before_due | days_after_due | progress_below")
    trigger_value = db.Column(db.Integer, nullable=False, default=1,
                              comment="Days, or percentage threshold for progress_below")
    action = db.Column(db.String(30), nullable=False, default=ACTION_NOTIFY_OWNER,
                       comment="notify_owner | notify_stakeholders | escalate_to_manager")
    status = db.Column(db.String(20), nullable=False, default=RULE_STATUS_ACTIVE)
    priority = db.Column(db.Integer, nullable=False, default=1, comment="Lower runs first")

    notify_emails = db.Column(db.JSON, nullable=True)
    escalate_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    meta = db.Column("metadata", db.JSON, nullable=True)
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project")
    escalate_to_user = db.relationship("User", foreign_keys=[escalate_to_user_id])

    @property
    def is_active(self) -> bool:
        return self.status == RULE_STATUS_ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "name": self.name,
            "description": self.description,
            "trigger_type": self.trigger_type,
            "trigger_value": self.trigger_value,
            "action": self.action,
            "status": self.status,
            "priority": self.priority,
            "notify_emails": self.notify_emails or [],
            "escalate_to_user_id": self.escalate_to_user_id,
            "metadata": self.meta,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<EscalationRule {self.id}: {self.trigger_type}({self.trigger_value}) → {self.action}>"


class EscalationLog(db.Model):
    """
    Audit row for one firing attempt of a rule on a task.

    The unique (rule_id, task_id, fired_on) constraint makes the pending
    claim row the at-most-once-per-day lock: a second concurrent sweep
    fails its insert instead of double-firing.
    """

    __tablename__ = "escalation_logs"
    __table_args__ = (
        db.UniqueConstraint("rule_id", "task_id", "fired_on", name="uq_escalation_log_rule_task_day"),
        db.Index("ix_escalation_logs_rule_task_created", "rule_id", "task_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(
        db.Integer, db.ForeignKey("escalation_rules.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
        comment="Denormalized for organization-scoped statistics",
    )

    action = db.Column(db.String(30), nullable=False, comment="Copied from the rule at fire time")
    status = db.Column(db.String(20), nullable=False, default=LOG_STATUS_PENDING, index=True)
    action_detail = db.Column(db.Text, nullable=True)
    notified_users = db.Column(db.JSON, default=list, comment="Ordered user ids")
    escalated_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    failure_reasons = db.Column(db.JSON, default=list, comment="Ordered failure reasons")
    error_message = db.Column(db.Text, nullable=True, comment="'; '-joined failure_reasons")
    meta = db.Column("metadata", db.JSON, nullable=True)

    fired_on = db.Column(db.Date, nullable=False, comment="UTC day bucket of the firing")
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    rule = db.relationship("EscalationRule")
    task = db.relationship("Task")
    project = db.relationship("Project")
    escalated_to_user = db.relationship("User", foreign_keys=[escalated_to_user_id])

    def add_failure(self, reason: str) -> None:
        """Append a failure reason, keeping error_message in sync."""
        reasons = list(self.failure_reasons or [])
        reasons.append(reason)
        # Reassign so the JSON column is flagged dirty.
        self.failure_reasons = reasons
        self.error_message = "; ".join(reasons)

    def mark_executed(self) -> None:
        self.status = LOG_STATUS_EXECUTED
        self.executed_at = _utcnow()

    def mark_failed(self, reason: str) -> None:
        self.status = LOG_STATUS_FAILED
        self.add_failure(reason)

    def to_dict(self):
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule.name if self.rule else None,
            "task_id": self.task_id,
            "task_title": self.task.title if self.task else None,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "action": self.action,
            "status": self.status,
            "action_detail": self.action_detail,
            "notified_users": self.notified_users or [],
            "escalated_to_user_id": self.escalated_to_user_id,
            "failure_reasons": self.failure_reasons or [],
            "error_message": self.error_message,
            "metadata": self.meta,
            "fired_on": self.fired_on.isoformat() if self.fired_on else None,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EscalationLog {self.id}: rule={self.rule_id} task={self.task_id} [{self.status}]>"
