"""
Escalation rule store — CRUD and query layer over EscalationRule.

Rules are owned by one organization and are either project-scoped or
apply to every project of that organization (``project_id`` NULL).
Active rules are handed to the orchestrator in ascending priority, ties
broken by id, so the order of produced logs is deterministic.

Service layer owns validation and commits. Callers receive serialized
dicts (blueprints) or ORM instances (orchestrator).
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import or_

from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.models import db
from partnerhub.models.escalation import (
    ACTION_ESCALATE_TO_MANAGER,
    ACTION_NOTIFY_OWNER,
    ACTION_NOTIFY_STAKEHOLDERS,
    ESCALATION_ACTIONS,
    RULE_STATUS_ACTIVE,
    RULE_STATUSES,
    TRIGGER_DAYS_AFTER_DUE,
    TRIGGER_DAYS_BEFORE_DUE,
    TRIGGER_PROGRESS_BELOW,
    TRIGGER_TYPES,
    EscalationLog,
    EscalationRule,
)
from partnerhub.models.organization import Organization, User
from partnerhub.models.project import Project
from partnerhub.utils.helpers import clamp_paging, paginate_query, parse_optional_int, require_int

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Fields that stay editable once a rule has produced a log
_MUTABLE_AFTER_FIRING = {
    "name", "description", "status", "trigger_value", "priority",
    "notify_emails", "escalate_to_user_id", "metadata",
}
_UPDATABLE_FIELDS = _MUTABLE_AFTER_FIRING | {"trigger_type", "action", "project_id"}

_SORTABLE = {
    "priority": EscalationRule.priority,
    "name": EscalationRule.name,
    "created_at": EscalationRule.created_at,
    "updated_at": EscalationRule.updated_at,
    "trigger_type": EscalationRule.trigger_type,
}

DEFAULT_RULES = [
    {
        "name": "1 day overdue: notify assignee",
        "description": "Notify the task assignee once the task is 1 day past due.",
        "trigger_type": TRIGGER_DAYS_AFTER_DUE, "trigger_value": 1,
        "action": ACTION_NOTIFY_OWNER, "priority": 1,
    },
    {
        "name": "3 days overdue: notify stakeholders",
        "description": "Notify project owner and manager once the task is 3 days past due.",
        "trigger_type": TRIGGER_DAYS_AFTER_DUE, "trigger_value": 3,
        "action": ACTION_NOTIFY_STAKEHOLDERS, "priority": 2,
    },
    {
        "name": "7 days overdue: notify stakeholders",
        "description": "Notify project owner and manager again once the task is 7 days past due.",
        "trigger_type": TRIGGER_DAYS_AFTER_DUE, "trigger_value": 7,
        "action": ACTION_NOTIFY_STAKEHOLDERS, "priority": 3,
    },
    {
        "name": "14 days overdue: escalate to manager",
        "description": "Escalate to the project manager once the task is 14 days past due.",
        "trigger_type": TRIGGER_DAYS_AFTER_DUE, "trigger_value": 14,
        "action": ACTION_ESCALATE_TO_MANAGER, "priority": 4,
    },
    {
        "name": "Due in 3 days: heads-up",
        "description": "Remind the assignee three days before the due date.",
        "trigger_type": TRIGGER_DAYS_BEFORE_DUE, "trigger_value": 3,
        "action": ACTION_NOTIFY_OWNER, "priority": 0,
    },
    {
        "name": "Due tomorrow: reminder",
        "description": "Remind the assignee the day before the due date.",
        "trigger_type": TRIGGER_DAYS_BEFORE_DUE, "trigger_value": 1,
        "action": ACTION_NOTIFY_OWNER, "priority": 0,
    },
    {
        "name": "Progress below 50%",
        "description": "Alert stakeholders when progress is under 50% close to the due date.",
        "trigger_type": TRIGGER_PROGRESS_BELOW, "trigger_value": 50,
        "action": ACTION_NOTIFY_STAKEHOLDERS, "priority": 5,
    },
]


# ═════════════════════════════════════════════════════════════════════════════
# Validation helpers
# ═════════════════════════════════════════════════════════════════════════════


def _validate_choice(data: dict, field: str, choices: set[str]) -> str:
    value = data.get(field)
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(choices))}",
            details={field: f"invalid value {value!r}"},
        )
    return value


def _validate_trigger_value(trigger_type: str, data: dict) -> int:
    maximum = 100 if trigger_type == TRIGGER_PROGRESS_BELOW else None
    return require_int(data, "trigger_value", minimum=1, maximum=maximum)


def _validate_name(data: dict) -> str:
    name = (data.get("name") or "").strip() if isinstance(data.get("name"), str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 200:
        raise ValidationError("name must be ≤ 200 characters", details={"name": "max 200"})
    return name


def _validate_emails(value) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(e, str) for e in value):
        raise ValidationError("notify_emails must be a list of strings",
                              details={"notify_emails": "list of e-mail addresses"})
    bad = [e for e in value if not _EMAIL_RE.match(e)]
    if bad:
        raise ValidationError(f"Invalid e-mail address(es): {', '.join(bad)}",
                              details={"notify_emails": bad})
    return value


def _validate_metadata(value) -> dict | None:
    if value is not None and not isinstance(value, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "object"})
    return value


def _coerce_id(value, field: str) -> int | None:
    try:
        return parse_optional_int(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "must be an integer"}) from exc


def _resolve_project(project_id, organization_id: int) -> int | None:
    project_id = _coerce_id(project_id, "project_id")
    if project_id is None:
        return None
    project = db.session.get(Project, project_id)
    if project is None or project.organization_id != organization_id:
        raise NotFoundError(resource="Project", resource_id=project_id, organization_id=organization_id)
    return project.id


def _resolve_user(user_id, organization_id: int) -> int | None:
    user_id = _coerce_id(user_id, "escalate_to_user_id")
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or user.organization_id != organization_id:
        raise NotFoundError(resource="User", resource_id=user_id, organization_id=organization_id)
    return user.id


def _has_logs(rule_id: int) -> bool:
    return db.session.query(EscalationLog.id).filter_by(rule_id=rule_id).first() is not None


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_rule(organization_id: int, data: dict, created_by_id: int | None = None) -> EscalationRule:
    """Validate and persist a new rule for an organization.

    Raises:
        NotFoundError: organization, project or escalation user not in scope.
        ValidationError: missing/invalid fields.
    """
    if db.session.get(Organization, organization_id) is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)

    name = _validate_name(data)
    trigger_type = _validate_choice(data, "trigger_type", TRIGGER_TYPES)
    trigger_value = _validate_trigger_value(trigger_type, data)
    action = _validate_choice(data, "action", ESCALATION_ACTIONS)
    status = _validate_choice({"status": data.get("status") or RULE_STATUS_ACTIVE}, "status", RULE_STATUSES)
    priority = require_int(data, "priority", minimum=0) if data.get("priority") is not None else 1

    rule = EscalationRule(
        organization_id=organization_id,
        project_id=_resolve_project(data.get("project_id"), organization_id),
        name=name,
        description=data.get("description"),
        trigger_type=trigger_type,
        trigger_value=trigger_value,
        action=action,
        status=status,
        priority=priority,
        notify_emails=_validate_emails(data.get("notify_emails")),
        escalate_to_user_id=_resolve_user(data.get("escalate_to_user_id"), organization_id),
        meta=_validate_metadata(data.get("metadata")),
        created_by_id=created_by_id,
    )
    db.session.add(rule)
    db.session.commit()
    logger.info("Escalation rule created: %s (%s)", rule.name, rule.id,
                extra={"organization_id": organization_id, "rule_id": rule.id})
    return rule


def get_rule(rule_id: int, organization_id: int | None = None) -> EscalationRule:
    """Return the rule, or raise NotFoundError if absent or out of scope."""
    rule = db.session.get(EscalationRule, rule_id)
    if rule is None or (organization_id is not None and rule.organization_id != organization_id):
        raise NotFoundError(resource="EscalationRule", resource_id=rule_id, organization_id=organization_id)
    return rule


def update_rule(rule_id: int, data: dict, organization_id: int | None = None) -> EscalationRule:
    """Partially update a rule.

    Once the rule has produced a log, ``trigger_type``, ``action`` and
    ``project_id`` are frozen so historical logs keep their meaning.
    """
    rule = get_rule(rule_id, organization_id)

    unknown = set(data) - _UPDATABLE_FIELDS - {"organization_id"}
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}",
                              details={f: "not updatable" for f in sorted(unknown)})

    frozen = [
        f for f in ("trigger_type", "action", "project_id")
        if f in data and data[f] != getattr(rule, f)
    ]
    if frozen and _has_logs(rule.id):
        raise ValidationError(
            "Rule has escalation history; trigger_type, action and project_id can no longer change",
            details={f: "immutable after firing" for f in frozen},
        )

    if "name" in data:
        rule.name = _validate_name(data)
    if "description" in data:
        rule.description = data["description"]
    if "trigger_type" in data:
        rule.trigger_type = _validate_choice(data, "trigger_type", TRIGGER_TYPES)
    if "trigger_value" in data or "trigger_type" in data:
        merged = {"trigger_value": data.get("trigger_value", rule.trigger_value)}
        rule.trigger_value = _validate_trigger_value(rule.trigger_type, merged)
    if "action" in data:
        rule.action = _validate_choice(data, "action", ESCALATION_ACTIONS)
    if "status" in data:
        rule.status = _validate_choice(data, "status", RULE_STATUSES)
    if "priority" in data:
        rule.priority = require_int(data, "priority", minimum=0)
    if "project_id" in data:
        rule.project_id = _resolve_project(data["project_id"], rule.organization_id)
    if "notify_emails" in data:
        rule.notify_emails = _validate_emails(data["notify_emails"])
    if "escalate_to_user_id" in data:
        rule.escalate_to_user_id = _resolve_user(data["escalate_to_user_id"], rule.organization_id)
    if "metadata" in data:
        rule.meta = _validate_metadata(data["metadata"])

    db.session.commit()
    logger.info("Escalation rule updated: %s (%s)", rule.name, rule.id, extra={"rule_id": rule.id})
    return rule


def delete_rule(rule_id: int, organization_id: int | None = None) -> None:
    """Delete a rule. Its logs survive with ``rule_id`` set to NULL."""
    rule = get_rule(rule_id, organization_id)
    name = rule.name
    # ORM-side null-out; the FK's ON DELETE SET NULL covers raw deletes
    EscalationLog.query.filter_by(rule_id=rule.id).update(
        {"rule_id": None}, synchronize_session="fetch",
    )
    db.session.delete(rule)
    db.session.commit()
    logger.info("Escalation rule deleted: %s (%s)", name, rule_id, extra={"rule_id": rule_id})


def list_rules(
    organization_id: int | None = None,
    *,
    project_id: int | None = None,
    trigger_type: str | None = None,
    action: str | None = None,
    status: str | None = None,
    page: int = 1,
    per_page: int = 20,
    sort_by: str = "priority",
    sort_order: str = "asc",
) -> dict:
    """Paginated rule listing.

    ``project_id`` matches rules scoped to that project plus the
    organization-wide ones, mirroring what the sweep would apply.
    """
    q = EscalationRule.query
    if organization_id is not None:
        q = q.filter(EscalationRule.organization_id == organization_id)
    if project_id is not None:
        q = q.filter(or_(EscalationRule.project_id == project_id, EscalationRule.project_id.is_(None)))
    if trigger_type:
        q = q.filter(EscalationRule.trigger_type == trigger_type)
    if action:
        q = q.filter(EscalationRule.action == action)
    if status:
        q = q.filter(EscalationRule.status == status)

    column = _SORTABLE.get(sort_by)
    if column is None:
        raise ValidationError(f"Cannot sort by {sort_by}",
                              details={"sort_by": f"one of {', '.join(sorted(_SORTABLE))}"})
    ordered = column.desc() if str(sort_order).lower() == "desc" else column.asc()
    q = q.order_by(ordered, EscalationRule.id.asc())

    page, per_page = clamp_paging(page, per_page)
    items, total = paginate_query(q, page, per_page)
    return {
        "items": [r.to_dict() for r in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def get_active_rules_for_task(project_id: int | None, organization_id: int | None) -> list[EscalationRule]:
    """Active rules applicable to a task of ``project_id``, in evaluation order."""
    q = EscalationRule.query.filter(EscalationRule.status == RULE_STATUS_ACTIVE)
    if organization_id is not None:
        q = q.filter(EscalationRule.organization_id == organization_id)
    if project_id is not None:
        q = q.filter(or_(EscalationRule.project_id == project_id, EscalationRule.project_id.is_(None)))
    else:
        q = q.filter(EscalationRule.project_id.is_(None))
    return q.order_by(EscalationRule.priority.asc(), EscalationRule.id.asc()).all()


def seed_default_rules(organization_id: int, created_by_id: int | None = None) -> list[EscalationRule]:
    """Create the default organization-wide rule set, skipping names that exist.

    Returns:
        The newly created rules (empty when everything was already seeded).
    """
    if db.session.get(Organization, organization_id) is None:
        raise NotFoundError(resource="Organization", resource_id=organization_id)

    existing = {
        name for (name,) in db.session.query(EscalationRule.name)
        .filter(EscalationRule.organization_id == organization_id).all()
    }
    created = []
    for defaults in DEFAULT_RULES:
        if defaults["name"] in existing:
            continue
        rule = EscalationRule(
            organization_id=organization_id,
            project_id=None,
            status=RULE_STATUS_ACTIVE,
            created_by_id=created_by_id,
            **defaults,
        )
        db.session.add(rule)
        created.append(rule)
    if created:
        db.session.commit()
        logger.info("Seeded %d default escalation rules for organization=%s",
                    len(created), organization_id, extra={"organization_id": organization_id})
    return created
