"""Escalation engine blueprint.

Endpoint groups:
  Rules         GET/POST          /api/v1/escalations/rules
                GET/PATCH/DELETE  /api/v1/escalations/rules/<id>
                POST              /api/v1/escalations/rules/seed
  Logs          GET               /api/v1/escalations/logs
                GET               /api/v1/escalations/logs/project/<project_id>
  Sweep         POST              /api/v1/escalations/check
  Statistics    GET               /api/v1/escalations/statistics

organization_id is resolved from query param or JSON body.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, abort, jsonify, request
from werkzeug.exceptions import HTTPException

import partnerhub.services.escalation_rule_service as rules_svc
from partnerhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from partnerhub.services import escalation_stats
from partnerhub.services.escalation_service import run_escalation_check
from partnerhub.utils.helpers import parse_date, parse_optional_int

logger = logging.getLogger(__name__)

escalation_bp = Blueprint("escalation", __name__, url_prefix="/api/v1")

# ── Rate limiting ─────────────────────────────────────────────────────────
from partnerhub import limiter  # noqa: E402

_check_limit = limiter.shared_limit("10/minute", scope="escalation_check")


# ── Request helpers ───────────────────────────────────────────────────────────


def _int_arg(name: str, source: dict | None = None) -> int | None:
    """Optional integer from query string (or ``source``); 400 when malformed."""
    raw = (source if source is not None else request.args).get(name)
    try:
        return parse_optional_int(raw, name)
    except ValueError as exc:
        abort(400, description=str(exc))


def _organization_id() -> int | None:
    """Extract organization_id from query string or JSON body."""
    org_id = _int_arg("organization_id")
    if org_id is not None:
        return org_id
    return _int_arg("organization_id", _json_body())


def _organization_required() -> int:
    org_id = _organization_id()
    if org_id is None:
        abort(400, description="organization_id is required")
    return org_id


def _json_body() -> dict:
    """JSON object body, ``{}`` when empty; 400 when present but unparseable."""
    if not request.get_data(cache=True):
        return {}
    data = request.get_json(silent=True)
    if data is None:
        abort(400, description="Malformed JSON body")
    if not isinstance(data, dict):
        abort(400, description="JSON object body required")
    return data


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    value = parse_date(raw)
    if value is None:
        abort(400, description=f"{name} must be a date (YYYY-MM-DD)")
    return value


def _paging() -> tuple[int, int]:
    return _int_arg("page") or 1, _int_arg("per_page") or 20


# ── Error handlers ────────────────────────────────────────────────────────────


@escalation_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({"error": f"{error.resource} not found"}), 404


@escalation_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": str(error), "details": error.details}), 422


@escalation_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return jsonify({"error": str(error)}), 409


@escalation_bp.errorhandler(HTTPException)
def _handle_http(error: HTTPException):
    return jsonify({"error": error.description}), error.code


@escalation_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in escalation_bp endpoint=%s", request.endpoint)
    return jsonify({"error": "Internal server error"}), 500


# ═════════════════════════════════════════════════════════════════════════
# Rules  (/api/v1/escalations/rules)
# ═════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/escalations/rules", methods=["GET"])
def list_rules():
    """Paginated rule listing.

    Query params: organization_id, project_id, trigger_type, action, status,
                  page, per_page, sort_by, sort_order
    """
    page, per_page = _paging()
    result = rules_svc.list_rules(
        _organization_id(),
        project_id=_int_arg("project_id"),
        trigger_type=request.args.get("trigger_type"),
        action=request.args.get("action"),
        status=request.args.get("status"),
        page=page,
        per_page=per_page,
        sort_by=request.args.get("sort_by", "priority"),
        sort_order=request.args.get("sort_order", "asc"),
    )
    return jsonify(result), 200


@escalation_bp.route("/escalations/rules", methods=["POST"])
def create_rule():
    """Create a rule.

    Body: {
        organization_id, name, trigger_type, trigger_value, action,
        project_id?, description?, status?, priority?, notify_emails?,
        escalate_to_user_id?, metadata?, created_by_id?
    }
    Returns: created rule (201).
    """
    data = _json_body()
    org_id = _organization_required()
    created_by = _int_arg("created_by_id", data)
    rule = rules_svc.create_rule(org_id, data, created_by_id=created_by)
    return jsonify(rule.to_dict()), 201


@escalation_bp.route("/escalations/rules/seed", methods=["POST"])
def seed_rules():
    """Create the default rule set for an organization (idempotent)."""
    org_id = _organization_required()
    created = rules_svc.seed_default_rules(org_id)
    return jsonify({"created": len(created), "items": [r.to_dict() for r in created]}), 201


@escalation_bp.route("/escalations/rules/<int:rule_id>", methods=["GET"])
def get_rule(rule_id: int):
    rule = rules_svc.get_rule(rule_id, _organization_id())
    return jsonify(rule.to_dict()), 200


@escalation_bp.route("/escalations/rules/<int:rule_id>", methods=["PATCH"])
def update_rule(rule_id: int):
    data = _json_body()
    org_id = _organization_id()
    rule = rules_svc.update_rule(rule_id, data, org_id)
    return jsonify(rule.to_dict()), 200


@escalation_bp.route("/escalations/rules/<int:rule_id>", methods=["DELETE"])
def delete_rule(rule_id: int):
    rules_svc.delete_rule(rule_id, _organization_id())
    return jsonify({"deleted": True, "id": rule_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Logs & statistics
# ═════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/escalations/logs", methods=["GET"])
def list_logs():
    """Paginated escalation logs.

    Query params: organization_id, project_id, task_id, rule_id, action,
                  status, date_from, date_to, page, per_page, sort_by, sort_order
    """
    page, per_page = _paging()
    result = escalation_stats.list_logs(
        _organization_id(),
        project_id=_int_arg("project_id"),
        task_id=_int_arg("task_id"),
        rule_id=_int_arg("rule_id"),
        action=request.args.get("action"),
        status=request.args.get("status"),
        date_from=_date_arg("date_from"),
        date_to=_date_arg("date_to"),
        page=page,
        per_page=per_page,
        sort_by=request.args.get("sort_by", "created_at"),
        sort_order=request.args.get("sort_order", "desc"),
    )
    return jsonify(result), 200


@escalation_bp.route("/escalations/logs/project/<int:project_id>", methods=["GET"])
def project_history(project_id: int):
    items = escalation_stats.get_escalation_history(project_id, _organization_id())
    return jsonify({"items": items, "total": len(items)}), 200


@escalation_bp.route("/escalations/statistics", methods=["GET"])
def statistics():
    return jsonify(escalation_stats.get_statistics(_organization_id())), 200


# ═════════════════════════════════════════════════════════════════════════
# Manual sweep
# ═════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/escalations/check", methods=["POST"])
@_check_limit
def check():
    """Run the escalation check on demand.

    Body: {project_id?, task_id?, organization_id?}
    Returns: {tasks_checked, escalations_triggered, logs}
    """
    data = _json_body()
    summary = run_escalation_check(
        project_id=_int_arg("project_id", data),
        task_id=_int_arg("task_id", data),
        organization_id=_organization_id(),
    )
    return jsonify(summary), 200
