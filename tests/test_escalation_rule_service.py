"""Tests for the escalation rule store.

Coverage:
  1. create_rule validation (choices, trigger_value bounds, scope checks)
  2. update_rule partial updates + immutability once a rule has fired
  3. delete_rule keeps logs with rule_id NULL
  4. list_rules filters / sorting / pagination
  5. get_active_rules_for_task scoping and priority order
  6. seed_default_rules idempotence
"""

import pytest

import partnerhub.services.escalation_rule_service as svc
from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.models import db
from partnerhub.models.escalation import EscalationLog, EscalationRule
from partnerhub.models.project import Project

from conftest import make_org, make_user


def _payload(**overrides):
    data = {
        "name": "Overdue ping",
        "trigger_type": "days_after_due",
        "trigger_value": 2,
        "action": "notify_owner",
    }
    data.update(overrides)
    return data


# ═══════════════════════════════════════════════════════════════════════════
#  create_rule
# ═══════════════════════════════════════════════════════════════════════════


class TestCreateRule:
    def test_creates_org_wide_rule_with_defaults(self, org):
        rule = svc.create_rule(org.id, _payload())
        assert rule.id is not None
        assert rule.project_id is None
        assert rule.status == "active"
        assert rule.priority == 1

    def test_project_scoped_rule(self, org, project):
        rule = svc.create_rule(org.id, _payload(project_id=project.id, priority=4))
        assert rule.project_id == project.id
        assert rule.priority == 4

    def test_metadata_round_trips_in_to_dict(self, org):
        rule = svc.create_rule(org.id, _payload(metadata={"channel": "ops"}))
        assert rule.to_dict()["metadata"] == {"channel": "ops"}

    @pytest.mark.parametrize("field,value", [
        ("trigger_type", "hours_after_due"),
        ("action", "call_the_ceo"),
        ("status", "archived"),
    ])
    def test_rejects_unknown_choices(self, org, field, value):
        with pytest.raises(ValidationError) as exc:
            svc.create_rule(org.id, _payload(**{field: value}))
        assert field in exc.value.details

    @pytest.mark.parametrize("value", [0, -1, "soon", None])
    def test_trigger_value_must_be_positive_int(self, org, value):
        with pytest.raises(ValidationError):
            svc.create_rule(org.id, _payload(trigger_value=value))

    @pytest.mark.parametrize("field,value", [("trigger_value", 2.9), ("priority", 1.5)])
    def test_fractional_numbers_rejected(self, org, field, value):
        with pytest.raises(ValidationError) as exc:
            svc.create_rule(org.id, _payload(**{field: value}))
        assert field in exc.value.details

    def test_whole_float_accepted(self, org):
        assert svc.create_rule(org.id, _payload(trigger_value=3.0)).trigger_value == 3

    def test_progress_threshold_capped_at_100(self, org):
        with pytest.raises(ValidationError):
            svc.create_rule(org.id, _payload(trigger_type="progress_below", trigger_value=101))
        rule = svc.create_rule(org.id, _payload(trigger_type="progress_below", trigger_value=100))
        assert rule.trigger_value == 100

    def test_name_required(self, org):
        with pytest.raises(ValidationError):
            svc.create_rule(org.id, _payload(name="   "))

    def test_invalid_notify_emails(self, org):
        with pytest.raises(ValidationError):
            svc.create_rule(org.id, _payload(notify_emails=["not-an-email"]))

    def test_unknown_organization(self):
        with pytest.raises(NotFoundError):
            svc.create_rule(9999, _payload())

    def test_project_of_other_organization_is_not_found(self, org, project):
        other = make_org("Other", "other")
        with pytest.raises(NotFoundError):
            svc.create_rule(other.id, _payload(project_id=project.id))

    def test_escalation_user_must_belong_to_organization(self, org):
        other = make_org("Other", "other")
        stranger = make_user(other, "x@other.test")
        with pytest.raises(NotFoundError):
            svc.create_rule(org.id, _payload(escalate_to_user_id=stranger.id))

    def test_malformed_project_id(self, org):
        with pytest.raises(ValidationError):
            svc.create_rule(org.id, _payload(project_id="abc"))


# ═══════════════════════════════════════════════════════════════════════════
#  get / update / delete
# ═══════════════════════════════════════════════════════════════════════════


class TestUpdateRule:
    def test_partial_update(self, org):
        rule = svc.create_rule(org.id, _payload())
        updated = svc.update_rule(rule.id, {"name": "Renamed", "status": "inactive"})
        assert updated.name == "Renamed"
        assert updated.status == "inactive"
        assert updated.trigger_type == "days_after_due"

    def test_unknown_field_rejected(self, org):
        rule = svc.create_rule(org.id, _payload())
        with pytest.raises(ValidationError):
            svc.update_rule(rule.id, {"fired_count": 3})

    def test_out_of_scope_rule_is_not_found(self, org):
        rule = svc.create_rule(org.id, _payload())
        other = make_org("Other", "other")
        with pytest.raises(NotFoundError):
            svc.update_rule(rule.id, {"name": "x"}, organization_id=other.id)

    def test_trigger_type_frozen_after_firing(self, org, make_task, today):
        rule = svc.create_rule(org.id, _payload())
        task = make_task(due_in=-3)
        db.session.add(EscalationLog(rule_id=rule.id, task_id=task.id, project_id=task.project_id,
                                     action=rule.action, status="executed", fired_on=today))
        db.session.commit()

        with pytest.raises(ValidationError) as exc:
            svc.update_rule(rule.id, {"trigger_type": "days_before_due"})
        assert "trigger_type" in exc.value.details

        # Cosmetic fields still editable
        assert svc.update_rule(rule.id, {"trigger_value": 5}).trigger_value == 5

    def test_changing_trigger_type_revalidates_value(self, org):
        rule = svc.create_rule(org.id, _payload(trigger_value=150))
        with pytest.raises(ValidationError):
            svc.update_rule(rule.id, {"trigger_type": "progress_below"})


class TestDeleteRule:
    def test_logs_survive_with_null_rule(self, org, make_task, today):
        rule = svc.create_rule(org.id, _payload())
        task = make_task(due_in=-3)
        log = EscalationLog(rule_id=rule.id, task_id=task.id, project_id=task.project_id,
                            action=rule.action, status="executed", fired_on=today)
        db.session.add(log)
        db.session.commit()
        log_id = log.id

        svc.delete_rule(rule.id)

        assert db.session.get(EscalationRule, rule.id) is None
        assert db.session.get(EscalationLog, log_id).rule_id is None

    def test_missing_rule(self):
        with pytest.raises(NotFoundError):
            svc.delete_rule(424242)


# ═══════════════════════════════════════════════════════════════════════════
#  Queries
# ═══════════════════════════════════════════════════════════════════════════


class TestListRules:
    def test_filters_and_sorting(self, org, project):
        svc.create_rule(org.id, _payload(name="B", priority=2))
        svc.create_rule(org.id, _payload(name="A", priority=3, action="escalate_to_manager"))
        svc.create_rule(org.id, _payload(name="C", priority=1, project_id=project.id))

        result = svc.list_rules(org.id)
        assert result["total"] == 3
        assert [r["name"] for r in result["items"]] == ["C", "B", "A"]

        by_action = svc.list_rules(org.id, action="escalate_to_manager")
        assert [r["name"] for r in by_action["items"]] == ["A"]

        by_name = svc.list_rules(org.id, sort_by="name", sort_order="desc")
        assert [r["name"] for r in by_name["items"]] == ["C", "B", "A"]

    def test_pagination(self, org):
        for i in range(5):
            svc.create_rule(org.id, _payload(name=f"R{i}", priority=i))
        page = svc.list_rules(org.id, page=2, per_page=2)
        assert page["total"] == 5
        assert [r["name"] for r in page["items"]] == ["R2", "R3"]

    def test_pagination_reports_clamped_values(self, org):
        svc.create_rule(org.id, _payload())
        page = svc.list_rules(org.id, page=-3, per_page=500)
        assert (page["page"], page["per_page"]) == (1, 100)
        assert len(page["items"]) == 1

    def test_bad_sort_column(self, org):
        with pytest.raises(ValidationError):
            svc.list_rules(org.id, sort_by="password")

    def test_organization_isolation(self, org):
        other = make_org("Other", "other")
        svc.create_rule(org.id, _payload())
        assert svc.list_rules(other.id)["total"] == 0


class TestActiveRulesForTask:
    def test_project_and_org_wide_rules_in_priority_order(self, org, project, make_rule):
        other_project = Project(organization_id=org.id, name="Other")
        db.session.add(other_project)
        db.session.commit()

        late = make_rule(priority=5, name="late")
        scoped = make_rule(priority=1, project_id=project.id, name="scoped")
        make_rule(priority=0, project_id=other_project.id, name="elsewhere")
        make_rule(priority=0, status="inactive", name="off")
        tie_a = make_rule(priority=3, name="tie-a")
        tie_b = make_rule(priority=3, name="tie-b")

        rules = svc.get_active_rules_for_task(project.id, org.id)
        assert [r.id for r in rules] == [scoped.id, tie_a.id, tie_b.id, late.id]

    def test_task_without_project_sees_only_org_wide(self, org, project, make_rule):
        make_rule(project_id=project.id, name="scoped")
        wide = make_rule(name="wide")
        assert [r.id for r in svc.get_active_rules_for_task(None, org.id)] == [wide.id]


class TestSeedDefaultRules:
    def test_seed_is_idempotent(self, org):
        created = svc.seed_default_rules(org.id)
        assert len(created) == len(svc.DEFAULT_RULES) == 7
        assert svc.seed_default_rules(org.id) == []
        assert EscalationRule.query.filter_by(organization_id=org.id).count() == 7

    def test_seed_fills_gaps(self, org):
        svc.seed_default_rules(org.id)
        victim = EscalationRule.query.filter_by(name="Due tomorrow: reminder").one()
        svc.delete_rule(victim.id)
        created = svc.seed_default_rules(org.id)
        assert [r.name for r in created] == ["Due tomorrow: reminder"]

    def test_unknown_organization(self):
        with pytest.raises(NotFoundError):
            svc.seed_default_rules(777)
