"""Tests for trigger evaluation (pure date / progress decisions)."""

from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from partnerhub.services.escalation_triggers import (
    days_overdue,
    days_until_due,
    rule_fires_for_task,
    should_fire,
)

TODAY = date(2026, 3, 16)


def _task(due_in=None, progress=0, due_date=None):
    if due_date is None and due_in is not None:
        due_date = date.fromordinal(TODAY.toordinal() + due_in)
    return SimpleNamespace(due_date=due_date, progress=progress)


def _rule(trigger_type, trigger_value):
    return SimpleNamespace(trigger_type=trigger_type, trigger_value=trigger_value)


class TestDaysUntilDue:
    def test_future_due_date_is_positive(self):
        assert days_until_due(date(2026, 3, 19), TODAY) == 3

    def test_overdue_is_negative(self):
        assert days_until_due(date(2026, 3, 11), TODAY) == -5

    def test_datetimes_compare_on_calendar_day(self):
        due = datetime(2026, 3, 17, 0, 30, tzinfo=timezone.utc)
        now = datetime(2026, 3, 16, 23, 59, tzinfo=timezone.utc)
        assert days_until_due(due, now) == 1


class TestDaysBeforeDue:
    @pytest.mark.parametrize("days_diff,expected", [
        (3, True), (0, True), (1, True), (4, False), (-1, False),
    ])
    def test_window(self, days_diff, expected):
        assert should_fire("days_before_due", 3, days_diff, 50) is expected


class TestDaysAfterDue:
    @pytest.mark.parametrize("days_diff,expected", [
        (-5, True), (-3, True), (-2, False), (0, False), (2, False),
    ])
    def test_threshold(self, days_diff, expected):
        assert should_fire("days_after_due", 3, days_diff, 50) is expected


class TestProgressBelow:
    def test_fires_when_behind_and_close_to_due(self):
        assert should_fire("progress_below", 50, 2, 30) is True

    def test_fires_at_horizon_boundary(self):
        assert should_fire("progress_below", 50, 3, 30) is True

    def test_silent_when_due_date_is_far(self):
        assert should_fire("progress_below", 50, 10, 10) is False

    def test_silent_when_progress_meets_threshold(self):
        assert should_fire("progress_below", 50, 1, 50) is False

    def test_fires_when_overdue(self):
        assert should_fire("progress_below", 50, -7, 0) is True

    def test_missing_progress_counts_as_zero(self):
        assert should_fire("progress_below", 10, 0, None) is True


def test_unknown_trigger_type_never_fires():
    assert should_fire("weather_is_bad", 1, -10, 0) is False


class TestRuleFiresForTask:
    def test_task_without_due_date_never_fires(self):
        for rule in (_rule("days_before_due", 100), _rule("days_after_due", 1), _rule("progress_below", 100)):
            assert rule_fires_for_task(rule, _task(), TODAY) is False

    def test_overdue_task_fires_after_due_rule(self):
        assert rule_fires_for_task(_rule("days_after_due", 1), _task(due_in=-3), TODAY) is True

    def test_due_soon_task_with_progress(self):
        assert rule_fires_for_task(_rule("progress_below", 50), _task(due_in=2, progress=30), TODAY) is True


class TestDaysOverdue:
    def test_overdue(self):
        assert days_overdue(_task(due_in=-4), TODAY) == 4

    def test_not_overdue_is_zero(self):
        assert days_overdue(_task(due_in=2), TODAY) == 0

    def test_undated_is_zero(self):
        assert days_overdue(_task(), TODAY) == 0
