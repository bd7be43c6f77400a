"""
Tests — Scheduler service, tickers and escalation jobs.

Covers:
    1. Job registry + ScheduledJob records
    2. run_job success / failure bookkeeping
    3. JobTicker stop event (cancellation)
    4. start / shutdown lifecycle
    5. stale_escalation_cleanup
    6. Scheduler API
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from partnerhub.models import db
from partnerhub.models.escalation import EscalationLog
from partnerhub.models.scheduling import ScheduledJob
from partnerhub.services.scheduled_jobs import ABANDONED_REASON, stale_escalation_cleanup
from partnerhub.services.scheduler_service import (
    JobTicker,
    SchedulerService,
    _get_default_schedule,
    get_registered_jobs,
)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _job(name):
    db.session.expire_all()
    return ScheduledJob.query.filter_by(job_name=name).first()


# ═══════════════════════════════════════════════════════════════════════════
#  Registry + records
# ═══════════════════════════════════════════════════════════════════════════


class TestRegistry:
    def test_escalation_jobs_registered(self):
        jobs = get_registered_jobs()
        assert "escalation_sweep" in jobs
        assert "stale_escalation_cleanup" in jobs

    def test_ensure_jobs_registered_creates_records_once(self):
        created = SchedulerService.ensure_jobs_registered()
        assert len(created) == len(get_registered_jobs())
        assert SchedulerService.ensure_jobs_registered() == []

        sweep = _job("escalation_sweep")
        assert sweep.schedule_type == "interval"
        assert sweep.schedule_config["seconds"] == 3600

    def test_default_schedule_reads_config(self):
        assert _get_default_schedule("escalation_sweep", {"ESCALATION_SWEEP_INTERVAL_SECONDS": 60})["seconds"] == 60
        assert _get_default_schedule("mystery_job")["seconds"] == 3600


# ═══════════════════════════════════════════════════════════════════════════
#  run_job
# ═══════════════════════════════════════════════════════════════════════════


class TestRunJob:
    def test_unknown_job(self):
        assert SchedulerService.run_job("nope") == {"status": "error", "error": "Unknown job: nope"}

    def test_sweep_success_recorded(self):
        SchedulerService.ensure_jobs_registered()

        result = SchedulerService.run_job("escalation_sweep")

        assert result["status"] == "success"
        assert set(result["result"]) == {"tasks_checked", "escalations_triggered"}
        job = _job("escalation_sweep")
        assert job.run_count == 1
        assert job.last_run_status == "success"
        assert job.error_count == 0

    def test_failure_recorded_not_raised(self):
        SchedulerService.ensure_jobs_registered()
        with patch("partnerhub.services.scheduled_jobs.run_escalation_check",
                   side_effect=RuntimeError("database unreachable")):
            result = SchedulerService.run_job("escalation_sweep")

        assert result["status"] == "failed"
        assert result["error"] == "database unreachable"
        job = _job("escalation_sweep")
        assert job.error_count == 1
        assert job.last_error == "database unreachable"

    def test_disabled_job_skipped_by_ticker_entry_point(self):
        SchedulerService.ensure_jobs_registered()
        SchedulerService.toggle_job("escalation_sweep", False)

        with patch("partnerhub.services.scheduled_jobs.run_escalation_check") as sweep:
            result = SchedulerService.run_scheduled("escalation_sweep")

        assert result["status"] == "skipped"
        sweep.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
#  Ticker + lifecycle
# ═══════════════════════════════════════════════════════════════════════════


class TestJobTicker:
    def test_runs_until_stop_event_is_set(self):
        stop = threading.Event()
        runner = MagicMock(return_value={"status": "success"})
        ticker = JobTicker("escalation_sweep", 0.01, stop, runner=runner)

        ticker.start()
        assert _wait_for(lambda: runner.call_count >= 2)
        stop.set()
        ticker.join(timeout=2)

        assert not ticker.is_alive()
        runner.assert_called_with("escalation_sweep")
        calls = runner.call_count
        time.sleep(0.05)
        assert runner.call_count == calls

    def test_preset_event_never_runs(self):
        stop = threading.Event()
        stop.set()
        runner = MagicMock()
        ticker = JobTicker("escalation_sweep", 0.01, stop, runner=runner)

        ticker.start()
        ticker.join(timeout=2)

        runner.assert_not_called()
        assert ticker.ticks == 0

    def test_runner_exception_keeps_ticker_alive(self):
        stop = threading.Event()
        runner = MagicMock(side_effect=RuntimeError("boom"))
        ticker = JobTicker("escalation_sweep", 0.01, stop, runner=runner)

        ticker.start()
        assert _wait_for(lambda: runner.call_count >= 2)
        stop.set()
        ticker.join(timeout=2)
        assert not ticker.is_alive()


def test_start_and_shutdown():
    stop = threading.Event()
    tickers = SchedulerService.start(stop)
    try:
        assert {t.job_name for t in tickers} == set(get_registered_jobs())
        assert all(t.is_alive() for t in tickers)
    finally:
        SchedulerService.shutdown()

    assert stop.is_set()
    assert not any(t.is_alive() for t in tickers)


# ═══════════════════════════════════════════════════════════════════════════
#  Stale cleanup
# ═══════════════════════════════════════════════════════════════════════════


def test_stale_pending_logs_are_failed(app, make_rule, make_task, today):
    rule = make_rule()
    stale_task, fresh_task = make_task("stale", due_in=-3), make_task("fresh", due_in=-3)
    stale = EscalationLog(rule_id=rule.id, task_id=stale_task.id, project_id=stale_task.project_id,
                          action=rule.action, status="pending", fired_on=today,
                          notified_users=[], failure_reasons=[],
                          created_at=datetime.now(timezone.utc) - timedelta(hours=2))
    fresh = EscalationLog(rule_id=rule.id, task_id=fresh_task.id, project_id=fresh_task.project_id,
                          action=rule.action, status="pending", fired_on=today,
                          notified_users=[], failure_reasons=[])
    db.session.add_all([stale, fresh])
    db.session.commit()

    result = stale_escalation_cleanup(app)

    assert result["failed"] == 1
    assert stale.status == "failed"
    assert stale.failure_reasons == [ABANDONED_REASON]
    assert fresh.status == "pending"


# ═══════════════════════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════════════════════


class TestSchedulerApi:
    @pytest.fixture(autouse=True)
    def _jobs(self):
        SchedulerService.ensure_jobs_registered()

    def test_list(self, client):
        res = client.get("/api/v1/scheduler/jobs")
        assert res.status_code == 200
        names = {j["job_name"] for j in res.get_json()["jobs"]}
        assert {"escalation_sweep", "stale_escalation_cleanup"} <= names

    def test_run(self, client):
        res = client.post("/api/v1/scheduler/jobs/stale_escalation_cleanup/run")
        assert res.status_code == 200
        assert res.get_json()["status"] == "success"

    def test_run_unknown(self, client):
        assert client.post("/api/v1/scheduler/jobs/nope/run").status_code == 404

    def test_toggle(self, client):
        res = client.patch("/api/v1/scheduler/jobs/escalation_sweep", json={"is_enabled": False})
        assert res.status_code == 200
        assert res.get_json()["status"] == "paused"

    def test_toggle_requires_bool(self, client):
        res = client.patch("/api/v1/scheduler/jobs/escalation_sweep", json={"is_enabled": "no"})
        assert res.status_code == 400
