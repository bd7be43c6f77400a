"""
Partner Hub — Scheduler Service.

Lightweight thread-based background scheduler for the escalation jobs.

Architecture:
    - register_job: decorator that adds a job function to the registry
    - SchedulerService: job persistence (ScheduledJob rows) and execution
    - JobTicker: one daemon thread per interval job; waits on a shared
      ``threading.Event`` between runs, so setting the event stops every
      ticker at its next tick boundary. A run in progress is never
      interrupted.

Jobs can also be triggered manually via the scheduler API.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from flask import Flask

from partnerhub.models import db
from partnerhub.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("escalation_sweep")
        def escalation_sweep(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


# ═══════════════════════════════════════════════════════════════════════════
#  Ticker
# ═══════════════════════════════════════════════════════════════════════════


class JobTicker(threading.Thread):
    """Runs one job every ``interval_seconds`` until ``stop_event`` is set."""

    def __init__(self, job_name: str, interval_seconds: float, stop_event: threading.Event,
                 runner: Callable[[str], dict] | None = None):
        super().__init__(name=f"job-ticker-{job_name}", daemon=True)
        self.job_name = job_name
        self.interval_seconds = interval_seconds
        self.stop_event = stop_event
        self._runner = runner or SchedulerService.run_scheduled
        self.ticks = 0

    def run(self) -> None:
        logger.info("Ticker started for %s (every %ss)", self.job_name, self.interval_seconds,
                    extra={"job_name": self.job_name})
        # wait() returns True once the event is set
        while not self.stop_event.wait(self.interval_seconds):
            self.ticks += 1
            try:
                self._runner(self.job_name)
            except Exception:
                logger.exception("Ticker run failed for %s", self.job_name,
                                 extra={"job_name": self.job_name})
        logger.info("Ticker stopped for %s", self.job_name, extra={"job_name": self.job_name})


# ═══════════════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════════════


class SchedulerService:
    """
    Manages job registration, persistence, execution and the ticker threads.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _stop_event: threading.Event | None = None
    _tickers: list[JobTicker] = []

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="interval",
                        schedule_config=_get_default_schedule(name, cls._app.config),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc) or type(exc).__name__
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name,
                             extra={"job_name": job_name})

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def is_job_enabled(cls, job_name: str) -> bool:
        """Jobs without a DB record count as enabled."""
        if not cls._app:
            return False
        with cls._app.app_context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            return job_record is None or bool(job_record.is_enabled)

    @classmethod
    def run_scheduled(cls, job_name: str) -> dict:
        """Ticker entry point: like run_job, but skips paused jobs."""
        if not cls.is_job_enabled(job_name):
            logger.info("Job %s is disabled, skipping tick", job_name, extra={"job_name": job_name})
            return {"job_name": job_name, "status": "skipped"}
        return cls.run_job(job_name)

    @classmethod
    def start(cls, stop_event: threading.Event | None = None) -> list[JobTicker]:
        """Start one ticker per registered job. Returns the started threads."""
        if not cls._app:
            raise RuntimeError("Scheduler not initialized")
        if cls._tickers:
            return list(cls._tickers)

        cls.ensure_jobs_registered()
        cls._stop_event = stop_event or threading.Event()
        tickers = []
        for name in _job_registry:
            interval = _get_default_schedule(name, cls._app.config)["seconds"]
            ticker = JobTicker(name, interval, cls._stop_event)
            ticker.start()
            tickers.append(ticker)
        cls._tickers = tickers
        logger.info("Scheduler started with %d ticker(s)", len(tickers))
        return list(tickers)

    @classmethod
    def shutdown(cls, timeout: float | None = 5.0) -> None:
        """Signal every ticker to stop and wait for them."""
        if cls._stop_event is not None:
            cls._stop_event.set()
        for ticker in cls._tickers:
            ticker.join(timeout)
        cls._tickers = []
        cls._stop_event = None
        logger.info("Scheduler stopped")

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return job_record.to_dict()
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()


def _get_default_schedule(job_name: str, config=None) -> dict:
    """Return default interval config for known jobs."""
    config = config or {}
    sweep = int(config.get("ESCALATION_SWEEP_INTERVAL_SECONDS", 3600))
    defaults = {
        "escalation_sweep": {"seconds": sweep, "description": f"Every {sweep}s"},
        "stale_escalation_cleanup": {"seconds": 3600, "description": "Hourly"},
    }
    return defaults.get(job_name, {"seconds": 3600, "description": "Hourly"})
