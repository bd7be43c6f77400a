"""
Partner Hub — Scheduling & SMS provider models.

Models:
    - ScheduledJob: Persisted schedule registry (run history + config)
    - SmsProviderConfig: Per-organization SMS provider credentials
"""

from datetime import datetime, timezone

from partnerhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

JOB_STATUSES = {"active", "paused", "failed"}
JOB_RUN_STATUSES = {"success", "failed", "skipped"}


class ScheduledJob(db.Model):
    """
    Registry of scheduled background jobs.

    Tracks job configuration, last run time, and run history. The ticker
    reads ``is_enabled`` before every run, so pausing a job takes effect
    at the next tick.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Unique job identifier: escalation_sweep, ...")
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="interval",
                              comment="interval, manual")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Interval config, e.g. {'seconds': 3600}")
    status = db.Column(db.String(20), default="active",
                       comment="active, paused, failed")
    is_enabled = db.Column(db.Boolean, default=True)

    # Execution tracking
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Summary of last execution")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"


class SmsProviderConfig(db.Model):
    """
    SMS provider credentials for one organization.

    ``auth_token_encrypted`` holds a Fernet ciphertext produced by
    ``partnerhub.utils.crypto.encrypt_secret``; the plaintext never
    touches the database and is never serialized.
    """

    __tablename__ = "sms_provider_configs"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    account_sid = db.Column(db.String(100), nullable=True)
    auth_token_encrypted = db.Column(db.Text, nullable=True)
    phone_number = db.Column(db.String(30), nullable=True, comment="Sender number")
    is_enabled = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_complete(self) -> bool:
        return bool(self.account_sid and self.auth_token_encrypted and self.phone_number)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "account_sid": self.account_sid,
            "has_auth_token": bool(self.auth_token_encrypted),
            "phone_number": self.phone_number,
            "is_enabled": self.is_enabled,
            "is_complete": self.is_complete,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SmsProviderConfig org={self.organization_id}>"
