"""Project, Task and Partner models consumed by the escalation engine.

These tables are owned by the project/task CRUD layer; the engine only
reads them. Fields are limited to what trigger evaluation, recipient
resolution and the partner SMS side-channel consume.
"""

from datetime import datetime, timezone

from partnerhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {"todo", "in_progress", "review", "waiting", "completed", "cancelled"}
CLOSED_TASK_STATUSES = frozenset({"completed", "cancelled"})


class Project(db.Model):
    """Project within an organization. Owner and manager are the stakeholders."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = db.Column(db.String(50), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active")
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tasks = db.relationship("Task", back_populates="project", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "code": self.code,
            "name": self.name,
            "status": self.status,
            "owner_id": self.owner_id,
            "manager_id": self.manager_id,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Partner(db.Model):
    """External partner company; may receive urgent SMS for overdue tasks."""

    __tablename__ = "partners"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    sms_phone_number = db.Column(db.String(30), nullable=True, comment="Destination for urgent SMS")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "email": self.email,
            "sms_phone_number": self.sms_phone_number,
        }

    def __repr__(self):
        return f"<Partner {self.id}: {self.name}>"


class Task(db.Model):
    """Unit of work with a due date, progress and optional partner link."""

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    partner_id = db.Column(
        db.Integer, db.ForeignKey("partners.id", ondelete="SET NULL"), nullable=True,
    )
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    title = db.Column(db.String(300), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="todo",
                       comment="todo | in_progress | review | waiting | completed | cancelled")
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    due_date = db.Column(db.Date, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="tasks")
    partner = db.relationship("Partner")

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_TASK_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "partner_id": self.partner_id,
            "assignee_id": self.assignee_id,
            "title": self.title,
            "status": self.status,
            "progress": self.progress,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]}>"
