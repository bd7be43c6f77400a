"""
Partner Hub — Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from partnerhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CHANNELS = {"in_app", "email", "both"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. ``channel`` records how the sender
    asked for it to be delivered; email transport is handled elsewhere.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    channel = db.Column(db.String(20), default="in_app", comment="in_app | email | both")
    severity = db.Column(db.String(20), default="info")
    category = db.Column(db.String(30), default="escalation")

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="task/project/...")
    entity_id = db.Column(db.Integer, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_user_id": self.recipient_user_id,
            "title": self.title,
            "message": self.message,
            "channel": self.channel,
            "severity": self.severity,
            "category": self.category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.meta,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
