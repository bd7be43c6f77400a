"""
Partner Hub — Notification Service.

Central service for creating and querying in-app notifications. The
escalation executor is its main producer; delivery over email for the
``both`` channel is picked up by the mail worker from the stored record.
"""

from datetime import datetime, timezone

from partnerhub.core.exceptions import NotFoundError, ValidationError
from partnerhub.models import db
from partnerhub.models.notification import (
    NOTIFICATION_CHANNELS,
    NOTIFICATION_SEVERITIES,
    Notification,
)
from partnerhub.models.organization import User


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def send(user_id, title, message="", channel="in_app", metadata=None, *,
             severity="info", category="escalation", entity_type="", entity_id=None):
        """
        Create one notification for one user.

        Raises:
            ValidationError: unknown channel or severity.
            NotFoundError: the recipient user does not exist.

        Returns:
            The created Notification instance (already committed).
        """
        if channel not in NOTIFICATION_CHANNELS:
            raise ValidationError(f"Unknown notification channel: {channel}")
        if severity not in NOTIFICATION_SEVERITIES:
            raise ValidationError(f"Unknown notification severity: {severity}")
        if db.session.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)

        notif = Notification(
            recipient_user_id=user_id,
            title=title,
            message=message,
            channel=channel,
            severity=severity,
            category=category,
            entity_type=entity_type,
            entity_id=entity_id,
            meta=metadata,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a user, newest first."""
        q = Notification.query.filter_by(recipient_user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(recipient_user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(recipient_user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
