"""
Financing Application Portal
Notification Service.

Central service for creating and querying in-app notifications, plus the
dispatcher that turns lifecycle events into notifications:

    application_submitted       → one "New Application Submitted" per routed, active approver
    application_status_changed  → one message to the submitter, reason embedded
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from loan_portal.core.exceptions import NotFoundError, ValidationError
from loan_portal.models import db
from loan_portal.models.application import APPLICATION_TRANSITIONS
from loan_portal.models.auth import User
from loan_portal.models.notification import NOTIFICATION_TYPES, Notification
from loan_portal.services import events

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def enqueue(user_id, title, message, type, related_application_id=None):
        """
        Create a single notification record for *user_id*.

        Returns:
            The created Notification instance (already committed).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"Invalid notification type. Must be one of: {sorted(NOTIFICATION_TYPES)}",
                details={"type": type},
            )
        notif = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_application_id=related_application_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(user_ids, title, message, type, related_application_id=None):
        """
        Send the same notification to several users in one commit.

        Returns:
            List of created Notification instances, ordered by user id.
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"Invalid notification type. Must be one of: {sorted(NOTIFICATION_TYPES)}",
                details={"type": type},
            )
        notifications = []
        for uid in sorted(set(user_ids)):
            notif = Notification(
                user_id=uid,
                title=title,
                message=message,
                type=type,
                related_application_id=related_application_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=10, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
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
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id=None):
        """Mark a single notification as read. Marking it again is a no-op.

        With *user_id*, another user's notification is reported as not found.
        """
        notif = db.session.get(Notification, notification_id)
        if notif is None or (user_id is not None and notif.user_id != user_id):
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all of a user's notifications as read. Returns the number changed."""
        q = Notification.query.filter_by(user_id=user_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count


# ── Lifecycle dispatch ────────────────────────────────────────────────────

_STATUS_MESSAGES = {
    "approve": (
        "Application Approved",
        "Your application {number} for {customer} has been approved.",
    ),
    "reject": (
        "Application Rejected",
        "Your application {number} for {customer} has been rejected. Reason: {reason}",
    ),
    "return": (
        "Application Returned",
        "Your application {number} for {customer} has been returned. "
        "Please review and resubmit. Reason: {reason}",
    ),
}


def notify_approvers_of_submission(application, approver_ids=frozenset(), **_):
    """Receiver for ``application_submitted``.

    Deactivated approvers keep their assignments but are skipped here, the
    same way ``act`` refuses them.
    """
    if not approver_ids:
        return []
    recipients = set(db.session.execute(
        select(User.id).where(User.id.in_(approver_ids), User.is_active.is_(True))
    ).scalars())
    skipped = set(approver_ids) - recipients
    if skipped:
        logger.info(
            "Skipping %d inactive approver(s) for submission notice", len(skipped),
            extra={"application_id": application.id, "event_type": "notification.skip_inactive"},
        )
    if not recipients:
        return []
    product = application.product.name if application.product else "financing"
    branch = application.branch.name if application.branch else "a branch"
    return NotificationService.broadcast(
        recipients,
        title="New Application Submitted",
        message=(
            f"Application {application.application_number} for {application.customer_name} "
            f"({product}) was submitted by {branch} and is awaiting review."
        ),
        type="application_submitted",
        related_application_id=application.id,
    )


def notify_submitter_of_decision(application, decision=None, reason=None, **_):
    """Receiver for ``application_status_changed``."""
    title, template = _STATUS_MESSAGES[decision]
    return NotificationService.enqueue(
        application.submitted_by,
        title,
        template.format(
            number=application.application_number,
            customer=application.customer_name,
            reason=reason,
        ),
        APPLICATION_TRANSITIONS[decision]["notify_type"],
        related_application_id=application.id,
    )


def init_notification_dispatch(app=None):
    """Subscribe the notification receivers to the lifecycle signals."""
    events.application_submitted.connect(notify_approvers_of_submission)
    events.application_status_changed.connect(notify_submitter_of_decision)
    if app is not None:
        app.logger.debug("Notification dispatch subscribed to lifecycle events")
