from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from consultbook.models.notification import Notification
from consultbook.models.user import Consultant, User
from consultbook.utils.email import is_email_enabled, send_email

logger = logging.getLogger(__name__)


RECIPIENT_USER = "user"
RECIPIENT_CONSULTANT = "consultant"

EMAIL_SUBJECT_BY_EVENT = {
    "appointment_requested": "New appointment request",
    "appointment_confirmed": "Your appointment was confirmed",
    "appointment_rejected": "Appointment request update",
    "appointment_cancelled": "Appointment cancelled",
    "appointment_expired": "Appointment expired",
    "appointment_rescheduled": "Appointment rescheduled",
    "appointment_in_session": "Your session has started",
    "appointment_completed": "Session completed",
    "appointment_reminder": "Appointment reminder",
    "slot_blocked": "Slot blocked",
    "review_received": "You received a new review",
}


class Notifier(Protocol):
    """Outbound notification channel. Implementations must not raise."""

    def notify_user(self, user_id: int, title: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        ...

    def notify_consultant(self, consultant_id: int, title: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        ...


def create_notification(
    db: Session,
    *,
    recipient_type: str,
    recipient_id: int,
    title: str,
    body: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Notification:
    metadata = dict(metadata or {})
    notification = Notification(
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        appointment_id=metadata.get("appointment_id"),
        event_type=metadata.get("event", "appointment_update"),
        title=title,
        body=body,
        data=metadata,
    )
    db.add(notification)
    db.flush()
    return notification


def _send_notification_email(to_email: str, subject: str, body_text: str, *, notification_id: Optional[int], recipient_id: Optional[int]) -> None:
    """Send SMTP mail in a background thread so API latency stays low."""
    sent = send_email(
        to_email=to_email,
        subject=subject,
        body_text=body_text,
    )
    if not sent:
        logger.info(
            "Notification email not sent (recipient_id=%s, notification_id=%s)",
            recipient_id,
            notification_id,
        )


def dispatch_email_for_notification(db: Session, notification: Notification) -> bool:
    """
    Best-effort email delivery for a committed notification.
    This function never raises and should not impact request success.
    """
    try:
        if not is_email_enabled():
            return False

        model = User if notification.recipient_type == RECIPIENT_USER else Consultant
        recipient = db.query(model).filter(model.id == notification.recipient_id).first()
        if not recipient or not recipient.email:
            return False

        subject = EMAIL_SUBJECT_BY_EVENT.get(notification.event_type, notification.title)
        recipient_name = (recipient.name or "there").strip() or "there"
        body_text = (
            f"Hi {recipient_name},\n\n"
            f"{notification.body}\n\n"
            f"Event: {notification.event_type}\n"
            f"Appointment ID: {notification.appointment_id or 'N/A'}\n"
        )

        worker = threading.Thread(
            target=_send_notification_email,
            args=(
                recipient.email,
                subject,
                body_text,
            ),
            kwargs={
                "notification_id": getattr(notification, "id", None),
                "recipient_id": notification.recipient_id,
            },
            daemon=True,
        )
        worker.start()
        return True
    except Exception as exc:
        logger.warning(
            "Notification email dispatch failed (notification_id=%s): %s",
            getattr(notification, "id", None),
            exc,
        )
        return False


class DatabaseNotifier:
    """
    Default Notifier: stores an in-app notification and sends a best-effort
    email. Runs after the triggering mutation has committed; its own failures
    are rolled back and logged.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify_user(self, user_id, title, body, metadata=None):
        self._notify(RECIPIENT_USER, user_id, title, body, metadata)

    def notify_consultant(self, consultant_id, title, body, metadata=None):
        self._notify(RECIPIENT_CONSULTANT, consultant_id, title, body, metadata)

    def _notify(self, recipient_type, recipient_id, title, body, metadata):
        if recipient_id is None:
            return
        try:
            notification = create_notification(
                self.db,
                recipient_type=recipient_type,
                recipient_id=recipient_id,
                title=title,
                body=body,
                metadata=metadata,
            )
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.warning(
                "Notification for %s %s not stored: %s",
                recipient_type,
                recipient_id,
                exc,
            )
            return
        dispatch_email_for_notification(self.db, notification)


def notify_parties(
    notifier: Optional[Notifier],
    *,
    user_id: Optional[int],
    consultant_id: Optional[int],
    title: str,
    user_body: Optional[str] = None,
    consultant_body: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Notify either side of an appointment; failures are logged, never raised."""
    if notifier is None:
        return
    if user_id is not None and user_body:
        try:
            notifier.notify_user(user_id, title, user_body, metadata)
        except Exception as exc:
            logger.warning("notify_user failed (user_id=%s): %s", user_id, exc)
    if consultant_id is not None and consultant_body:
        try:
            notifier.notify_consultant(consultant_id, title, consultant_body, metadata)
        except Exception as exc:
            logger.warning("notify_consultant failed (consultant_id=%s): %s", consultant_id, exc)
