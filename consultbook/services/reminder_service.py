"""
Upcoming-appointment reminders, sent once per appointment to both parties.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from consultbook.config import settings
from consultbook.crud import appointment as appointment_crud
from consultbook.domain import utcnow
from consultbook.services.notification_service import Notifier, notify_parties
from consultbook.services.transactions import unit_of_work

logger = logging.getLogger(__name__)


def send_upcoming_reminders(
    db: Session,
    *,
    now: Optional[datetime] = None,
    lead_minutes: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> List[int]:
    now = now or utcnow()
    lead = settings.REMINDER_LEAD_MINUTES if lead_minutes is None else lead_minutes

    with unit_of_work(db, "reminder pass"):
        due = appointment_crud.list_due_reminders(db, now, now + timedelta(minutes=lead))
        targets = [(a.id, a.user_id, a.consultant_id, a.start_time) for a in due]
        appointment_crud.mark_reminded(db, [t[0] for t in targets], now)

    for appointment_id, user_id, consultant_id, start_time in targets:
        when = start_time.isoformat()
        notify_parties(
            notifier,
            user_id=user_id,
            consultant_id=consultant_id,
            title="Appointment Reminder",
            user_body=f"Your appointment starts at {when}.",
            consultant_body=f"You have an appointment at {when}.",
            metadata={"event": "appointment_reminder", "appointment_id": appointment_id},
        )
    if targets:
        logger.info("[ReminderJob] Sent reminders for %s appointments.", len(targets))
    return [t[0] for t in targets]


def make_reminder_job(
    session_factory: Callable[[], Session],
    notifier_factory: Optional[Callable[[Session], Notifier]] = None,
    *,
    lead_minutes: Optional[int] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Callable[[], List[int]]:
    def run() -> List[int]:
        db = session_factory()
        try:
            notifier = notifier_factory(db) if notifier_factory else None
            return send_upcoming_reminders(
                db,
                now=clock(),
                lead_minutes=lead_minutes,
                notifier=notifier,
            )
        finally:
            db.close()

    return run
