"""
Expiry Reaper
Cancels pending/confirmed appointments whose start passed more than the
grace window ago. Safe to run repeatedly: a second pass finds nothing left.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from consultbook.config import settings
from consultbook.crud import appointment as appointment_crud
from consultbook.domain import EXPIRED_REASON, utcnow
from consultbook.services.notification_service import Notifier, notify_parties
from consultbook.services.transactions import unit_of_work

logger = logging.getLogger(__name__)


def cancel_expired_appointments(
    db: Session,
    *,
    now: Optional[datetime] = None,
    grace_minutes: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> List[int]:
    """
    One sweep. Returns the ids cancelled by this pass.

    An appointment expires when ``now > start_time + grace``.
    """
    now = now or utcnow()
    grace = settings.EXPIRY_GRACE_MINUTES if grace_minutes is None else grace_minutes
    cutoff = now - timedelta(minutes=grace)

    with unit_of_work(db, "expiry sweep"):
        expired = appointment_crud.cancel_expired(db, cutoff, EXPIRED_REASON, now=now)

    if not expired:
        return []

    logger.info("Cancelled expired appointment IDs: %s", [row[0] for row in expired])
    for appointment_id, user_id, consultant_id, start_time in expired:
        when = start_time.isoformat()
        notify_parties(
            notifier,
            user_id=user_id,
            consultant_id=consultant_id,
            title="Appointment Expired",
            user_body=f"Your appointment on {when} was cancelled because it was missed.",
            consultant_body=f"The appointment on {when} was cancelled because it was missed.",
            metadata={
                "event": "appointment_expired",
                "appointment_id": appointment_id,
                "reason": EXPIRED_REASON,
            },
        )
    return [row[0] for row in expired]


def make_expiry_job(
    session_factory: Callable[[], Session],
    notifier_factory: Optional[Callable[[Session], Notifier]] = None,
    *,
    grace_minutes: Optional[int] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Callable[[], List[int]]:
    """Bind a sweep to its own session per run, for use by the worker cron."""

    def run() -> List[int]:
        db = session_factory()
        try:
            notifier = notifier_factory(db) if notifier_factory else None
            return cancel_expired_appointments(
                db,
                now=clock(),
                grace_minutes=grace_minutes,
                notifier=notifier,
            )
        finally:
            db.close()

    return run
