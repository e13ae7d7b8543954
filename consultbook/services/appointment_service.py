# consultbook/services/appointment_service.py
"""
Booking Service Layer
Creating, blocking, rescheduling and listing appointments.

Every write that depends on the Conflict Detector runs as one transaction
that first takes the consultant's schedule lock, then checks, then writes.
Two overlapping requests for the same consultant are serialized on that
lock, so the second one sees the first one's row and fails with SlotTaken.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from consultbook.config import settings
from consultbook.crud import appointment as appointment_crud
from consultbook.crud import identity as identity_crud
from consultbook.domain import (
    Actor,
    AppointmentStatus,
    parse_status,
    to_utc,
    utcnow,
)
from consultbook.exceptions import (
    AlreadyBlocked,
    Forbidden,
    InvalidStatus,
    NotFound,
    SlotTaken,
    ValidationFailed,
)
from consultbook.models.appointment import Appointment
from consultbook.services import conflict_detector
from consultbook.services.notification_service import Notifier, notify_parties
from consultbook.services.status_machine import authorize, check_reschedulable
from consultbook.services.transactions import unit_of_work

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "Time slot is already booked"


# ======================
# VALIDATION HELPERS
# ======================

def _resolve_duration(duration_minutes: Optional[int], default: int) -> int:
    if duration_minutes is None:
        return default
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool):
        raise ValidationFailed("duration_minutes must be an integer")
    if duration_minutes <= 0:
        raise ValidationFailed("duration_minutes must be greater than 0")
    if duration_minutes > settings.MAX_DURATION_MINUTES:
        raise ValidationFailed(
            f"duration_minutes must be at most {settings.MAX_DURATION_MINUTES}"
        )
    return duration_minutes


def parse_start_time(value) -> datetime:
    """Accept a datetime or an ISO-8601 string; return naive UTC."""
    if value is None:
        raise ValidationFailed("start_time is required")
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(
            "Invalid start_time format. Use ISO 8601 (e.g., '2026-02-20T14:00:00Z')"
        )
    return to_utc(parsed)


def _validate_mood(mood: Optional[int]) -> Optional[int]:
    if mood is None:
        return None
    if not isinstance(mood, int) or not (1 <= mood <= 10):
        raise ValidationFailed("mood must be an integer between 1 and 10")
    return mood


# ======================
# CREATE APPOINTMENT
# ======================

def create_appointment(
    db: Session,
    *,
    consultant_id: int,
    user_id: int,
    start_time,
    duration_minutes: Optional[int] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    mood: Optional[int] = None,
    notifier: Optional[Notifier] = None,
    default_duration: Optional[int] = None,
) -> Appointment:
    """
    Book ``[start_time, start_time + duration)`` with a consultant.

    Raises:
        ValidationFailed: malformed start time, duration or mood
        NotFound: unknown consultant or user
        SlotTaken: the window overlaps an active appointment
    """
    start = parse_start_time(start_time)
    duration = _resolve_duration(
        duration_minutes,
        default_duration or settings.DEFAULT_DURATION_MINUTES,
    )
    mood = _validate_mood(mood)

    if not identity_crud.user_exists(db, user_id):
        raise NotFound("User not found")

    with unit_of_work(db, "create appointment", SlotTaken, SLOT_TAKEN_MESSAGE):
        if not appointment_crud.lock_consultant_schedule(db, consultant_id):
            raise NotFound("Consultant not found or inactive")

        if conflict_detector.has_conflict(db, consultant_id, start, duration):
            logger.info(
                "Booking conflict for consultant %s at %s (%s min)",
                consultant_id,
                start.isoformat(),
                duration,
            )
            raise SlotTaken(SLOT_TAKEN_MESSAGE)

        appointment = appointment_crud.insert_appointment(
            db,
            consultant_id=consultant_id,
            user_id=user_id,
            start_time=start,
            duration_minutes=duration,
            status=AppointmentStatus.PENDING.value,
            title=title,
            description=description,
            mood=mood,
        )

    logger.info(
        "Appointment %s created: consultant=%s user=%s start=%s duration=%s",
        appointment.id,
        consultant_id,
        user_id,
        start.isoformat(),
        duration,
    )
    notify_parties(
        notifier,
        user_id=None,
        consultant_id=consultant_id,
        title="New Appointment Request",
        consultant_body=f"You have a new appointment request for {start.isoformat()}.",
        metadata={"event": "appointment_requested", "appointment_id": appointment.id},
    )
    return appointment


# ======================
# BLOCK SLOT
# ======================

def block_slot(
    db: Session,
    *,
    consultant_id: int,
    start_time,
    duration_minutes: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> Appointment:
    """
    Withhold a window from booking by inserting a ``blocked`` row.

    Uses the same overlap check as booking: an identical-start block fails
    with AlreadyBlocked, any other overlap with SlotTaken.
    """
    start = parse_start_time(start_time)
    duration = _resolve_duration(duration_minutes, settings.DEFAULT_DURATION_MINUTES)

    with unit_of_work(db, "block slot", SlotTaken, SLOT_TAKEN_MESSAGE):
        if not appointment_crud.lock_consultant_schedule(db, consultant_id):
            raise NotFound("Consultant not found or inactive")

        if appointment_crud.list_blocked_at(db, consultant_id, start):
            raise AlreadyBlocked("Slot already blocked")
        if conflict_detector.has_conflict(db, consultant_id, start, duration):
            raise SlotTaken(SLOT_TAKEN_MESSAGE)

        appointment = appointment_crud.insert_appointment(
            db,
            consultant_id=consultant_id,
            user_id=None,
            start_time=start,
            duration_minutes=duration,
            status=AppointmentStatus.BLOCKED.value,
        )

    logger.info(
        "Slot blocked: appointment=%s consultant=%s start=%s duration=%s",
        appointment.id,
        consultant_id,
        start.isoformat(),
        duration,
    )
    notify_parties(
        notifier,
        user_id=None,
        consultant_id=consultant_id,
        title="Slot Blocked",
        consultant_body=f"You blocked {duration} minutes starting {start.isoformat()}.",
        metadata={"event": "slot_blocked", "appointment_id": appointment.id},
    )
    return appointment


# ======================
# RESCHEDULE
# ======================

def reschedule_appointment(
    db: Session,
    actor: Actor,
    appointment_id: int,
    *,
    start_time,
    duration_minutes: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> Appointment:
    """
    Move an active appointment to a new window.

    The conflict check ignores the appointment itself, so a new window that
    only overlaps the old one succeeds. The row returns to ``pending`` for
    the consultant to confirm again; a blocked slot stays blocked.
    """
    start = parse_start_time(start_time)

    existing = appointment_crud.get_appointment(db, appointment_id)
    if existing is None:
        raise NotFound("Appointment not found")
    consultant_id = existing.consultant_id

    with unit_of_work(db, "reschedule appointment", SlotTaken, SLOT_TAKEN_MESSAGE):
        if not appointment_crud.lock_consultant_schedule(db, consultant_id):
            raise NotFound("Consultant not found or inactive")

        appointment = appointment_crud.get_appointment_for_update(db, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        check_reschedulable(appointment, actor)

        duration = _resolve_duration(duration_minutes, appointment.duration_minutes)
        if conflict_detector.has_conflict(
            db,
            consultant_id,
            start,
            duration,
            exclude_appointment_id=appointment.id,
        ):
            raise SlotTaken(SLOT_TAKEN_MESSAGE)

        previous_start = appointment.start_time
        appointment.set_window(start, duration)
        if appointment.status != AppointmentStatus.BLOCKED.value:
            appointment.status = AppointmentStatus.PENDING.value
        appointment.reminder_sent_at = None
        appointment.updated_at = utcnow()
        db.flush()

    logger.info(
        "Appointment %s rescheduled by %s %s: %s -> %s",
        appointment.id,
        actor.role.value,
        actor.id,
        previous_start.isoformat(),
        start.isoformat(),
    )
    notify_parties(
        notifier,
        user_id=appointment.user_id,
        consultant_id=appointment.consultant_id,
        title="Appointment Rescheduled",
        user_body=f"Your appointment moved from {previous_start.isoformat()} to {start.isoformat()}.",
        consultant_body=f"An appointment moved from {previous_start.isoformat()} to {start.isoformat()}.",
        metadata={
            "event": "appointment_rescheduled",
            "appointment_id": appointment.id,
            "previous_start_time": previous_start.isoformat(),
        },
    )
    return appointment


# ======================
# READS
# ======================

def get_appointment_for_actor(db: Session, actor: Actor, appointment_id: int) -> Appointment:
    appointment = appointment_crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    if not actor.is_admin:
        authorize(appointment, actor)
    return appointment


def parse_status_filter(status: Optional[str]) -> List[str]:
    """Comma-separated status set; every entry must be a known status."""
    if not status:
        return []
    statuses = []
    for raw in status.split(","):
        raw = raw.strip()
        if not raw:
            continue
        parsed = parse_status(raw)
        if parsed is None:
            raise InvalidStatus(f"Unknown status '{raw}'")
        statuses.append(parsed.value)
    return statuses


def list_appointments(
    db: Session,
    actor: Actor,
    *,
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    on_date: Optional[date] = None,
    reviewed: Optional[bool] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Page of appointments visible to ``actor``: users see their bookings,
    consultants their schedule, admins everything.
    """
    if actor.is_admin:
        default_limit, max_limit = settings.ADMIN_LIST_DEFAULT_LIMIT, settings.ADMIN_LIST_MAX_LIMIT
        scope = {}
    elif actor.is_user:
        default_limit, max_limit = settings.LIST_DEFAULT_LIMIT, settings.LIST_MAX_LIMIT
        scope = {"user_id": actor.id}
    elif actor.is_consultant:
        default_limit, max_limit = settings.LIST_DEFAULT_LIMIT, settings.LIST_MAX_LIMIT
        scope = {"consultant_id": actor.id}
    else:
        raise Forbidden("Not allowed to list appointments")

    if page is None or page < 1:
        raise ValidationFailed("page must be 1 or greater")
    if limit is None:
        limit = default_limit
    if limit < 1:
        raise ValidationFailed("limit must be 1 or greater")
    limit = min(limit, max_limit)

    statuses = parse_status_filter(status)
    items, total = appointment_crud.list_appointments(
        db,
        statuses=statuses,
        date_from=to_utc(date_from) if date_from else None,
        date_to=to_utc(date_to) if date_to else None,
        on_date=on_date,
        reviewed=reviewed,
        limit=limit,
        offset=(page - 1) * limit,
        **scope,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
