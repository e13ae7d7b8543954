# consultbook/crud/appointment.py
"""
Appointment Store
Durable record of appointments; every status and timing read/write goes
through these functions.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from consultbook.domain import (
    ACTIVE_STATUSES,
    EXPIRABLE_STATUSES,
    AppointmentStatus,
    utcnow,
)
from consultbook.models.appointment import Appointment
from consultbook.models.user import Consultant


# ======================
# LOCKING
# ======================

def lock_consultant_schedule(db: Session, consultant_id: int) -> bool:
    """
    Take the per-consultant write lock for the rest of the transaction.

    Must be the first statement of a check-then-write sequence. The UPDATE
    holds the consultant row lock on PostgreSQL and the database write lock
    on SQLite until commit/rollback, so a second booking for the same
    consultant waits here instead of racing the conflict check.

    Returns False when the consultant does not exist or is inactive.
    """
    result = db.execute(
        update(Consultant)
        .where(Consultant.id == consultant_id, Consultant.is_active.is_(True))
        .values(schedule_version=Consultant.schedule_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


# ======================
# READS
# ======================

def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()


def get_appointment_for_update(db: Session, appointment_id: int) -> Optional[Appointment]:
    """Load one appointment holding its row lock (no-op on SQLite)."""
    return (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id)
        .with_for_update()
        .first()
    )


def list_active_windows(
    db: Session,
    consultant_id: int,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
    end_inclusive: bool = False,
) -> List[Appointment]:
    """
    Active appointments of a consultant, optionally narrowed to those that
    could overlap ``[window_start, window_end)``. With ``end_inclusive`` an
    appointment starting exactly at ``window_end`` is kept too.
    """
    query = db.query(Appointment).filter(
        Appointment.consultant_id == consultant_id,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if window_end is not None and end_inclusive:
        query = query.filter(Appointment.start_time <= window_end)
    elif window_end is not None:
        query = query.filter(Appointment.start_time < window_end)
    if window_start is not None:
        query = query.filter(Appointment.end_time > window_start)
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.order_by(Appointment.start_time.asc()).all()


def list_appointments(
    db: Session,
    *,
    user_id: Optional[int] = None,
    consultant_id: Optional[int] = None,
    statuses: Optional[Sequence[str]] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    on_date: Optional[date] = None,
    reviewed: Optional[bool] = None,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[Appointment], int]:
    """
    Filtered page of appointments plus the unpaginated total. ``on_date``
    keeps appointments starting on that UTC day. Each row comes with its
    review loaded.
    """
    query = db.query(Appointment)

    if user_id is not None:
        query = query.filter(Appointment.user_id == user_id)
    if consultant_id is not None:
        query = query.filter(Appointment.consultant_id == consultant_id)
    if statuses:
        query = query.filter(Appointment.status.in_(list(statuses)))
    if date_from is not None:
        query = query.filter(Appointment.start_time >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.start_time <= date_to)
    if on_date is not None:
        day_start = datetime.combine(on_date, time.min)
        query = query.filter(
            Appointment.start_time >= day_start,
            Appointment.start_time < day_start + timedelta(days=1),
        )
    if reviewed is True:
        query = query.filter(Appointment.review.has())
    elif reviewed is False:
        query = query.filter(~Appointment.review.has())

    total = query.count()
    items = (
        query.options(joinedload(Appointment.review))
        .order_by(Appointment.start_time.desc(), Appointment.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return items, total


def list_blocked_at(db: Session, consultant_id: int, start_time: datetime) -> List[Appointment]:
    return db.query(Appointment).filter(
        Appointment.consultant_id == consultant_id,
        Appointment.start_time == start_time,
        Appointment.status == AppointmentStatus.BLOCKED.value,
    ).all()


def first_completed_appointment(
    db: Session,
    user_id: int,
    consultant_id: int,
) -> Optional[Appointment]:
    return (
        db.query(Appointment)
        .filter(
            Appointment.user_id == user_id,
            Appointment.consultant_id == consultant_id,
            Appointment.status == AppointmentStatus.COMPLETED.value,
        )
        .order_by(Appointment.id.asc())
        .first()
    )


def list_due_reminders(
    db: Session,
    now: datetime,
    until: datetime,
) -> List[Appointment]:
    """Pending/confirmed appointments starting in ``[now, until]`` not yet reminded."""
    return (
        db.query(Appointment)
        .filter(
            Appointment.status.in_(EXPIRABLE_STATUSES),
            Appointment.start_time >= now,
            Appointment.start_time <= until,
            Appointment.reminder_sent_at.is_(None),
        )
        .order_by(Appointment.start_time.asc())
        .all()
    )


# ======================
# WRITES
# ======================

def insert_appointment(
    db: Session,
    *,
    consultant_id: int,
    user_id: Optional[int],
    start_time: datetime,
    duration_minutes: int,
    status: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    mood: Optional[int] = None,
) -> Appointment:
    now = utcnow()
    appointment = Appointment(
        consultant_id=consultant_id,
        user_id=user_id,
        status=status,
        title=title,
        description=description,
        mood=mood,
        created_at=now,
        updated_at=now,
    )
    appointment.set_window(start_time, duration_minutes)
    db.add(appointment)
    db.flush()
    return appointment


def write_status(
    appointment: Appointment,
    status: str,
    *,
    cancellation_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """Apply a status on a loaded row; the version check happens at flush."""
    appointment.status = status
    if status in (AppointmentStatus.CANCELLED.value, AppointmentStatus.REJECTED.value):
        if cancellation_reason is not None:
            appointment.cancellation_reason = cancellation_reason
    appointment.updated_at = now or utcnow()
    return appointment


def cancel_expired(
    db: Session,
    cutoff: datetime,
    reason: str,
    now: Optional[datetime] = None,
) -> List[Tuple[int, Optional[int], int, datetime]]:
    """
    Cancel every pending/confirmed appointment that started before ``cutoff``
    in one UPDATE and return ``(id, user_id, consultant_id, start_time)`` for
    the rows it changed.

    The status filter is re-evaluated under the row lock, so a row moved to
    in_session/completed by a concurrent request is left alone.
    """
    stamp = now or utcnow()
    result = db.execute(
        update(Appointment)
        .where(
            Appointment.status.in_(EXPIRABLE_STATUSES),
            Appointment.start_time < cutoff,
        )
        .values(
            status=AppointmentStatus.CANCELLED.value,
            cancellation_reason=reason,
            updated_at=stamp,
            version=Appointment.version + 1,
        )
        .returning(
            Appointment.id,
            Appointment.user_id,
            Appointment.consultant_id,
            Appointment.start_time,
        )
        .execution_options(synchronize_session=False)
    )
    return [tuple(row) for row in result.all()]


def mark_reminded(db: Session, appointment_ids: Iterable[int], now: datetime) -> int:
    ids = list(appointment_ids)
    if not ids:
        return 0
    result = db.execute(
        update(Appointment)
        .where(
            Appointment.id.in_(ids),
            Appointment.reminder_sent_at.is_(None),
        )
        .values(reminder_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
