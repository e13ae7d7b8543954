"""
Conflict Detector
Decides whether a candidate window overlaps an active booking.

Windows are half-open ``[start, end)``: a booking that ends exactly when
another starts does not conflict.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from consultbook.crud import appointment as appointment_crud
from consultbook.domain import ACTIVE_STATUSES, to_utc, window_end
from consultbook.models.appointment import Appointment


def windows_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    return a_start < b_end and b_start < a_end


def find_overlapping(
    candidate_start: datetime,
    candidate_duration: int,
    appointments: Iterable[Appointment],
    exclude_appointment_id: Optional[int] = None,
) -> List[Appointment]:
    """Pure filter over a snapshot of appointments."""
    candidate_end = window_end(candidate_start, candidate_duration)
    return [
        a for a in appointments
        if a.status in ACTIVE_STATUSES
        and a.id != exclude_appointment_id
        and windows_overlap(candidate_start, candidate_end, a.start_time, a.end_time)
    ]


def has_conflict(
    db: Session,
    consultant_id: int,
    candidate_start: datetime,
    candidate_duration: int,
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    """
    True when the candidate window overlaps any active appointment of the
    consultant, ignoring ``exclude_appointment_id`` (the row being moved).
    """
    return bool(find_conflicts(
        db,
        consultant_id,
        candidate_start,
        candidate_duration,
        exclude_appointment_id=exclude_appointment_id,
    ))


def find_conflicts(
    db: Session,
    consultant_id: int,
    candidate_start: datetime,
    candidate_duration: int,
    exclude_appointment_id: Optional[int] = None,
) -> List[Appointment]:
    start = to_utc(candidate_start)
    end = window_end(start, candidate_duration)
    snapshot = appointment_crud.list_active_windows(
        db,
        consultant_id,
        window_start=start,
        window_end=end,
        exclude_appointment_id=exclude_appointment_id,
    )
    return find_overlapping(start, candidate_duration, snapshot, exclude_appointment_id)
