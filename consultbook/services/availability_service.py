"""
Availability Calculator
Busy windows of a consultant over an inclusive date range. Callers subtract
these from their own slot grid.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from consultbook.crud import appointment as appointment_crud
from consultbook.crud import identity as identity_crud
from consultbook.domain import to_utc
from consultbook.exceptions import NotFound, ValidationFailed

DateLike = Union[date, datetime, str]


def parse_range_bound(value: DateLike, field: str) -> Union[date, datetime]:
    """'YYYY-MM-DD' is a whole day, anything longer an ISO-8601 instant."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"Invalid {field}; use YYYY-MM-DD or ISO 8601")


def _range_bounds(date_from: DateLike, date_to: DateLike):
    """
    Dates cover whole UTC days; datetimes are used as given. Returns
    ``(start, end, end_inclusive)``: a plain ``date_to`` is widened to the
    next midnight and used exclusively, a timestamp ``date_to`` inclusively.
    """
    date_from = parse_range_bound(date_from, "date_from")
    date_to = parse_range_bound(date_to, "date_to")
    if isinstance(date_from, datetime):
        start = to_utc(date_from)
    else:
        start = datetime.combine(date_from, time.min)

    if isinstance(date_to, datetime):
        end = last = to_utc(date_to)
        end_inclusive = True
    else:
        last = datetime.combine(date_to, time.min)
        end = last + timedelta(days=1)
        end_inclusive = False

    if start > last:
        raise ValidationFailed("date_from must not be after date_to")
    return start, end, end_inclusive


def get_availability(
    db: Session,
    consultant_id: int,
    date_from: Optional[DateLike],
    date_to: Optional[DateLike],
) -> List[Dict[str, Any]]:
    """
    Active windows of ``consultant_id`` touching ``[date_from, date_to]``,
    ascending by start time.

    Raises:
        ValidationFailed: a bound is missing or the range is inverted
        NotFound: unknown consultant
    """
    if date_from in (None, "") or date_to in (None, ""):
        raise ValidationFailed("date_from and date_to are required")

    start, end, end_inclusive = _range_bounds(date_from, date_to)

    if not identity_crud.consultant_exists(db, consultant_id):
        raise NotFound("Consultant not found")

    windows = appointment_crud.list_active_windows(
        db,
        consultant_id,
        window_start=start,
        window_end=end,
        end_inclusive=end_inclusive,
    )
    return [
        {
            "start_time": a.start_time,
            "end_time": a.end_time,
            "duration_minutes": a.duration_minutes,
            "status": a.status,
        }
        for a in windows
    ]
