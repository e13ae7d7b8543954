"""
Scheduling vocabulary shared by the store, the services and the API layer.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_SESSION = "in_session"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class ActorRole(str, enum.Enum):
    USER = "user"
    CONSULTANT = "consultant"
    ADMIN = "admin"
    SYSTEM = "system"


# Statuses that hold a consultant's time
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_SESSION.value,
    AppointmentStatus.BLOCKED.value,
)

# Statuses the expiry sweep and reminder job look at
EXPIRABLE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
)

EXPIRED_REASON = "Missed/Expired"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller identity as claimed by the request layer."""
    id: Optional[int]
    role: ActorRole

    @property
    def is_user(self) -> bool:
        return self.role == ActorRole.USER

    @property
    def is_consultant(self) -> bool:
        return self.role == ActorRole.CONSULTANT

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM


SYSTEM_ACTOR = Actor(id=None, role=ActorRole.SYSTEM)


def parse_status(value: str) -> Optional[AppointmentStatus]:
    """Return the matching status or None for unknown values."""
    if value is None:
        return None
    try:
        return AppointmentStatus(str(value).strip().lower())
    except ValueError:
        return None


def utcnow() -> datetime:
    """Current instant as naive UTC, the storage convention for all timestamps."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_utc(value: datetime) -> datetime:
    """Normalize an instant to naive UTC. Naive inputs are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.replace(microsecond=0)


def window_end(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)
