# consultbook/services/status_machine.py
"""
Status State Machine
Every appointment mutation after creation passes through here: ownership is
re-validated, the transition is checked against the table below, and the
write carries the row's version so a concurrent writer cannot be silently
overwritten.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy.orm import Session

from consultbook.crud import appointment as appointment_crud
from consultbook.domain import (
    ACTIVE_STATUSES,
    Actor,
    ActorRole,
    AppointmentStatus,
    parse_status,
    utcnow,
)
from consultbook.exceptions import Forbidden, InvalidStatus, NotFound
from consultbook.models.appointment import Appointment
from consultbook.services.notification_service import Notifier, notify_parties
from consultbook.services.transactions import unit_of_work

logger = logging.getLogger(__name__)

S = AppointmentStatus
R = ActorRole

# (from, to) -> roles allowed to request it
TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentStatus], FrozenSet[ActorRole]] = {
    (S.PENDING, S.CONFIRMED): frozenset({R.CONSULTANT}),
    (S.PENDING, S.REJECTED): frozenset({R.CONSULTANT}),
    (S.PENDING, S.CANCELLED): frozenset({R.USER, R.CONSULTANT, R.SYSTEM}),
    (S.CONFIRMED, S.CANCELLED): frozenset({R.USER, R.CONSULTANT, R.SYSTEM}),
    (S.PENDING, S.IN_SESSION): frozenset({R.USER, R.CONSULTANT}),
    (S.CONFIRMED, S.IN_SESSION): frozenset({R.USER, R.CONSULTANT}),
    (S.IN_SESSION, S.COMPLETED): frozenset({R.CONSULTANT, R.SYSTEM}),
    # Unblocking a withheld slot
    (S.BLOCKED, S.CANCELLED): frozenset({R.CONSULTANT}),
}

# Targets a user actor may request at all
USER_TARGETS = frozenset({S.CANCELLED, S.IN_SESSION})

# Targets that are only produced by booking, blocking or rescheduling
NON_REQUESTABLE = frozenset({S.PENDING, S.BLOCKED})

TRANSITION_MESSAGES = {
    S.CONFIRMED: ("Appointment Confirmed", "Your appointment on {when} was confirmed.", "You confirmed the appointment on {when}."),
    S.REJECTED: ("Appointment Rejected", "Your appointment request for {when} was rejected.", "You rejected the appointment request for {when}."),
    S.CANCELLED: ("Appointment Cancelled", "Your appointment on {when} was cancelled.", "The appointment on {when} was cancelled."),
    S.IN_SESSION: ("Session Started", "Your session scheduled for {when} has started.", "The session scheduled for {when} has started."),
    S.COMPLETED: ("Session Completed", "Your session on {when} is complete. You can now leave a review.", "The session on {when} was marked completed."),
}


def authorize(appointment: Appointment, actor: Actor) -> None:
    """Raise Forbidden unless ``actor`` owns a side of ``appointment``."""
    if actor.is_system:
        return
    if actor.is_user and actor.id is not None and appointment.user_id == actor.id:
        return
    if actor.is_consultant and actor.id is not None and appointment.consultant_id == actor.id:
        return
    raise Forbidden("Not authorized to update this appointment")


def check_transition(
    appointment: Appointment,
    actor: Actor,
    target: AppointmentStatus,
) -> None:
    current = AppointmentStatus(appointment.status)
    allowed_roles = TRANSITIONS.get((current, target))
    if allowed_roles is None:
        raise InvalidStatus(
            f"Cannot change appointment status from '{current.value}' to '{target.value}'"
        )
    if actor.role not in allowed_roles:
        raise Forbidden(f"{actor.role.value} cannot set status '{target.value}'")


def check_reschedulable(appointment: Appointment, actor: Actor) -> None:
    authorize(appointment, actor)
    if appointment.status not in ACTIVE_STATUSES:
        raise InvalidStatus(f"Cannot reschedule a {appointment.status} appointment")
    if appointment.status == S.BLOCKED.value and not actor.is_consultant:
        raise Forbidden("Only the consultant can move a blocked slot")


def _notify_transition(notifier: Optional[Notifier], appointment: Appointment, target: AppointmentStatus, actor: Actor) -> None:
    messages = TRANSITION_MESSAGES.get(target)
    if not messages:
        return
    title, user_body, consultant_body = messages
    when = appointment.start_time.isoformat()
    notify_parties(
        notifier,
        user_id=appointment.user_id,
        consultant_id=appointment.consultant_id,
        title=title,
        user_body=user_body.format(when=when),
        consultant_body=consultant_body.format(when=when),
        metadata={
            "event": f"appointment_{target.value}",
            "appointment_id": appointment.id,
            "actor_role": actor.role.value,
            "reason": appointment.cancellation_reason,
        },
    )


def transition(
    db: Session,
    actor: Actor,
    appointment_id: int,
    target_status: str,
    *,
    cancellation_reason: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Move one appointment to ``target_status`` on behalf of ``actor``.

    Raises:
        InvalidStatus: unknown target, a target that cannot be requested,
            or a transition not legal from the current state
        NotFound: no such appointment
        Forbidden: actor does not own the appointment or its role may not
            request this target
        ConcurrentUpdate: the row changed since it was read
    """
    target = parse_status(target_status)
    if target is None:
        raise InvalidStatus(f"Unknown status '{target_status}'")
    if actor.is_user and target not in USER_TARGETS:
        raise Forbidden("Users can only cancel or start their appointments")
    if target in NON_REQUESTABLE:
        raise InvalidStatus(f"Status '{target.value}' cannot be set directly")

    with unit_of_work(db, "status update"):
        appointment = appointment_crud.get_appointment_for_update(db, appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")

        authorize(appointment, actor)
        check_transition(appointment, actor, target)

        previous = appointment.status
        appointment_crud.write_status(
            appointment,
            target.value,
            cancellation_reason=cancellation_reason,
            now=now or utcnow(),
        )
        db.flush()

    logger.info(
        "Appointment %s: %s -> %s by %s %s",
        appointment.id,
        previous,
        target.value,
        actor.role.value,
        actor.id,
    )
    _notify_transition(notifier, appointment, target, actor)
    return appointment


# ======================
# EXPLICIT TRANSITIONS
# ======================

def confirm_appointment(db: Session, actor: Actor, appointment_id: int, notifier: Optional[Notifier] = None) -> Appointment:
    return transition(db, actor, appointment_id, S.CONFIRMED.value, notifier=notifier)


def reject_appointment(
    db: Session,
    actor: Actor,
    appointment_id: int,
    reason: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Appointment:
    return transition(db, actor, appointment_id, S.REJECTED.value, cancellation_reason=reason, notifier=notifier)


def cancel_appointment(
    db: Session,
    actor: Actor,
    appointment_id: int,
    reason: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Appointment:
    return transition(db, actor, appointment_id, S.CANCELLED.value, cancellation_reason=reason, notifier=notifier)


def start_session(db: Session, actor: Actor, appointment_id: int, notifier: Optional[Notifier] = None) -> Appointment:
    return transition(db, actor, appointment_id, S.IN_SESSION.value, notifier=notifier)


def complete_appointment(db: Session, actor: Actor, appointment_id: int, notifier: Optional[Notifier] = None) -> Appointment:
    """in_session -> completed; the consultant who owns it or the system."""
    return transition(db, actor, appointment_id, S.COMPLETED.value, notifier=notifier)
