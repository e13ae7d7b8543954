# consultbook/api/appointments.py
"""
Appointment API Router

Endpoints:
- POST /appointments/ - Book a consultant (user)
- GET /appointments/ - List own appointments with filters and pagination
- POST /appointments/block - Block a slot in own schedule (consultant)
- GET /appointments/consultants/{consultant_id}/availability - Busy windows
- GET /appointments/{appointment_id} - One appointment
- PATCH /appointments/{appointment_id}/status - Generic status change
- POST /appointments/{appointment_id}/confirm|reject|cancel|start|complete
- POST /appointments/{appointment_id}/reschedule - Move to a new window

Domain errors raised by the services are rendered by the application-wide
handler in ``consultbook.main``.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from consultbook.api.dependencies import get_notifier
from consultbook.database import get_db
from consultbook.domain import Actor, ActorRole
from consultbook.schemas.appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AvailabilityResponse,
    BlockSlotRequest,
    ReasonRequest,
    RescheduleRequest,
    StatusUpdate,
)
from consultbook.services import appointment_service, availability_service, status_machine
from consultbook.services.notification_service import Notifier
from consultbook.utils.security import get_current_actor, require_role

router = APIRouter(prefix="/appointments", tags=["appointments"])


# ======================
# BOOKING
# ======================
@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    actor: Actor = Depends(require_role(ActorRole.USER)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Book a pending appointment; 409 when the window is taken."""
    return appointment_service.create_appointment(
        db,
        consultant_id=payload.consultant_id,
        user_id=actor.id,
        start_time=payload.start_time,
        duration_minutes=payload.duration_minutes,
        title=payload.title,
        description=payload.description,
        mood=payload.mood,
        notifier=notifier,
    )


@router.post("/block", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def block_slot(
    payload: BlockSlotRequest,
    actor: Actor = Depends(require_role(ActorRole.CONSULTANT)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return appointment_service.block_slot(
        db,
        consultant_id=actor.id,
        start_time=payload.start_time,
        duration_minutes=payload.duration_minutes,
        notifier=notifier,
    )


# ======================
# READS
# ======================
@router.get("/", response_model=AppointmentListResponse)
def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status", description="Comma-separated statuses"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    on_date: Optional[date] = Query(None, alias="date", description="Appointments starting on this UTC day"),
    reviewed: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return appointment_service.list_appointments(
        db,
        actor,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        on_date=on_date,
        reviewed=reviewed,
        page=page,
        limit=limit,
    )


@router.get("/consultants/{consultant_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    consultant_id: int,
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD or ISO 8601"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD or ISO 8601"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Windows the consultant is busy in; any authenticated caller may ask."""
    windows = availability_service.get_availability(db, consultant_id, date_from, date_to)
    return {"consultant_id": consultant_id, "appointments": windows}


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return appointment_service.get_appointment_for_actor(db, actor, appointment_id)


# ======================
# STATUS CHANGES
# ======================
@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
def update_status(
    appointment_id: int,
    payload: StatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return status_machine.transition(
        db,
        actor,
        appointment_id,
        payload.status,
        cancellation_reason=payload.cancellation_reason,
        notifier=notifier,
    )


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    actor: Actor = Depends(require_role(ActorRole.CONSULTANT)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return status_machine.confirm_appointment(db, actor, appointment_id, notifier=notifier)


@router.post("/{appointment_id}/reject", response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    payload: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_role(ActorRole.CONSULTANT)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    reason = payload.reason if payload else None
    return status_machine.reject_appointment(db, actor, appointment_id, reason=reason, notifier=notifier)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    payload: Optional[ReasonRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Either party cancels; a consultant cancelling a blocked slot frees it."""
    reason = payload.reason if payload else None
    return status_machine.cancel_appointment(db, actor, appointment_id, reason=reason, notifier=notifier)


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
def start_session(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return status_machine.start_session(db, actor, appointment_id, notifier=notifier)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    actor: Actor = Depends(require_role(ActorRole.CONSULTANT)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return status_machine.complete_appointment(db, actor, appointment_id, notifier=notifier)


# ======================
# RESCHEDULE
# ======================
@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Move to a new window; the appointment goes back to pending for reconfirmation."""
    return appointment_service.reschedule_appointment(
        db,
        actor,
        appointment_id,
        start_time=payload.start_time,
        duration_minutes=payload.duration_minutes,
        notifier=notifier,
    )
