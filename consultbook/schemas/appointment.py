from pydantic import BaseModel, ConfigDict, Field, field_serializer
from typing import List, Optional
from datetime import datetime, UTC


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


# ======================
# APPOINTMENT REQUEST MODELS
# ======================

class AppointmentCreate(BaseModel):
    consultant_id: int
    start_time: datetime = Field(..., description="ISO-8601 instant; naive values are taken as UTC")
    duration_minutes: Optional[int] = Field(None, gt=0)
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    mood: Optional[int] = Field(None, ge=1, le=10)


class BlockSlotRequest(BaseModel):
    start_time: datetime
    duration_minutes: Optional[int] = Field(None, gt=0)


# ======================
# APPOINTMENT UPDATE MODELS
# ======================

class StatusUpdate(BaseModel):
    status: str  # "confirmed", "rejected", "cancelled", "in_session", "completed"
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    start_time: datetime
    duration_minutes: Optional[int] = Field(None, gt=0)


# ======================
# APPOINTMENT RESPONSE MODELS
# ======================

class AppointmentReview(BaseModel):
    review_id: int = Field(validation_alias="id")
    rating: int
    review_text: Optional[str] = None
    review_date: datetime = Field(validation_alias="created_at")

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("review_date")
    def _serialize_instant(self, value: datetime):
        return _as_utc(value)


class AppointmentResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    consultant_id: int
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    cancellation_reason: Optional[str] = None
    mood: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    review: Optional[AppointmentReview] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("start_time", "end_time", "created_at", "updated_at")
    def _serialize_instant(self, value: Optional[datetime]):
        return _as_utc(value)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class AppointmentListResponse(BaseModel):
    items: List[AppointmentResponse]
    pagination: Pagination


class BusyWindow(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str

    @field_serializer("start_time", "end_time")
    def _serialize_instant(self, value: datetime):
        return _as_utc(value)


class AvailabilityResponse(BaseModel):
    consultant_id: int
    appointments: List[BusyWindow]
