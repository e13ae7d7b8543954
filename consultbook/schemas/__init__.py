# consultbook/schemas/__init__.py

# Appointment schemas
from .appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AvailabilityResponse,
    BlockSlotRequest,
    BusyWindow,
    Pagination,
    ReasonRequest,
    RescheduleRequest,
    StatusUpdate,
)

# Review schemas
from .review import (
    ConsultantRatingResponse,
    ConsultantReviewsResponse,
    RatingRecalculationResponse,
    ReviewCreate,
    ReviewSubmitResponse,
)

__all__ = [
    "AppointmentCreate",
    "AppointmentListResponse",
    "AppointmentResponse",
    "AvailabilityResponse",
    "BlockSlotRequest",
    "BusyWindow",
    "Pagination",
    "ReasonRequest",
    "RescheduleRequest",
    "StatusUpdate",
    "ConsultantRatingResponse",
    "ConsultantReviewsResponse",
    "RatingRecalculationResponse",
    "ReviewCreate",
    "ReviewSubmitResponse",
]
