"""
Error taxonomy raised by the scheduling services.

Every error carries a stable ``kind`` and the HTTP status the request layer
answers with. Services raise these and never ``HTTPException``.
"""


class SchedulingError(Exception):
    kind = "Internal"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class NotFound(SchedulingError):
    """Consultant, user or appointment missing."""
    kind = "NotFound"
    status_code = 404


class Forbidden(SchedulingError):
    """Actor not authorized for this appointment or role."""
    kind = "Forbidden"
    status_code = 403


class SlotTaken(SchedulingError):
    """Candidate window overlaps an active booking."""
    kind = "SlotTaken"
    status_code = 409


class AlreadyBlocked(SlotTaken):
    kind = "AlreadyBlocked"


class InvalidStatus(SchedulingError):
    """Unknown target status, or a transition not legal from the current state."""
    kind = "InvalidStatus"
    status_code = 400


class ConcurrentUpdate(SchedulingError):
    """The appointment changed between read and write."""
    kind = "ConcurrentUpdate"
    status_code = 409


class DuplicateReview(SchedulingError):
    kind = "DuplicateReview"
    status_code = 409


class NoCompletedAppointment(SchedulingError):
    kind = "NoCompletedAppointment"
    status_code = 400


class ValidationFailed(SchedulingError):
    """Missing or malformed required fields."""
    kind = "ValidationError"
    status_code = 422


class Internal(SchedulingError):
    """Store failure."""
    kind = "Internal"
    status_code = 500


# Errors a caller may retry with different input
RETRYABLE_WITH_NEW_INPUT = (SlotTaken, DuplicateReview, NoCompletedAppointment)
# Errors a caller may retry unchanged
RETRYABLE_AS_IS = (Internal, ConcurrentUpdate)
