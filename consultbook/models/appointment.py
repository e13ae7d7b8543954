# consultbook/models/appointment.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    DateTime,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from consultbook.database import Base
from consultbook.domain import AppointmentStatus, ACTIVE_STATUSES, utcnow, window_end


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    consultant_id = Column(Integer, ForeignKey("consultants.id"), nullable=False)
    title = Column(String(200))
    description = Column(Text)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=90)
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)
    cancellation_reason = Column(String(500))
    mood = Column(Integer)
    reminder_sent_at = Column(DateTime)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_appointment_duration_positive"),
        CheckConstraint("mood IS NULL OR (mood >= 1 AND mood <= 10)", name="ck_appointment_mood_range"),
        CheckConstraint(
            "user_id IS NOT NULL OR status IN ('blocked', 'cancelled')",
            name="ck_appointment_user_required",
        ),
        Index("ix_appointment_consultant_status_start", "consultant_id", "status", "start_time"),
        Index("ix_appointment_user_start", "user_id", "start_time"),
    )

    # Rows read and then written by the ORM carry their version in the UPDATE
    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="appointments")
    consultant = relationship("Consultant", back_populates="appointments")
    review = relationship("Review", back_populates="appointment", uselist=False)

    def set_window(self, start_time, duration_minutes: int) -> None:
        self.start_time = start_time
        self.duration_minutes = duration_minutes
        self.end_time = window_end(start_time, duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Appointment id={self.id} consultant={self.consultant_id} "
            f"user={self.user_id} {self.status} {self.start_time}>"
        )
