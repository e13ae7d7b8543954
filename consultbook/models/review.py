# consultbook/models/review.py
from sqlalchemy import (
    Column,
    Integer,
    Text,
    ForeignKey,
    DateTime,
    Float,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from consultbook.database import Base
from consultbook.domain import utcnow


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    consultant_id = Column(Integer, ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Constraints
    __table_args__ = (
        CheckConstraint('rating >= 1 AND rating <= 5', name='check_rating_range'),
        UniqueConstraint('consultant_id', 'user_id', name='uq_review_consultant_user'),
        UniqueConstraint('appointment_id', 'user_id', name='uq_review_appointment_user'),
    )

    # Relationships
    appointment = relationship("Appointment", back_populates="review")
    user = relationship("User", back_populates="reviews_given")
    consultant = relationship("Consultant", back_populates="reviews_received")


class ConsultantRating(Base):
    __tablename__ = "consultant_ratings"

    id = Column(Integer, primary_key=True, index=True)
    consultant_id = Column(Integer, ForeignKey("consultants.id", ondelete="CASCADE"), unique=True, nullable=False)
    average_rating = Column(Float, default=0.0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationship
    consultant = relationship("Consultant", back_populates="rating")
