from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from consultbook.database import Base
from consultbook.domain import utcnow


# ---------------- USER (IDENTITY MIRROR) ----------------
# Profile CRUD lives in the identity service; these rows only carry what
# scheduling needs: existence, display name and a contact address.
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    appointments = relationship("Appointment", back_populates="user")
    reviews_given = relationship("Review", back_populates="user")


# ---------------- CONSULTANT ----------------
class Consultant(Base):
    __tablename__ = "consultants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Bumped by every booking-side write; the UPDATE doubles as the per-consultant lock
    schedule_version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    appointments = relationship("Appointment", back_populates="consultant")
    reviews_received = relationship("Review", back_populates="consultant")
    rating = relationship("ConsultantRating", back_populates="consultant", uselist=False)
