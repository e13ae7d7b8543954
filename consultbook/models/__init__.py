# consultbook/models/__init__.py
# Import models in dependency order
from .user import User, Consultant
from .appointment import Appointment
from .review import Review, ConsultantRating
from .notification import Notification

__all__ = ["User", "Consultant", "Appointment", "Review", "ConsultantRating", "Notification"]
