# consultbook/api/__init__.py
from . import appointments
from . import reviews

__all__ = [
    "appointments",
    "reviews",
]
