# consultbook/api/dependencies.py
from fastapi import Depends
from sqlalchemy.orm import Session

from consultbook.database import get_db
from consultbook.services.notification_service import DatabaseNotifier, Notifier


def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    """Notifications share the request's session; overridden in tests."""
    return DatabaseNotifier(db)
