"""Pytest bootstrap and shared fixtures."""

from pathlib import Path
import os
import sys

# Settings are read at import time; give them test values first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EMAIL_NOTIFICATIONS_ENABLED", "false")

# Ensure project root is on sys.path so `import consultbook` works
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from consultbook.database import Base  # noqa: E402
from consultbook.domain import Actor, ActorRole  # noqa: E402
from consultbook.models.user import Consultant, User  # noqa: E402


# Monday 10:00 UTC, far enough ahead that nothing expires on its own
START = datetime(2030, 1, 7, 10, 0)


class RecordingNotifier:
    """Notifier that keeps every call for assertions."""

    def __init__(self):
        self.sent = []

    def notify_user(self, user_id, title, body, metadata=None):
        self.sent.append(("user", user_id, title, dict(metadata or {})))

    def notify_consultant(self, consultant_id, title, body, metadata=None):
        self.sent.append(("consultant", consultant_id, title, dict(metadata or {})))

    def events(self):
        return [entry[3].get("event") for entry in self.sent]


@pytest.fixture
def db_session():
    """Create test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def people(db_session):
    """Two users and two consultants"""
    db_session.add_all([
        User(id=1, name="Alice User", email="alice@test.com"),
        User(id=2, name="Bob User", email="bob@test.com"),
        Consultant(id=1, name="Dr. Carol", email="carol@test.com"),
        Consultant(id=2, name="Dr. Dan", email="dan@test.com"),
    ])
    db_session.commit()
    return {
        "alice": Actor(id=1, role=ActorRole.USER),
        "bob": Actor(id=2, role=ActorRole.USER),
        "carol": Actor(id=1, role=ActorRole.CONSULTANT),
        "dan": Actor(id=2, role=ActorRole.CONSULTANT),
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()
