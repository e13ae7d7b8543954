from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from consultbook.database import Base
from consultbook.models.notification import Notification
from consultbook.models.user import Consultant, User
from consultbook.services import notification_service


def _build_db():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    return SessionLocal()


def _create_people(db):
    user = User(name="Notify User", email="notify@test.edu")
    consultant = Consultant(name="Notify Consultant", email="consult@test.edu")
    db.add_all([user, consultant])
    db.commit()
    db.refresh(user)
    db.refresh(consultant)
    return user, consultant


def test_database_notifier_stores_rows_per_recipient():
    db = _build_db()
    try:
        user, consultant = _create_people(db)
        notifier = notification_service.DatabaseNotifier(db)

        notifier.notify_user(user.id, "Appointment Confirmed", "Confirmed", {"event": "appointment_confirmed"})
        notifier.notify_consultant(consultant.id, "New Appointment Request", "Requested", {"event": "appointment_requested"})
        notifier.notify_user(None, "Ignored", "No recipient")

        user_rows = db.query(Notification).filter(
            Notification.recipient_type == notification_service.RECIPIENT_USER,
            Notification.recipient_id == user.id,
            Notification.is_read.is_(False),
        ).all()
        assert [n.event_type for n in user_rows] == ["appointment_confirmed"]
        assert user_rows[0].data == {"event": "appointment_confirmed"}

        consultant_rows = db.query(Notification).filter(
            Notification.recipient_type == notification_service.RECIPIENT_CONSULTANT,
            Notification.recipient_id == consultant.id,
        ).all()
        assert [n.title for n in consultant_rows] == ["New Appointment Request"]
        assert db.query(Notification).count() == 2
    finally:
        db.close()


def test_database_notifier_failure_is_swallowed(monkeypatch):
    db = _build_db()
    try:
        user, _ = _create_people(db)

        def broken(*args, **kwargs):
            raise RuntimeError("notifications table locked")

        monkeypatch.setattr(notification_service, "create_notification", broken)
        notification_service.DatabaseNotifier(db).notify_user(user.id, "Title", "Body")

        assert db.query(Notification).count() == 0
    finally:
        db.close()


def test_notify_parties_skips_missing_side_and_survives_errors():
    calls = []

    class HalfBroken:
        def notify_user(self, user_id, title, body, metadata=None):
            raise RuntimeError("push gateway down")

        def notify_consultant(self, consultant_id, title, body, metadata=None):
            calls.append((consultant_id, title, body))

    notification_service.notify_parties(
        HalfBroken(),
        user_id=1,
        consultant_id=7,
        title="Appointment Cancelled",
        user_body="Your appointment was cancelled.",
        consultant_body="An appointment was cancelled.",
    )
    notification_service.notify_parties(
        HalfBroken(),
        user_id=None,
        consultant_id=8,
        title="Slot Blocked",
        consultant_body="Blocked.",
    )
    notification_service.notify_parties(None, user_id=1, consultant_id=1, title="Nothing")

    assert calls == [
        (7, "Appointment Cancelled", "An appointment was cancelled."),
        (8, "Slot Blocked", "Blocked."),
    ]


def test_dispatch_email_disabled_returns_false(monkeypatch):
    db = _build_db()
    try:
        user, _ = _create_people(db)
        notification = notification_service.create_notification(
            db,
            recipient_type=notification_service.RECIPIENT_USER,
            recipient_id=user.id,
            title="Reminder",
            body="Soon",
            metadata={"event": "appointment_reminder"},
        )
        db.commit()

        monkeypatch.setattr(notification_service, "is_email_enabled", lambda: False)
        assert notification_service.dispatch_email_for_notification(db, notification) is False
    finally:
        db.close()


def test_dispatch_email_failure_is_non_blocking(monkeypatch):
    db = _build_db()
    try:
        user, _ = _create_people(db)
        notification = notification_service.create_notification(
            db,
            recipient_type=notification_service.RECIPIENT_USER,
            recipient_id=user.id,
            title="Rejected",
            body="Declined",
            metadata={"event": "appointment_rejected"},
        )
        db.commit()

        def lookup_fails():
            raise RuntimeError("SMTP config unreadable")

        monkeypatch.setattr(notification_service, "is_email_enabled", lookup_fails)
        assert notification_service.dispatch_email_for_notification(db, notification) is False
    finally:
        db.close()


def test_dispatch_email_runs_on_worker_thread(monkeypatch):
    db = _build_db()
    try:
        user, _ = _create_people(db)
        notification = notification_service.create_notification(
            db,
            recipient_type=notification_service.RECIPIENT_USER,
            recipient_id=user.id,
            title="Appointment Confirmed",
            body="Confirmed",
            metadata={"event": "appointment_confirmed", "appointment_id": None},
        )
        db.commit()

        sent = []

        class InlineThread:
            def __init__(self, target, args, kwargs, daemon):
                self.target, self.args, self.kwargs = target, args, kwargs
                assert daemon is True

            def start(self):
                self.target(*self.args, **self.kwargs)

        monkeypatch.setattr(notification_service, "is_email_enabled", lambda: True)
        monkeypatch.setattr(notification_service, "send_email", lambda **kwargs: sent.append(kwargs) or True)
        monkeypatch.setattr(notification_service.threading, "Thread", InlineThread)

        assert notification_service.dispatch_email_for_notification(db, notification) is True
        assert sent[0]["to_email"] == "notify@test.edu"
        assert sent[0]["subject"] == "Your appointment was confirmed"
        assert "Hi Notify User" in sent[0]["body_text"]
    finally:
        db.close()
