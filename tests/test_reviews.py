"""
Review Gate Tests
Eligibility, duplicate prevention and rating aggregation.
"""

import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from consultbook.crud import appointment as appointment_crud
from consultbook.crud import review as review_crud
from consultbook.database import Base, create_db_engine
from consultbook.domain import Actor, ActorRole, AppointmentStatus
from consultbook.exceptions import (
    DuplicateReview,
    Internal,
    NoCompletedAppointment,
    NotFound,
    ValidationFailed,
)
from consultbook.models.review import ConsultantRating, Review
from consultbook.models.user import Consultant, User
from consultbook.services import appointment_service, review_service, status_machine
from consultbook.services.transactions import unit_of_work


START = datetime(2030, 1, 7, 10, 0)


def completed_appointment(db, people, user="alice", consultant="carol", offset_hours=0):
    user_actor, consultant_actor = people[user], people[consultant]
    appointment = appointment_service.create_appointment(
        db,
        consultant_id=consultant_actor.id,
        user_id=user_actor.id,
        start_time=START + timedelta(hours=offset_hours),
        duration_minutes=60,
    )
    status_machine.confirm_appointment(db, consultant_actor, appointment.id)
    status_machine.start_session(db, user_actor, appointment.id)
    status_machine.complete_appointment(db, consultant_actor, appointment.id)
    return appointment


# ======================
# GATING
# ======================

def test_review_requires_completed_appointment(db_session, people):
    appointment_service.create_appointment(db_session, consultant_id=1, user_id=1, start_time=START)

    with pytest.raises(NoCompletedAppointment):
        review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=5)
    assert db_session.query(Review).count() == 0


def test_review_once_after_completion(db_session, people, notifier):
    appointment = completed_appointment(db_session, people)

    result = review_service.submit_review(
        db_session, user_id=1, consultant_id=1, rating=5, review_text="  Very helpful  ", notifier=notifier
    )
    assert result["appointment_id"] == appointment.id
    assert result["review_text"] == "Very helpful"
    assert result["consultant_new_average"] == 5.0
    assert result["consultant_total_reviews"] == 1
    assert notifier.events() == ["review_received"]

    with pytest.raises(DuplicateReview):
        review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=3)
    assert db_session.query(Review).count() == 1


def test_review_uses_first_completed_appointment(db_session, people):
    first = completed_appointment(db_session, people, offset_hours=0)
    completed_appointment(db_session, people, offset_hours=3)

    result = review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=4)
    assert result["appointment_id"] == first.id


def test_review_unknown_consultant(db_session, people):
    with pytest.raises(NotFound):
        review_service.submit_review(db_session, user_id=1, consultant_id=42, rating=4)


@pytest.mark.parametrize("rating", [0, 6, "5", True])
def test_review_rating_must_be_one_to_five(db_session, people, rating):
    completed_appointment(db_session, people)

    with pytest.raises(ValidationFailed):
        review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=rating)


def test_review_text_limit(db_session, people):
    completed_appointment(db_session, people)

    with pytest.raises(ValidationFailed):
        review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=4, review_text="x" * 1001)


def test_database_refuses_second_review_for_pair(db_session, people):
    appointment = completed_appointment(db_session, people)
    review_crud.create_review(db_session, appointment.id, 1, 1, 5)
    db_session.commit()

    with pytest.raises(IntegrityError):
        review_crud.create_review(db_session, appointment.id, 1, 1, 4)
    db_session.rollback()


def test_crud_rejects_out_of_range_rating(db_session, people):
    appointment = completed_appointment(db_session, people)

    with pytest.raises(ValidationFailed, match="Rating must be between 1 and 5") as excinfo:
        review_crud.create_review(db_session, appointment.id, 1, 1, 6)
    assert excinfo.value.to_dict()["error"] == "ValidationError"
    assert db_session.query(Review).count() == 0


# ======================
# AGGREGATION
# ======================

def test_average_of_four_and_five(db_session, people):
    completed_appointment(db_session, people, user="alice", offset_hours=0)
    completed_appointment(db_session, people, user="bob", offset_hours=2)

    review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=4)
    result = review_service.submit_review(db_session, user_id=2, consultant_id=1, rating=5)

    assert result["consultant_new_average"] == 4.5
    stored = db_session.query(ConsultantRating).filter_by(consultant_id=1).one()
    assert stored.average_rating == 4.5
    assert stored.total_reviews == 2


def test_average_rounds_to_two_places(db_session, people):
    db_session.add(User(id=3, name="Cleo User"))
    db_session.commit()
    people = dict(people, cleo=Actor(id=3, role=ActorRole.USER))

    for user, rating, hours in (("alice", 5, 0), ("bob", 4, 2), ("cleo", 4, 4)):
        completed_appointment(db_session, people, user=user, offset_hours=hours)
        result = review_service.submit_review(
            db_session, user_id=people[user].id, consultant_id=1, rating=rating
        )

    assert result["consultant_new_average"] == 4.33
    assert result["consultant_total_reviews"] == 3


# ======================
# LISTING & SUMMARY
# ======================

def test_consultant_reviews_sorted_and_paginated(db_session, people):
    completed_appointment(db_session, people, user="alice", offset_hours=0)
    completed_appointment(db_session, people, user="bob", offset_hours=2)
    review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=2)
    review_service.submit_review(db_session, user_id=2, consultant_id=1, rating=5)

    page = review_service.get_consultant_reviews(
        db_session, 1, page=1, limit=1, sort_by="rating", sort_order="desc"
    )
    assert [r["rating"] for r in page["reviews"]] == [5]
    assert page["reviews"][0]["user_name"] == "Bob User"
    assert page["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_reviews": 2,
        "reviews_per_page": 1,
        "has_next": True,
        "has_previous": False,
    }
    assert page["statistics"]["average_rating"] == 3.5

    ascending = review_service.get_consultant_reviews(db_session, 1, sort_by="rating", sort_order="asc")
    assert [r["rating"] for r in ascending["reviews"]] == [2, 5]


def test_rating_summary_distribution(db_session, people):
    completed_appointment(db_session, people, user="alice", offset_hours=0)
    completed_appointment(db_session, people, user="bob", offset_hours=2)
    review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=4)
    review_service.submit_review(db_session, user_id=2, consultant_id=1, rating=4)

    summary = review_service.get_consultant_rating_summary(db_session, 1)
    assert summary["average_rating"] == 4.0
    assert summary["total_reviews"] == 2
    assert summary["rating_distribution"] == {1: 0, 2: 0, 3: 0, 4: 2, 5: 0}
    assert summary["rating_distribution_percentage"][4] == 100.0


def test_rating_summary_without_reviews(db_session, people):
    summary = review_service.get_consultant_rating_summary(db_session, 2)

    assert summary["average_rating"] == 0.0
    assert summary["total_reviews"] == 0
    assert summary["updated_at"] is None


def test_recalculate_repairs_summary(db_session, people):
    completed_appointment(db_session, people)
    review_service.submit_review(db_session, user_id=1, consultant_id=1, rating=3)

    stored = db_session.query(ConsultantRating).filter_by(consultant_id=1).one()
    stored.average_rating = 0.0
    stored.total_reviews = 0
    db_session.commit()

    result = review_service.recalculate_all_ratings(db_session)
    assert result["total_consultants"] == 1
    assert result["updated_count"] == 1

    db_session.expire_all()
    stored = db_session.query(ConsultantRating).filter_by(consultant_id=1).one()
    assert stored.average_rating == 3.0
    assert stored.total_reviews == 1


def test_concurrent_first_reviews_both_count(tmp_path):
    engine = create_db_engine(
        f"sqlite:///{tmp_path / 'reviews.db'}",
        connect_args={"timeout": 30},
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    with Session() as setup:
        setup.add_all([User(id=i, name=f"User {i}") for i in range(1, 5)])
        setup.add(Consultant(id=1, name="Dr. Carol"))
        setup.flush()
        for user_id in range(1, 5):
            appointment_crud.insert_appointment(
                setup,
                consultant_id=1,
                user_id=user_id,
                start_time=START + timedelta(hours=user_id),
                duration_minutes=60,
                status=AppointmentStatus.COMPLETED.value,
            )
        setup.commit()

    barrier = threading.Barrier(4)
    failures = []

    def attempt(user_id):
        with Session() as db:
            barrier.wait()
            try:
                review_service.submit_review(db, user_id=user_id, consultant_id=1, rating=user_id % 2 + 4)
            except Exception as exc:
                failures.append(exc)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(1, 5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert failures == []
    with Session() as check:
        summary = check.query(ConsultantRating).filter_by(consultant_id=1).one()
        assert summary.total_reviews == 4
        assert summary.average_rating == 4.5
        assert check.query(ConsultantRating).count() == 1
    engine.dispose()


def test_only_review_constraints_map_to_duplicate(db_session, people):
    db_session.add(ConsultantRating(consultant_id=1, average_rating=0.0, total_reviews=0))
    db_session.commit()

    with pytest.raises(Internal):
        with unit_of_work(
            db_session,
            "submit review",
            DuplicateReview,
            "Review already exists for this consultant",
            integrity_match=review_service.REVIEW_CONSTRAINTS,
        ):
            db_session.add(ConsultantRating(consultant_id=1, average_rating=0.0, total_reviews=0))
            db_session.flush()

    appointment = completed_appointment(db_session, people)
    review_crud.create_review(db_session, appointment.id, 1, 1, 5)
    db_session.commit()

    with pytest.raises(DuplicateReview):
        with unit_of_work(
            db_session,
            "submit review",
            DuplicateReview,
            "Review already exists for this consultant",
            integrity_match=review_service.REVIEW_CONSTRAINTS,
        ):
            review_crud.create_review(db_session, appointment.id, 1, 1, 4)
