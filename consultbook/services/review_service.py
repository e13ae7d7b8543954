# consultbook/services/review_service.py
"""
Review Gate
One review per (consultant, user), only after a completed appointment.
This is the only writer of the consultant rating summary.
"""

import logging
import math
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from consultbook.crud import appointment as appointment_crud
from consultbook.crud import identity as identity_crud
from consultbook.crud import review as review_crud
from consultbook.exceptions import (
    DuplicateReview,
    NoCompletedAppointment,
    NotFound,
    ValidationFailed,
)
from consultbook.models.review import Review
from consultbook.services.notification_service import Notifier, notify_parties
from consultbook.services.transactions import unit_of_work

logger = logging.getLogger(__name__)

MAX_REVIEW_TEXT = 1000

# Unique constraints whose violation means the pair already has a review
REVIEW_CONSTRAINTS = (
    "uq_review_consultant_user",
    "uq_review_appointment_user",
    "reviews.consultant_id",
    "reviews.appointment_id",
)


# ======================
# REVIEW SUBMISSION
# ======================

def submit_review(
    db: Session,
    user_id: int,
    consultant_id: int,
    rating: int,
    review_text: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Dict[str, Any]:
    """
    Submit a review of a consultant.

    Validates eligibility, creates the review against the user's first
    completed appointment with the consultant, and recomputes the stored
    average in the same transaction.

    Returns:
        Dictionary with review details and the consultant's new average

    Raises:
        ValidationFailed: rating outside 1..5 or text too long
        NotFound: unknown consultant
        DuplicateReview: the user already reviewed this consultant
        NoCompletedAppointment: no completed appointment for the pair
    """
    if not isinstance(rating, int) or isinstance(rating, bool) or not (1 <= rating <= 5):
        raise ValidationFailed("Rating must be between 1 and 5")

    if review_text is not None:
        review_text = review_text.strip() or None
    if review_text and len(review_text) > MAX_REVIEW_TEXT:
        raise ValidationFailed(f"Review text must be {MAX_REVIEW_TEXT} characters or less")

    if not identity_crud.consultant_exists(db, consultant_id):
        raise NotFound("Consultant not found")

    with unit_of_work(
        db,
        "submit review",
        DuplicateReview,
        "Review already exists for this consultant",
        integrity_match=REVIEW_CONSTRAINTS,
    ):
        # Serializes reviews of one consultant so the summary row is created
        # once and every average sees the previous commits
        if not appointment_crud.lock_consultant_schedule(db, consultant_id):
            raise NotFound("Consultant not found")

        if review_crud.get_review_by_pair(db, consultant_id, user_id):
            raise DuplicateReview("Review already exists for this consultant")

        appointment = appointment_crud.first_completed_appointment(db, user_id, consultant_id)
        if appointment is None:
            raise NoCompletedAppointment(
                "You must have a completed appointment with this consultant to leave a review"
            )

        review = review_crud.create_review(
            db=db,
            appointment_id=appointment.id,
            user_id=user_id,
            consultant_id=consultant_id,
            rating=rating,
            review_text=review_text,
        )
        updated_rating = review_crud.update_consultant_rating(db, consultant_id)
        result = {
            "review_id": review.id,
            "appointment_id": review.appointment_id,
            "consultant_id": consultant_id,
            "rating": review.rating,
            "review_text": review.review_text,
            "created_at": review.created_at,
            "consultant_new_average": updated_rating.average_rating,
            "consultant_total_reviews": updated_rating.total_reviews,
            "message": "Review added successfully",
        }

    logger.info(
        "Review %s by user %s for consultant %s; average now %.2f",
        result["review_id"],
        user_id,
        consultant_id,
        result["consultant_new_average"],
    )
    notify_parties(
        notifier,
        user_id=None,
        consultant_id=consultant_id,
        title="New Review",
        consultant_body=f"You received a {rating}-star review.",
        metadata={"event": "review_received", "appointment_id": result["appointment_id"]},
    )
    return result


# ======================
# REVIEW RETRIEVAL
# ======================

def get_consultant_reviews(
    db: Session,
    consultant_id: int,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """Paginated reviews of a consultant with the stored average."""
    if not identity_crud.consultant_exists(db, consultant_id):
        raise NotFound("Consultant not found")
    if page < 1 or limit < 1:
        raise ValidationFailed("page and limit must be 1 or greater")

    reviews, total = review_crud.get_reviews_by_consultant(
        db,
        consultant_id,
        limit=limit,
        offset=(page - 1) * limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    total_pages = math.ceil(total / limit) if total else 0
    summary = review_crud.get_consultant_rating(db, consultant_id)

    return {
        "reviews": [_format_review(r) for r in reviews],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_reviews": total,
            "reviews_per_page": limit,
            "has_next": page < total_pages,
            "has_previous": page > 1,
        },
        "statistics": {
            "average_rating": summary.average_rating if summary else 0.0,
        },
    }


def _format_review(r: Review) -> Dict[str, Any]:
    return {
        "id": r.id,
        "appointment_id": r.appointment_id,
        "rating": r.rating,
        "review_text": r.review_text,
        "created_at": r.created_at,
        "user_name": r.user.name if r.user else None,
    }


def get_consultant_rating_summary(db: Session, consultant_id: int) -> Dict[str, Any]:
    """Stored average, total and per-star distribution."""
    if not identity_crud.consultant_exists(db, consultant_id):
        raise NotFound("Consultant not found")

    summary = review_crud.get_consultant_rating(db, consultant_id)
    distribution = review_crud.get_rating_distribution(db, consultant_id)
    total = summary.total_reviews if summary else 0

    return {
        "consultant_id": consultant_id,
        "average_rating": summary.average_rating if summary else 0.0,
        "total_reviews": total,
        "rating_distribution": distribution,
        "rating_distribution_percentage": {
            k: round((v / total * 100) if total > 0 else 0, 1)
            for k, v in distribution.items()
        },
        "updated_at": summary.updated_at if summary else None,
    }


# ======================
# ADMIN OPERATIONS
# ======================

def recalculate_all_ratings(db: Session) -> Dict[str, Any]:
    """Recompute every consultant summary from the reviews table."""
    consultant_ids = review_crud.list_reviewed_consultant_ids(db)

    with unit_of_work(db, "rating recalculation"):
        for consultant_id in consultant_ids:
            review_crud.update_consultant_rating(db, consultant_id)

    logger.info("Recalculated ratings for %s consultants", len(consultant_ids))
    return {
        "total_consultants": len(consultant_ids),
        "updated_count": len(consultant_ids),
        "message": "Rating recalculation complete",
    }
