# consultbook/crud/review.py
"""
Review CRUD Operations
Database operations for reviews and the stored consultant rating summary.
"""

from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import Optional, List, Tuple

from consultbook.domain import utcnow
from consultbook.exceptions import ValidationFailed
from consultbook.models.review import Review, ConsultantRating


SORTABLE_FIELDS = {"created_at": Review.created_at, "rating": Review.rating}


# ======================
# REVIEW CRUD
# ======================

def create_review(
    db: Session,
    appointment_id: int,
    user_id: int,
    consultant_id: int,
    rating: int,
    review_text: Optional[str] = None
) -> Review:
    """
    Insert a review row and flush it.

    Raises:
        ValidationFailed: If rating is out of range
    """
    if not (1 <= rating <= 5):
        raise ValidationFailed("Rating must be between 1 and 5")

    review = Review(
        appointment_id=appointment_id,
        user_id=user_id,
        consultant_id=consultant_id,
        rating=rating,
        review_text=review_text,
        created_at=utcnow(),
    )

    db.add(review)
    db.flush()
    return review


def get_review_by_pair(db: Session, consultant_id: int, user_id: int) -> Optional[Review]:
    """The review ``user_id`` left for ``consultant_id``, if any."""
    return db.query(Review).filter(
        Review.consultant_id == consultant_id,
        Review.user_id == user_id,
    ).first()


def get_reviews_by_consultant(
    db: Session,
    consultant_id: int,
    limit: int = 10,
    offset: int = 0,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[Review], int]:
    """
    Page of a consultant's reviews plus the total count.

    Unknown ``sort_by`` values fall back to ``created_at``.
    """
    column = SORTABLE_FIELDS.get(sort_by, Review.created_at)
    ordering = column.asc() if sort_order.lower() == "asc" else column.desc()

    query = db.query(Review).filter(Review.consultant_id == consultant_id)
    total = query.count()
    reviews = (
        query.order_by(ordering, Review.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return reviews, total


# ======================
# CONSULTANT RATING CRUD
# ======================

def get_or_create_consultant_rating(db: Session, consultant_id: int) -> ConsultantRating:
    rating = db.query(ConsultantRating).filter(
        ConsultantRating.consultant_id == consultant_id
    ).first()

    if not rating:
        rating = ConsultantRating(
            consultant_id=consultant_id,
            average_rating=0.0,
            total_reviews=0
        )
        db.add(rating)
        db.flush()

    return rating


def calculate_consultant_rating(db: Session, consultant_id: int) -> Tuple[float, int]:
    """
    Arithmetic mean of all ratings for a consultant, rounded to 2 places,
    and the review count.
    """
    result = db.query(
        func.avg(Review.rating).label('avg_rating'),
        func.count(Review.id).label('total')
    ).filter(
        Review.consultant_id == consultant_id
    ).first()

    avg_rating = round(float(result.avg_rating), 2) if result.avg_rating is not None else 0.0
    total = int(result.total) if result.total else 0

    return (avg_rating, total)


def update_consultant_rating(db: Session, consultant_id: int) -> ConsultantRating:
    """Recalculate from the reviews table and persist the summary."""
    consultant_rating = get_or_create_consultant_rating(db, consultant_id)
    avg_rating, total = calculate_consultant_rating(db, consultant_id)

    consultant_rating.average_rating = avg_rating
    consultant_rating.total_reviews = total
    consultant_rating.updated_at = utcnow()

    db.flush()
    return consultant_rating


def get_consultant_rating(db: Session, consultant_id: int) -> Optional[ConsultantRating]:
    return db.query(ConsultantRating).filter(
        ConsultantRating.consultant_id == consultant_id
    ).first()


def get_rating_distribution(db: Session, consultant_id: int) -> dict:
    """Counts per star value: {1: count, 2: count, ...}"""
    distribution = {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}

    results = db.query(
        Review.rating,
        func.count(Review.id).label('count')
    ).filter(
        Review.consultant_id == consultant_id
    ).group_by(
        Review.rating
    ).all()

    for rating, count in results:
        distribution[rating] = count

    return distribution


def list_reviewed_consultant_ids(db: Session) -> List[int]:
    return [row[0] for row in db.query(Review.consultant_id).distinct().all()]
