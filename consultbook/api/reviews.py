# consultbook/api/reviews.py
"""
Review & Rating API Router

Endpoints:
- POST /reviews/ - Submit a review of a consultant
- GET /reviews/consultant/{consultant_id} - Paginated reviews of a consultant
- GET /reviews/rating/{consultant_id} - Rating summary with distribution
- POST /reviews/admin/recalculate - Rebuild every rating summary (admin)
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from consultbook.api.dependencies import get_notifier
from consultbook.database import get_db
from consultbook.domain import Actor, ActorRole
from consultbook.schemas.review import (
    ConsultantRatingResponse,
    ConsultantReviewsResponse,
    RatingRecalculationResponse,
    ReviewCreate,
    ReviewSubmitResponse,
)
from consultbook.services import review_service
from consultbook.services.notification_service import Notifier
from consultbook.utils.security import get_current_actor, require_role

router = APIRouter(prefix="/reviews", tags=["reviews"])


# ======================
# SUBMIT REVIEW
# ======================
@router.post("/", response_model=ReviewSubmitResponse, status_code=status.HTTP_201_CREATED)
def submit_review(
    review: ReviewCreate,
    actor: Actor = Depends(require_role(ActorRole.USER)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Review a consultant.

    Requirements:
    - At least one completed appointment with the consultant
    - Only one review per consultant
    - Rating must be 1-5, text max 1000 characters

    Returns:
        Review details with the consultant's updated average
    """
    result = review_service.submit_review(
        db=db,
        user_id=actor.id,
        consultant_id=review.consultant_id,
        rating=review.rating,
        review_text=review.review_text,
        notifier=notifier,
    )
    return ReviewSubmitResponse(**result)


# ======================
# GET CONSULTANT REVIEWS
# ======================
@router.get("/consultant/{consultant_id}", response_model=ConsultantReviewsResponse)
def get_consultant_reviews(
    consultant_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["created_at", "rating"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return review_service.get_consultant_reviews(
        db,
        consultant_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# ======================
# RATING SUMMARY
# ======================
@router.get("/rating/{consultant_id}", response_model=ConsultantRatingResponse)
def get_consultant_rating(
    consultant_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return review_service.get_consultant_rating_summary(db, consultant_id)


# ======================
# ADMIN
# ======================
@router.post("/admin/recalculate", response_model=RatingRecalculationResponse)
def recalculate_ratings(
    actor: Actor = Depends(require_role(ActorRole.ADMIN)),
    db: Session = Depends(get_db),
):
    """Rebuild stored averages from the reviews table."""
    return review_service.recalculate_all_ratings(db)
