# consultbook/schemas/review.py
"""
Review & Rating Pydantic Schemas
"""

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime


# ======================
# REVIEW SCHEMAS
# ======================

class ReviewCreate(BaseModel):
    """Schema for creating a review"""
    consultant_id: int = Field(..., description="Consultant being reviewed")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5 stars")
    review_text: Optional[str] = Field(None, max_length=1000, description="Review text (max 1000 chars)")

    @field_validator('review_text')
    @classmethod
    def validate_review_text(cls, v):
        """Whitespace-only text is stored as no text"""
        if v is None:
            return None
        return v.strip() or None


class ReviewSubmitResponse(BaseModel):
    """Response after submitting a review"""
    review_id: int
    appointment_id: int
    consultant_id: int
    rating: int
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None
    consultant_new_average: float = Field(..., description="Consultant's updated average rating")
    consultant_total_reviews: int = Field(..., description="Consultant's total review count")
    message: str


class ReviewItem(BaseModel):
    id: int
    appointment_id: int
    rating: int
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None
    user_name: Optional[str] = None


class ReviewPagination(BaseModel):
    current_page: int
    total_pages: int
    total_reviews: int
    reviews_per_page: int
    has_next: bool
    has_previous: bool


class ConsultantReviewsResponse(BaseModel):
    reviews: List[ReviewItem]
    pagination: ReviewPagination
    statistics: Dict[str, float]


# ======================
# CONSULTANT RATING SCHEMAS
# ======================

class ConsultantRatingResponse(BaseModel):
    """Consultant rating summary response"""
    consultant_id: int = Field(..., description="Consultant ID")
    average_rating: float = Field(..., description="Average rating (0-5)")
    total_reviews: int = Field(..., description="Total number of reviews")
    rating_distribution: Dict[int, int] = Field(..., description="Count of each rating (1-5)")
    rating_distribution_percentage: Dict[int, float] = Field(..., description="Percentage of each rating")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


class RatingRecalculationResponse(BaseModel):
    """Response after recalculating all ratings"""
    total_consultants: int = Field(..., description="Total consultants processed")
    updated_count: int = Field(..., description="Successfully updated count")
    message: str
