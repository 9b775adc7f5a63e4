from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class RatingDenialReason(str, Enum):
    NOT_COMPLETED = "not_completed"
    NOT_PARTICIPANT = "not_participant"
    ALREADY_RATED = "already_rated"

class RatingEligibility(BaseModel):
    allowed: bool
    reason: Optional[RatingDenialReason] = None

class Rating(BaseModel):
    trade_id: str
    rater_id: str
    rated_user_id: str
    stars: int
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

class RatingSubmission(BaseModel):
    trade_id: str
    stars: int
    comment: Optional[str] = None

class RatingSummary(BaseModel):
    user_id: str
    average_rating: float = 0.0
    rating_count: int = 0
