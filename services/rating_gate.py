from typing import Optional

from bson import ObjectId

from errors import AuthorizationError, NotFoundError, TradeStateConflict, ValidationError
from models.rating_models import Rating, RatingDenialReason, RatingEligibility, RatingSummary
from models.trade_models import TradeStatus


class RatingGate:
    """Decides who may rate a trade. Only completed trades can be rated,
    only by the two parties, and only once each."""

    def __init__(self, store, ratings):
        self.store = store
        self.ratings = ratings

    async def can_rate(self, trade_id: str, user_id: str) -> RatingEligibility:
        trade = await self.store.get(trade_id)
        if trade.status != TradeStatus.COMPLETED:
            return RatingEligibility(allowed=False, reason=RatingDenialReason.NOT_COMPLETED)
        if not trade.is_participant(user_id):
            return RatingEligibility(allowed=False, reason=RatingDenialReason.NOT_PARTICIPANT)
        if await self.ratings.has_rated(trade_id, user_id):
            return RatingEligibility(allowed=False, reason=RatingDenialReason.ALREADY_RATED)
        return RatingEligibility(allowed=True)

    async def submit_rating(self, trade_id: str, rater_id: str, stars: int, comment: Optional[str] = None) -> Rating:
        if isinstance(stars, bool) or not isinstance(stars, int):
            raise ValidationError("Stars must be an integer value", code="INVALID_STARS")
        if stars < 1 or stars > 5:
            raise ValidationError("Stars must be a number between 1 and 5", code="INVALID_STARS")
        comment = comment.strip() if comment else None
        if stars <= 3 and not comment:
            raise ValidationError("Comment is required for ratings of 3 stars or lower", code="COMMENT_REQUIRED")

        eligibility = await self.can_rate(trade_id, rater_id)
        if eligibility.reason == RatingDenialReason.NOT_COMPLETED:
            raise TradeStateConflict("Only completed trades can be rated", code="TRADE_NOT_COMPLETED")
        if eligibility.reason == RatingDenialReason.NOT_PARTICIPANT:
            raise AuthorizationError("You can only rate trades you are part of")
        if eligibility.reason == RatingDenialReason.ALREADY_RATED:
            raise TradeStateConflict("You have already rated this trade", code="DUPLICATE_RATING")

        trade = await self.store.get(trade_id)
        rating = Rating(
            trade_id=trade_id,
            rater_id=rater_id,
            rated_user_id=trade.other_party(rater_id),
            stars=stars,
            comment=comment,
        )
        return await self.ratings.add(rating)

    async def rating_for(self, trade_id: str, rater_id: str) -> Rating:
        """The rating ``rater_id`` left on a trade."""
        if not ObjectId.is_valid(trade_id):
            raise ValidationError("Invalid trade ID format", code="INVALID_TRADE_ID")
        rating = await self.ratings.get(trade_id, rater_id)
        if rating is None:
            raise NotFoundError("Rating not found", code="RATING_NOT_FOUND")
        return rating

    async def summary_for(self, user_id: str) -> RatingSummary:
        ratings = await self.ratings.list_for_user(user_id)
        if not ratings:
            return RatingSummary(user_id=user_id)
        total = sum(r.stars for r in ratings)
        return RatingSummary(user_id=user_id, average_rating=round(total / len(ratings), 2), rating_count=len(ratings))
