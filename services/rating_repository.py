from typing import Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from errors import TradeStateConflict
from models.rating_models import Rating


class MongoRatingRepository:
    def __init__(self, collection):
        self.collection = collection

    async def has_rated(self, trade_id: str, user_id: str) -> bool:
        rating = await self.collection.find_one({"trade_id": trade_id, "rater_id": user_id})
        return rating is not None

    async def get(self, trade_id: str, rater_id: str) -> Optional[Rating]:
        rating = await self.collection.find_one({"trade_id": trade_id, "rater_id": rater_id})
        if rating is None:
            return None
        rating.pop("_id", None)
        return Rating(**rating)

    async def add(self, rating: Rating) -> Rating:
        try:
            await self.collection.insert_one(rating.model_dump())
        except DuplicateKeyError:
            raise TradeStateConflict("You have already rated this trade", code="DUPLICATE_RATING")
        return rating

    async def list_for_user(self, user_id: str) -> List[Rating]:
        ratings = []
        async for rating in self.collection.find({"rated_user_id": user_id}).sort("created_at", -1):
            rating.pop("_id", None)
            ratings.append(Rating(**rating))
        return ratings

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("trade_id", 1), ("rater_id", 1)], unique=True)
        await self.collection.create_index([("rated_user_id", 1), ("created_at", -1)])


class MemoryRatingRepository:
    def __init__(self):
        self.ratings: Dict[Tuple[str, str], Rating] = {}

    async def has_rated(self, trade_id: str, user_id: str) -> bool:
        return (trade_id, user_id) in self.ratings

    async def get(self, trade_id: str, rater_id: str) -> Optional[Rating]:
        return self.ratings.get((trade_id, rater_id))

    async def add(self, rating: Rating) -> Rating:
        key = (rating.trade_id, rating.rater_id)
        if key in self.ratings:
            raise TradeStateConflict("You have already rated this trade", code="DUPLICATE_RATING")
        self.ratings[key] = rating
        return rating

    async def list_for_user(self, user_id: str) -> List[Rating]:
        ratings = [r for r in self.ratings.values() if r.rated_user_id == user_id]
        return sorted(ratings, key=lambda r: r.created_at, reverse=True)
