"""Durable storage for trades.

The engine only ever changes a stored trade through
``compare_and_swap_status``: the write lands only if the stored status (and,
when given, the version) still match what the caller read.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from bson import ObjectId
from pymongo import ReturnDocument

from errors import ConflictError, NotFoundError
from models.trade_models import Trade, TradeStatus


class TradeStore(Protocol):
    async def create(self, trade: Trade) -> Trade: ...

    async def get(self, trade_id: str) -> Trade: ...

    async def compare_and_swap_status(
        self,
        trade_id: str,
        expected_status: TradeStatus,
        update: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Trade: ...

    async def list_by_user(
        self, user_id: str, status: Optional[TradeStatus] = None, skip: int = 0, limit: int = 50
    ) -> List[Trade]: ...

    async def count_by_user(self, user_id: str, status: Optional[TradeStatus] = None) -> int: ...

    async def list_stale(self, status: TradeStatus, created_before: datetime) -> List[Trade]: ...


def serialize_trade(trade: Trade) -> dict:
    trade_dict = trade.model_dump(exclude={"id"})
    trade_dict["_id"] = ObjectId(trade.id)
    return trade_dict


def deserialize_trade(document: dict) -> Trade:
    document = dict(document)
    document["id"] = str(document.pop("_id"))
    return Trade(**document)


class MemoryTradeStore:
    def __init__(self):
        self._trades: Dict[str, Trade] = {}
        self._mutex = asyncio.Lock()

    async def create(self, trade: Trade) -> Trade:
        async with self._mutex:
            if trade.id in self._trades:
                raise ConflictError(trade.id, trade.status)
            self._trades[trade.id] = trade.model_copy(deep=True)
        return trade.model_copy(deep=True)

    async def get(self, trade_id: str) -> Trade:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found", code="TRADE_NOT_FOUND")
        return trade.model_copy(deep=True)

    async def compare_and_swap_status(self, trade_id, expected_status, update, expected_version=None):
        async with self._mutex:
            current = self._trades.get(trade_id)
            if current is None:
                raise NotFoundError(f"Trade {trade_id} not found", code="TRADE_NOT_FOUND")
            if current.status != expected_status or (
                expected_version is not None and current.version != expected_version
            ):
                raise ConflictError(trade_id, expected_status, current.status)
            changes = dict(update)
            changes["version"] = current.version + 1
            updated = current.model_copy(update=changes, deep=True)
            self._trades[trade_id] = updated
            return updated.model_copy(deep=True)

    async def list_by_user(self, user_id, status=None, skip=0, limit=50):
        trades = [
            t for t in self._trades.values()
            if user_id in (t.proposer_id, t.receiver_id) and (status is None or t.status == status)
        ]
        trades.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in trades[skip:skip + limit]]

    async def count_by_user(self, user_id, status=None):
        return sum(
            1 for t in self._trades.values()
            if user_id in (t.proposer_id, t.receiver_id) and (status is None or t.status == status)
        )

    async def list_stale(self, status, created_before):
        trades = [t for t in self._trades.values() if t.status == status and t.created_at < created_before]
        trades.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in trades]


class MongoTradeStore:
    def __init__(self, collection):
        self.collection = collection

    async def create(self, trade: Trade) -> Trade:
        await self.collection.insert_one(serialize_trade(trade))
        return trade

    async def get(self, trade_id: str) -> Trade:
        if not ObjectId.is_valid(trade_id):
            raise NotFoundError(f"Trade {trade_id} not found", code="TRADE_NOT_FOUND")
        document = await self.collection.find_one({"_id": ObjectId(trade_id)})
        if not document:
            raise NotFoundError(f"Trade {trade_id} not found", code="TRADE_NOT_FOUND")
        return deserialize_trade(document)

    async def compare_and_swap_status(self, trade_id, expected_status, update, expected_version=None):
        query = {"_id": ObjectId(trade_id), "status": expected_status.value}
        if expected_version is not None:
            query["version"] = expected_version

        document = await self.collection.find_one_and_update(
            query,
            {"$set": dict(update), "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            # tell a missing trade apart from a lost race
            current = await self.get(trade_id)
            raise ConflictError(trade_id, expected_status, current.status)
        return deserialize_trade(document)

    @staticmethod
    def _user_query(user_id, status=None):
        query = {"$or": [{"proposer_id": user_id}, {"receiver_id": user_id}]}
        if status:
            query["status"] = status.value
        return query

    async def list_by_user(self, user_id, status=None, skip=0, limit=50):
        query = self._user_query(user_id, status)
        trades = []
        cursor = self.collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
        async for document in cursor:
            trades.append(deserialize_trade(document))
        return trades

    async def count_by_user(self, user_id, status=None):
        return await self.collection.count_documents(self._user_query(user_id, status))

    async def list_stale(self, status, created_before):
        trades = []
        cursor = self.collection.find(
            {"status": status.value, "created_at": {"$lt": created_before}}
        ).sort("created_at", 1)
        async for document in cursor:
            trades.append(deserialize_trade(document))
        return trades

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("proposer_id", 1), ("status", 1)])
        await self.collection.create_index([("receiver_id", 1), ("status", 1)])
        await self.collection.create_index([("status", 1), ("created_at", -1)])
