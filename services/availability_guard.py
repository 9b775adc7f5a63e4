import asyncio
import logging
from typing import Dict, Optional

from pymongo.errors import DuplicateKeyError

from errors import BookUnavailableError

logger = logging.getLogger(__name__)


class MemoryLockBackend:
    """Lock table kept in process memory, for tests and single-process runs"""

    def __init__(self):
        self._locks: Dict[str, str] = {}
        self._mutex = asyncio.Lock()

    async def acquire(self, book_id: str, trade_id: str) -> bool:
        async with self._mutex:
            holder = self._locks.get(book_id)
            if holder is not None and holder != trade_id:
                return False
            self._locks[book_id] = trade_id
            return True

    async def release(self, book_id: str, trade_id: Optional[str] = None) -> None:
        async with self._mutex:
            holder = self._locks.get(book_id)
            if holder is None:
                return
            if trade_id is None or holder == trade_id:
                del self._locks[book_id]

    async def holder(self, book_id: str) -> Optional[str]:
        return self._locks.get(book_id)


class MongoLockBackend:
    """Lock table stored as one document per locked book.

    The book id is the document ``_id``, so the unique primary key index makes
    ``insert_one`` the atomic test-and-set.
    """

    def __init__(self, collection):
        self.collection = collection

    async def acquire(self, book_id: str, trade_id: str) -> bool:
        try:
            await self.collection.insert_one({"_id": book_id, "trade_id": trade_id})
            return True
        except DuplicateKeyError:
            existing = await self.collection.find_one({"_id": book_id})
            return existing is not None and existing.get("trade_id") == trade_id

    async def release(self, book_id: str, trade_id: Optional[str] = None) -> None:
        query = {"_id": book_id}
        if trade_id is not None:
            query["trade_id"] = trade_id
        await self.collection.delete_one(query)

    async def holder(self, book_id: str) -> Optional[str]:
        lock = await self.collection.find_one({"_id": book_id})
        return lock.get("trade_id") if lock else None


class AvailabilityGuard:
    """Sole authority on whether a book may be committed to a trade"""

    def __init__(self, backend):
        self.backend = backend

    async def try_lock_pair(self, book_id_a: str, book_id_b: str, trade_id: str) -> None:
        acquired = []
        try:
            # ascending order keeps racing proposals from interleaving differently
            for book_id in sorted((book_id_a, book_id_b)):
                if not await self.backend.acquire(book_id, trade_id):
                    logger.warning("Book %s already committed, trade %s not locked", book_id, trade_id)
                    raise BookUnavailableError(book_id)
                acquired.append(book_id)
        except BaseException:
            for held in acquired:
                await self.backend.release(held, trade_id)
            raise

    async def release(self, book_id: str, trade_id: Optional[str] = None) -> None:
        await self.backend.release(book_id, trade_id)

    async def release_pair(self, book_id_a: str, book_id_b: str, trade_id: Optional[str] = None) -> None:
        for book_id in sorted((book_id_a, book_id_b)):
            await self.backend.release(book_id, trade_id)

    async def is_locked(self, book_id: str) -> Optional[str]:
        return await self.backend.holder(book_id)
