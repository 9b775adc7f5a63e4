import asyncio
import logging
from typing import Dict

from bson import ObjectId

from errors import NotFoundError, TradeStateConflict
from models.book_models import BookOwnership

logger = logging.getLogger(__name__)


def serialize_book(book) -> BookOwnership:
    return BookOwnership(
        id=str(book["_id"]),
        owner_id=book.get("user_id"),
        book_name=book.get("bookName"),
        is_taken=book.get("is_taken", False),
    )


class MongoBookRepository:
    """Reads owners from the listings collection and performs the completion swap"""

    def __init__(self, collection):
        self.collection = collection

    async def get(self, book_id: str) -> BookOwnership:
        if not ObjectId.is_valid(book_id):
            raise NotFoundError(f"Book {book_id} not found", code="BOOK_NOT_FOUND")
        book = await self.collection.find_one({"_id": ObjectId(book_id)})
        if not book:
            raise NotFoundError(f"Book {book_id} not found", code="BOOK_NOT_FOUND")
        return serialize_book(book)

    async def _move(self, book_id: str, from_owner: str, to_owner: str) -> bool:
        result = await self.collection.update_one(
            {"_id": ObjectId(book_id), "user_id": from_owner},
            {"$set": {"user_id": to_owner}},
        )
        return result.matched_count == 1

    async def swap_owners(self, offered_book_id: str, requested_book_id: str, proposer_id: str, receiver_id: str) -> None:
        if not await self._move(offered_book_id, proposer_id, receiver_id):
            raise TradeStateConflict(f"Book {offered_book_id} is no longer owned by {proposer_id}")
        if not await self._move(requested_book_id, receiver_id, proposer_id):
            await self._move(offered_book_id, receiver_id, proposer_id)
            raise TradeStateConflict(f"Book {requested_book_id} is no longer owned by {receiver_id}")
        logger.info("Swapped owners of books %s and %s", offered_book_id, requested_book_id)

    async def unswap_owners(self, offered_book_id: str, requested_book_id: str, proposer_id: str, receiver_id: str) -> None:
        await self._move(offered_book_id, receiver_id, proposer_id)
        await self._move(requested_book_id, proposer_id, receiver_id)


class MemoryBookRepository:
    def __init__(self):
        self.books: Dict[str, BookOwnership] = {}
        self._mutex = asyncio.Lock()

    def add(self, owner_id: str, book_name: str = None, is_taken: bool = False) -> BookOwnership:
        book = BookOwnership(id=str(ObjectId()), owner_id=owner_id, book_name=book_name, is_taken=is_taken)
        self.books[book.id] = book
        return book

    def set_owner(self, book_id: str, owner_id: str) -> None:
        self.books[book_id] = self.books[book_id].model_copy(update={"owner_id": owner_id})

    async def get(self, book_id: str) -> BookOwnership:
        book = self.books.get(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found", code="BOOK_NOT_FOUND")
        return book.model_copy()

    async def swap_owners(self, offered_book_id, requested_book_id, proposer_id, receiver_id):
        async with self._mutex:
            offered = self.books.get(offered_book_id)
            requested = self.books.get(requested_book_id)
            if offered is None or offered.owner_id != proposer_id:
                raise TradeStateConflict(f"Book {offered_book_id} is no longer owned by {proposer_id}")
            if requested is None or requested.owner_id != receiver_id:
                raise TradeStateConflict(f"Book {requested_book_id} is no longer owned by {receiver_id}")
            self.books[offered_book_id] = offered.model_copy(update={"owner_id": receiver_id})
            self.books[requested_book_id] = requested.model_copy(update={"owner_id": proposer_id})

    async def unswap_owners(self, offered_book_id, requested_book_id, proposer_id, receiver_id):
        async with self._mutex:
            self.books[offered_book_id] = self.books[offered_book_id].model_copy(update={"owner_id": proposer_id})
            self.books[requested_book_id] = self.books[requested_book_id].model_copy(update={"owner_id": receiver_id})
