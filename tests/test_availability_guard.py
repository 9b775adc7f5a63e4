"""Tests for AvailabilityGuard and its lock backends."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import DuplicateKeyError

from errors import BookUnavailableError
from services.availability_guard import AvailabilityGuard, MemoryLockBackend, MongoLockBackend


@pytest.fixture
def guard():
    return AvailabilityGuard(MemoryLockBackend())


class TestTryLockPair:

    @pytest.mark.asyncio
    async def test_locks_both_books(self, guard):
        await guard.try_lock_pair("b", "a", "t1")

        assert await guard.is_locked("a") == "t1"
        assert await guard.is_locked("b") == "t1"

    @pytest.mark.asyncio
    async def test_conflict_leaves_no_partial_lock(self, guard):
        await guard.try_lock_pair("b", "c", "t1")

        with pytest.raises(BookUnavailableError) as exc_info:
            await guard.try_lock_pair("a", "b", "t2")

        assert exc_info.value.book_id == "b"
        assert await guard.is_locked("a") is None
        assert await guard.is_locked("b") == "t1"

    @pytest.mark.asyncio
    async def test_same_trade_can_relock(self, guard):
        await guard.try_lock_pair("a", "b", "t1")
        await guard.try_lock_pair("a", "b", "t1")

        assert await guard.is_locked("a") == "t1"

    @pytest.mark.asyncio
    async def test_books_are_acquired_in_ascending_order(self):
        backend = AsyncMock()
        backend.acquire.return_value = True
        guard = AvailabilityGuard(backend)

        await guard.try_lock_pair("zzz", "aaa", "t1")

        assert [c.args[0] for c in backend.acquire.await_args_list] == ["aaa", "zzz"]

    @pytest.mark.asyncio
    async def test_backend_error_releases_first_book(self):
        backend = MemoryLockBackend()
        real_acquire = backend.acquire

        async def acquire(book_id, trade_id):
            if book_id == "b":
                raise ConnectionError("lock store unreachable")
            return await real_acquire(book_id, trade_id)

        backend.acquire = acquire
        guard = AvailabilityGuard(backend)

        with pytest.raises(ConnectionError):
            await guard.try_lock_pair("a", "b", "t1")

        assert await guard.is_locked("a") is None
        assert await guard.is_locked("b") is None

    @pytest.mark.asyncio
    async def test_racing_pairs_over_shared_book(self, guard):
        results = await asyncio.gather(
            guard.try_lock_pair("a", "shared", "t1"),
            guard.try_lock_pair("shared", "z", "t2"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BookUnavailableError)]
        assert len(failures) == 1
        winner = "t1" if results[0] is None else "t2"
        assert await guard.is_locked("shared") == winner
        held = [await guard.is_locked(b) for b in ("a", "z")]
        assert held.count(None) == 1


class TestRelease:

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, guard):
        await guard.release("never-locked")
        await guard.try_lock_pair("a", "b", "t1")
        await guard.release("a")
        await guard.release("a")

        assert await guard.is_locked("a") is None
        assert await guard.is_locked("b") == "t1"

    @pytest.mark.asyncio
    async def test_release_with_trade_only_drops_own_lock(self, guard):
        await guard.try_lock_pair("a", "b", "t1")
        await guard.release_pair("a", "b", "t2")

        assert await guard.is_locked("a") == "t1"

        await guard.release_pair("a", "b", "t1")
        assert await guard.is_locked("a") is None


class TestMongoLockBackend:

    @pytest.mark.asyncio
    async def test_acquire_inserts_book_document(self):
        collection = AsyncMock()
        backend = MongoLockBackend(collection)

        assert await backend.acquire("book1", "t1") is True
        collection.insert_one.assert_awaited_once_with({"_id": "book1", "trade_id": "t1"})

    @pytest.mark.asyncio
    async def test_acquire_held_by_other_trade_fails(self):
        collection = AsyncMock()
        collection.insert_one.side_effect = DuplicateKeyError("dup")
        collection.find_one.return_value = {"_id": "book1", "trade_id": "t9"}
        backend = MongoLockBackend(collection)

        assert await backend.acquire("book1", "t1") is False

    @pytest.mark.asyncio
    async def test_release_filters_on_trade(self):
        collection = AsyncMock()
        backend = MongoLockBackend(collection)

        await backend.release("book1", "t1")
        collection.delete_one.assert_awaited_once_with({"_id": "book1", "trade_id": "t1"})
