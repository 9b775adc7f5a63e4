from .availability_guard import AvailabilityGuard, MemoryLockBackend, MongoLockBackend
from .book_repository import MemoryBookRepository, MongoBookRepository
from .notification_dispatcher import MemoryNotificationSink, MongoNotificationSink, NotificationDispatcher
from .rating_gate import RatingGate
from .rating_repository import MemoryRatingRepository, MongoRatingRepository
from .trade_state_machine import TradeStateMachine
from .trade_store import MemoryTradeStore, MongoTradeStore


class TradeEngine:
    """Everything the trade routes need, wired over one set of backends"""

    def __init__(self, store, guard, books, ratings, sink, clock=None):
        self.store = store
        self.guard = guard
        self.books = books
        self.ratings = ratings
        self.notifications = sink
        self.dispatcher = NotificationDispatcher(sink)
        kwargs = {"clock": clock} if clock else {}
        self.trades = TradeStateMachine(store, guard, books, self.dispatcher, **kwargs)
        self.rating_gate = RatingGate(store, ratings)

    async def ensure_indexes(self):
        for backend in (self.store, self.ratings):
            if hasattr(backend, "ensure_indexes"):
                await backend.ensure_indexes()

    async def shutdown(self):
        await self.dispatcher.drain()


def build_mongo_engine(db) -> TradeEngine:
    return TradeEngine(
        store=MongoTradeStore(db.trades),
        guard=AvailabilityGuard(MongoLockBackend(db.book_locks)),
        books=MongoBookRepository(db.books),
        ratings=MongoRatingRepository(db.ratings),
        sink=MongoNotificationSink(db.notifications),
    )


def build_memory_engine(clock=None) -> TradeEngine:
    return TradeEngine(
        store=MemoryTradeStore(),
        guard=AvailabilityGuard(MemoryLockBackend()),
        books=MemoryBookRepository(),
        ratings=MemoryRatingRepository(),
        sink=MemoryNotificationSink(),
        clock=clock,
    )


__all__ = [
    'TradeEngine',
    'build_mongo_engine',
    'build_memory_engine',
    'AvailabilityGuard',
    'TradeStateMachine',
    'RatingGate',
    'NotificationDispatcher',
]
