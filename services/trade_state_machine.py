"""Trade negotiation and fulfillment.

A trade moves proposed -> accepted -> completed, or ends early as declined or
cancelled. Books are committed to a trade through the AvailabilityGuard for as
long as it is proposed or accepted, and every status change is a
compare-and-swap against the stored trade, so two requests racing on the same
trade can never both win.

Completion needs both parties: each calls ``complete`` once, and the second
call performs the ownership swap.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from bson import ObjectId

from errors import (
    BookUnavailableError,
    ConflictError,
    NotBookOwner,
    NotFoundError,
    TradeStateConflict,
    ValidationError,
)
from models.notification_models import NotificationType
from models.trade_models import Trade, TradeDecision, TradeStatus
from services.transitions import TradeAction, TradeRole, authorize, role_of

logger = logging.getLogger(__name__)

OWNERSHIP_CHANGED = "ownership changed"
EXPIRED = "expired"


class TradeStateMachine:
    def __init__(self, store, guard, books, dispatcher, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.guard = guard
        self.books = books
        self.dispatcher = dispatcher
        self.clock = clock

    async def propose(self, proposer_id: str, offered_book_id: str, requested_book_id: str,
                      message: Optional[str] = None) -> Trade:
        if not proposer_id:
            raise ValidationError("Proposer is required", code="MISSING_PROPOSER")
        if not offered_book_id or not requested_book_id:
            raise ValidationError("Both requested and offered books are required", code="MISSING_REQUIRED_FIELDS")
        if offered_book_id == requested_book_id:
            raise ValidationError("A book cannot be traded for itself", code="SAME_BOOK")

        offered = await self.books.get(offered_book_id)
        requested = await self.books.get(requested_book_id)
        receiver_id = requested.owner_id

        if receiver_id == proposer_id:
            raise ValidationError("You cannot request your own book", code="CANNOT_REQUEST_OWN_BOOK")
        if offered.owner_id != proposer_id:
            raise NotBookOwner("You can only offer books that you own")
        for book in (offered, requested):
            if book.is_taken:
                raise BookUnavailableError(book.id)

        trade = Trade(
            id=str(ObjectId()),
            proposer_id=proposer_id,
            receiver_id=receiver_id,
            offered_book_id=offered_book_id,
            requested_book_id=requested_book_id,
            status=TradeStatus.PROPOSED,
            message=message,
            created_at=self.clock(),
        )

        await self.guard.try_lock_pair(offered_book_id, requested_book_id, trade.id)
        try:
            trade = await self.store.create(trade)
        except Exception:
            await self.guard.release_pair(offered_book_id, requested_book_id, trade.id)
            raise

        logger.info("Trade %s proposed by %s to %s", trade.id, proposer_id, receiver_id)
        self.dispatcher.emit(NotificationType.TRADE_REQUEST, trade, receiver_id)
        return trade

    async def respond(self, trade_id: str, actor_id: str, decision: Union[TradeDecision, str]) -> Trade:
        try:
            decision = TradeDecision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision \"{decision}\". Must be one of: accept, decline",
                                  code="INVALID_DECISION")

        trade = await self.store.get(trade_id)
        role = role_of(trade, actor_id)
        action = TradeAction.ACCEPT if decision == TradeDecision.ACCEPT else TradeAction.DECLINE
        authorize(trade.status, action, role)
        now = self.clock()

        if action == TradeAction.DECLINE:
            trade = await self._transition(trade, action, role, actor_id, {"responded_at": now})
            await self._release(trade)
            self.dispatcher.emit(NotificationType.TRADE_DECLINED, trade, trade.proposer_id)
            return trade

        if not await self._owners_unchanged(trade):
            trade = await self._transition(trade, TradeAction.INVALIDATE, TradeRole.SYSTEM, None, {
                "cancelled_at": now,
                "cancelled_by": None,
                "cancel_reason": OWNERSHIP_CHANGED,
            })
            await self._release(trade)
            self._notify_both(NotificationType.TRADE_CANCELLED, trade)
            raise TradeStateConflict(
                f"Trade {trade.id} was cancelled because book ownership changed", code="OWNERSHIP_CHANGED"
            )

        trade = await self._transition(trade, action, role, actor_id, {"responded_at": now})
        self.dispatcher.emit(NotificationType.TRADE_ACCEPTED, trade, trade.proposer_id)
        return trade

    async def cancel(self, trade_id: str, actor_id: str, reason: Optional[str] = None) -> Trade:
        trade = await self.store.get(trade_id)
        role = role_of(trade, actor_id)
        trade = await self._transition(trade, TradeAction.CANCEL, role, actor_id, {
            "cancelled_at": self.clock(),
            "cancelled_by": actor_id,
            "cancel_reason": reason,
        })
        await self._release(trade)
        self.dispatcher.emit(NotificationType.TRADE_CANCELLED, trade, trade.other_party(actor_id))
        return trade

    async def complete(self, trade_id: str, actor_id: str) -> Trade:
        trade = await self.store.get(trade_id)
        role = role_of(trade, actor_id)

        if actor_id in trade.confirmations:
            authorize(trade.status, TradeAction.CONFIRM, role)
            raise TradeStateConflict("You have already confirmed this trade", code="ALREADY_CONFIRMED")

        confirmations = trade.confirmations + [actor_id]
        if not {trade.proposer_id, trade.receiver_id}.issubset(confirmations):
            return await self._transition(trade, TradeAction.CONFIRM, role, actor_id,
                                          {"confirmations": confirmations})

        authorize(trade.status, TradeAction.COMPLETE, role)
        await self.books.swap_owners(trade.offered_book_id, trade.requested_book_id,
                                     trade.proposer_id, trade.receiver_id)
        try:
            trade = await self._transition(trade, TradeAction.COMPLETE, role, actor_id, {
                "confirmations": confirmations,
                "completed_at": self.clock(),
            })
        except Exception:
            logger.warning("Completion of trade %s not persisted, reverting ownership swap", trade.id)
            await self.books.unswap_owners(trade.offered_book_id, trade.requested_book_id,
                                           trade.proposer_id, trade.receiver_id)
            raise

        await self._release(trade)
        self._notify_both(NotificationType.TRADE_COMPLETED, trade)
        return trade

    async def expire(self, trade_id: str) -> Trade:
        trade = await self.store.get(trade_id)
        return await self._expire(trade)

    async def expire_stale(self, older_than: timedelta) -> List[Trade]:
        """Expire every proposal left unanswered for longer than ``older_than``.

        Meant for a scheduled sweep. Proposals that change under the sweep are
        skipped rather than retried.
        """
        cutoff = self.clock() - older_than
        expired = []
        for trade in await self.store.list_stale(TradeStatus.PROPOSED, cutoff):
            try:
                expired.append(await self._expire(trade))
            except TradeStateConflict:
                logger.info("Trade %s changed during expiry sweep, skipping", trade.id)
        return expired

    async def get_trade(self, trade_id: str) -> Trade:
        return await self.store.get(trade_id)

    async def list_trades_for_user(self, user_id: str, status: Optional[TradeStatus] = None,
                                   skip: int = 0, limit: int = 50) -> List[Trade]:
        return await self.store.list_by_user(user_id, status=status, skip=skip, limit=limit)

    async def count_trades_for_user(self, user_id: str, status: Optional[TradeStatus] = None) -> int:
        return await self.store.count_by_user(user_id, status=status)

    async def _expire(self, trade: Trade) -> Trade:
        trade = await self._transition(trade, TradeAction.EXPIRE, TradeRole.SYSTEM, None, {
            "cancelled_at": self.clock(),
            "cancelled_by": None,
            "cancel_reason": EXPIRED,
        })
        await self._release(trade)
        self._notify_both(NotificationType.TRADE_CANCELLED, trade)
        return trade

    async def _transition(self, trade: Trade, action: TradeAction, role: TradeRole,
                          actor_id: Optional[str], update: Dict[str, Any]) -> Trade:
        target = authorize(trade.status, action, role)
        changes = dict(update, status=target)
        try:
            updated = await self.store.compare_and_swap_status(
                trade.id, trade.status, changes, expected_version=trade.version
            )
        except ConflictError as e:
            logger.warning("Lost race on trade %s: %s by %s from %s",
                           trade.id, action.value, actor_id or role.value, trade.status.value)
            raise TradeStateConflict(
                f"Trade {trade.id} was changed by another request, fetch it and try again",
                code="CONCURRENT_UPDATE",
            ) from e

        logger.info("Trade %s %s -> %s (%s by %s)", trade.id, trade.status.value,
                    updated.status.value, action.value, actor_id or role.value)
        return updated

    async def _release(self, trade: Trade) -> None:
        await self.guard.release_pair(trade.offered_book_id, trade.requested_book_id, trade.id)

    async def _owners_unchanged(self, trade: Trade) -> bool:
        try:
            offered = await self.books.get(trade.offered_book_id)
            requested = await self.books.get(trade.requested_book_id)
        except NotFoundError:
            return False
        return offered.owner_id == trade.proposer_id and requested.owner_id == trade.receiver_id

    def _notify_both(self, event_type: NotificationType, trade: Trade) -> None:
        self.dispatcher.emit(event_type, trade, trade.proposer_id)
        self.dispatcher.emit(event_type, trade, trade.receiver_id)
