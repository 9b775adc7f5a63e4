import asyncio
import logging
from typing import List, Set

from bson import ObjectId

from errors import DispatchError
from models.notification_models import Notification, NotificationType, StoredNotification
from models.trade_models import Trade

logger = logging.getLogger(__name__)

TITLES = {
    NotificationType.TRADE_REQUEST: "New Trade Request",
    NotificationType.TRADE_ACCEPTED: "Trade Accepted",
    NotificationType.TRADE_DECLINED: "Trade Declined",
    NotificationType.TRADE_CANCELLED: "Trade Cancelled",
    NotificationType.TRADE_COMPLETED: "Trade Completed",
}

MESSAGES = {
    NotificationType.TRADE_REQUEST: "Someone proposed a trade for one of your books",
    NotificationType.TRADE_ACCEPTED: "Your trade proposal has been accepted!",
    NotificationType.TRADE_DECLINED: "Your trade proposal was declined.",
    NotificationType.TRADE_CANCELLED: "A trade you were part of has been cancelled.",
    NotificationType.TRADE_COMPLETED: "Your trade is complete. You can now rate your trading partner.",
}


def build_notification(event_type: NotificationType, trade: Trade, recipient_id: str) -> Notification:
    message = MESSAGES[event_type]
    if event_type == NotificationType.TRADE_CANCELLED and trade.cancel_reason:
        message = f"{message} Reason: {trade.cancel_reason}"
    return Notification(
        user_id=recipient_id,
        type=event_type,
        title=TITLES[event_type],
        message=message,
        data={
            "trade_id": trade.id,
            "status": trade.status.value,
            "offered_book_id": trade.offered_book_id,
            "requested_book_id": trade.requested_book_id,
        },
    )


class MongoNotificationSink:
    def __init__(self, collection):
        self.collection = collection

    async def deliver(self, notification: Notification) -> None:
        await self.collection.insert_one(notification.model_dump())

    async def list_for_user(self, user_id: str, unread_only: bool = False, skip: int = 0, limit: int = 20) -> List[StoredNotification]:
        query = {"user_id": user_id}
        if unread_only:
            query["read"] = False

        notifications = []
        cursor = self.collection.find(query) \
            .sort("created_at", -1) \
            .skip(skip).limit(limit)
        async for notif in cursor:
            notif["id"] = str(notif.pop("_id"))
            notifications.append(StoredNotification(**notif))
        return notifications

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        if not ObjectId.is_valid(notification_id):
            return False
        result = await self.collection.update_one(
            {"_id": ObjectId(notification_id), "user_id": user_id},
            {"$set": {"read": True}}
        )
        return result.matched_count == 1

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.collection.update_many(
            {"user_id": user_id, "read": False},
            {"$set": {"read": True}}
        )
        return result.modified_count


class MemoryNotificationSink:
    def __init__(self):
        self.delivered: List[StoredNotification] = []

    async def deliver(self, notification: Notification) -> None:
        self.delivered.append(StoredNotification(id=str(ObjectId()), **notification.model_dump()))

    async def list_for_user(self, user_id, unread_only=False, skip=0, limit=20):
        notifications = [
            n for n in reversed(self.delivered)
            if n.user_id == user_id and not (unread_only and n.read)
        ]
        return notifications[skip:skip + limit]

    async def mark_read(self, notification_id, user_id):
        for index, notif in enumerate(self.delivered):
            if notif.id == notification_id and notif.user_id == user_id:
                self.delivered[index] = notif.model_copy(update={"read": True})
                return True
        return False

    async def mark_all_read(self, user_id):
        count = 0
        for index, notif in enumerate(self.delivered):
            if notif.user_id == user_id and not notif.read:
                self.delivered[index] = notif.model_copy(update={"read": True})
                count += 1
        return count


class NotificationDispatcher:
    """Fire-and-forget delivery of trade lifecycle events.

    ``emit`` only schedules the delivery, so a slow or failing sink can never
    hold up or undo a transition that has already been persisted. Failures are
    logged here and go no further.
    """

    def __init__(self, sink):
        self.sink = sink
        self._pending: Set[asyncio.Task] = set()

    def emit(self, event_type: NotificationType, trade: Trade, recipient_id: str) -> None:
        notification = build_notification(event_type, trade, recipient_id)
        task = asyncio.get_running_loop().create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, notification: Notification) -> None:
        try:
            await self.sink.deliver(notification)
        except Exception as e:
            raise DispatchError(
                f"Failed to deliver {notification.type.value} to {notification.user_id}: {e}"
            ) from e

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self._send(notification)
        except DispatchError as e:
            logger.exception("Notification dispatch failed for trade %s: %s",
                             notification.data["trade_id"], e.message)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))
