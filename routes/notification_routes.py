from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
from models.notification_models import StoredNotification
from utils import get_current_user_id, get_engine

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("/users/{user_id}", response_model=List[StoredNotification])
async def get_user_notifications(
    user_id: str,
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    if user_id != current_user_id:
        raise HTTPException(status_code=403, detail="You can only read your own notifications")
    return await engine.notifications.list_for_user(user_id, unread_only=unread_only, skip=skip, limit=limit)

@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    marked = await engine.notifications.mark_read(notification_id, user_id)
    if not marked:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}

@router.put("/read-all")
async def mark_all_notifications_read(
    user_id: str = Depends(get_current_user_id),
    engine=Depends(get_engine)
):
    count = await engine.notifications.mark_all_read(user_id)
    return {"message": "All notifications marked as read", "count": count}
