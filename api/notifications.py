"""
Notifications API Router
Endpoints for the caretaker notification inbox
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_caretaker_id, services
from api.schemas.notification import NotificationList, NotificationResponse


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/caretaker/{caretaker_id}", response_model=NotificationList)
async def get_caretaker_notifications(
    caretaker_id: str = Depends(get_current_caretaker_id),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """
    A caretaker's notifications, newest first
    """
    caretaker_service = services.get_caretaker_service()

    notifications = await caretaker_service.list_notifications(
        caretaker_id, unread_only=unread_only, limit=limit, db=db
    )
    return NotificationList(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=len(notifications),
        unread=sum(1 for n in notifications if not n.read)
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db)
):
    """
    Mark a notification as read
    """
    caretaker_service = services.get_caretaker_service()

    notification = await caretaker_service.mark_notification_read(notification_id, db=db)
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification {notification_id} not found"
        )
    return notification
