"""
Notification Schemas
Pydantic models for the caretaker notification inbox
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    """In-app notification"""
    id: int
    elder_id: str
    caretaker_id: str
    type: str
    message: Optional[str] = None
    timestamp: Optional[datetime] = None
    read: bool = False

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    """A caretaker's notifications"""
    notifications: List[NotificationResponse]
    total: int
    unread: int
