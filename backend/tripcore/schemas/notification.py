"""
Pydantic schemas for inbox notifications.
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from tripcore.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: int
    recipient_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    reference_id: Optional[str] = None
    message: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    count: int
