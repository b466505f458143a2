"""
Inbox notification model.
"""
import enum
from sqlalchemy import Column, String, Boolean, Text, Enum as SQLEnum
from tripcore.db.base import BaseModel


class NotificationType(str, enum.Enum):
    TRIP_INVITE = "trip_invite"
    MEMBER_JOINED = "member_joined"


class Notification(BaseModel):
    """Notification addressed to one member."""
    __tablename__ = "notifications"

    recipient_id = Column(String(128), nullable=False, index=True)
    sender_id = Column(String(128), nullable=True)
    type = Column(SQLEnum(NotificationType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    reference_id = Column(String(64), nullable=True)  # trip id the notification is about
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
