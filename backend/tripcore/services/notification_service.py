"""
Inbox notifications addressed to a single member.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from tripcore.core.exceptions import NotFound, Forbidden
from tripcore.models.notification import Notification, NotificationType


def create_notification(
    recipient_id: str,
    sender_id: Optional[str],
    reference_id: Optional[str],
    notification_type: NotificationType,
    message: str,
    db: Session
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        reference_id=reference_id,
        type=notification_type,
        message=message,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def list_notifications(user_id: str, db: Session, limit: int = 50, offset: int = 0) -> List[Notification]:
    """Latest first."""
    return db.query(Notification).filter(
        Notification.recipient_id == user_id
    ).order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()


def unread_count(user_id: str, db: Session) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == user_id,
        Notification.is_read.is_(False)
    ).count()


def mark_read(notification_id: int, user_id: str, db: Session) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFound("Notification not found", {"notification_id": notification_id})
    if notification.recipient_id != user_id:
        raise Forbidden("Notification does not belong to user")
    notification.is_read = True
    db.flush()
    return notification


def mark_all_read(user_id: str, db: Session) -> int:
    """Mark every unread notification of the user as read. Returns how many changed."""
    changed = db.query(Notification).filter(
        Notification.recipient_id == user_id,
        Notification.is_read.is_(False)
    ).update({Notification.is_read: True}, synchronize_session=False)
    db.flush()
    return changed
