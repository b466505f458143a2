"""
Notification inbox routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from tripcore.db.session import get_db
from tripcore.core.utils import format_response
from tripcore.schemas.notification import NotificationResponse, UnreadCount
from tripcore.api.dependencies import get_current_user_id, get_gateway
from tripcore.services import notification_service
from tripcore.services.gateway import MutationGateway

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    limit: int = 50,
    offset: int = 0,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the caller's notifications, latest first."""
    return notification_service.list_notifications(current_user_id, db, limit=limit, offset=offset)


@router.get("/unread-count", response_model=UnreadCount)
def get_unread_count(
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return UnreadCount(count=notification_service.unread_count(current_user_id, db))


@router.post("/read-all")
def mark_all_read(
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    changed = gateway.mark_all_notifications_read(current_user_id, db)
    return format_response({"updated": changed}, "Notifications marked as read")


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: MutationGateway = Depends(get_gateway)
):
    return gateway.mark_notification_read(notification_id, current_user_id, db)
