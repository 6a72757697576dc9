"""
Notification HTTP routes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user, require_admin
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    NotificationCreate, NotificationResponse, BatchDeleteRequest, NotificationSettingsUpdate,
    PushTokenCreate, PushTokenResponse, SendNotificationRequest, to_naive,
)
from firstmoments.services.notification_service import NotificationService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = None,
    category: Optional[str] = None,
    is_read: Optional[bool] = None,
    priority: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's notifications, newest first. Expired ones are hidden."""
    notifications, total = NotificationService(db).list_notifications(
        current_user,
        skip=get_offset(page, limit),
        limit=limit,
        notification_type=type,
        category=category,
        is_read=is_read,
        priority=priority,
        start_date=to_naive(start_date),
        end_date=to_naive(end_date),
    )
    return success_response({
        "notifications": [NotificationResponse.model_validate(item) for item in notifications],
        "pagination": build_pagination(page, limit, total),
    })


@router.get("/unread-count")
def get_unread_count(
    type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = NotificationService(db).get_unread_count(current_user, type)
    return success_response({"unread_count": count})


@router.get("/stats")
def get_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return success_response(NotificationService(db).get_stats(current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Send a notification to a user. Admin only."""
    notification = NotificationService(db).create_notification(current_user, payload)
    return success_response(NotificationResponse.model_validate(notification), "Notification sent")


@router.post("/test", status_code=status.HTTP_201_CREATED)
def send_test_notification(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notification = NotificationService(db).send_test_notification(current_user)
    return success_response(NotificationResponse.model_validate(notification), "Test notification sent")


@router.put("/read-all")
def mark_all_as_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = NotificationService(db).mark_all_as_read(current_user)
    return success_response({"updated_count": updated}, f"Marked {updated} notifications as read")


@router.delete("/clear-all")
def clear_all(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    deleted = NotificationService(db).clear_all(current_user)
    return success_response({"deleted_count": deleted}, f"Deleted {deleted} notifications")


@router.delete("/batch")
def batch_delete(
    payload: BatchDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete several of the caller's notifications; foreign ids are ignored."""
    deleted = NotificationService(db).batch_delete(current_user, payload.ids)
    return success_response({"deleted_count": deleted}, f"Deleted {deleted} notifications")


@router.get("/settings/me")
def get_settings(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return success_response(NotificationService(db).get_settings(current_user))


@router.put("/settings/me")
def update_settings(
    payload: NotificationSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    settings = NotificationService(db).update_settings(current_user, payload)
    return success_response(settings, "Notification settings updated")


@router.post("/push-tokens")
def add_push_token(
    payload: PushTokenCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Register the device's push token, replacing an earlier one for the same device."""
    push_token = NotificationService(db).add_push_token(current_user, payload)
    return success_response(PushTokenResponse.model_validate(push_token), "Push token registered")


@router.delete("/push-tokens/{device_id}")
def remove_push_token(
    device_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    removed = NotificationService(db).remove_push_token(current_user, device_id)
    return success_response({"removed": removed}, "Push token removed")


@router.post("/{notification_id}/send")
def send_notification(
    notification_id: int,
    payload: Optional[SendNotificationRequest] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Re-deliver a notification through the requested channels. Admin only."""
    result = NotificationService(db).send_notification(
        notification_id, payload.channels if payload else None
    )
    return success_response({
        "notification": NotificationResponse.model_validate(result["notification"]),
        "channels": result["channels"],
    }, "Notification sent")


@router.get("/{notification_id}")
def get_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a notification; reading it marks it read."""
    notification = NotificationService(db).get_notification(current_user, notification_id)
    return success_response(NotificationResponse.model_validate(notification))


@router.put("/{notification_id}/read")
def mark_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification, changed = NotificationService(db).mark_as_read(current_user, notification_id)
    return success_response(
        NotificationResponse.model_validate(notification),
        "Notification marked as read" if changed else "Notification already read"
    )


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    NotificationService(db).delete_notification(current_user, notification_id)
    return success_response(None, "Notification deleted")
