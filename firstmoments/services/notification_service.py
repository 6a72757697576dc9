"""
Notification service.
Validates, stores and delivers notifications, enforces recipient ownership,
manages per-user notification settings and push tokens, and exposes
helpers other services use to notify users.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.models import Notification, PushToken, User, AchievementTemplate, UserAchievement
from firstmoments.schemas import (
    NotificationCreate, NotificationSettingsUpdate, PushTokenCreate, PushTokenResponse,
)
from firstmoments.repositories.notification_repository import NotificationRepository, PushTokenRepository
from firstmoments.repositories.user_repository import UserRepository
from firstmoments.services.email_service import EmailService
from firstmoments.exceptions import (
    ValidationException, NotFoundException, PermissionDeniedException, EmailDeliveryException,
)
from firstmoments.constants import (
    NOTIFICATION_TYPES, NOTIFICATION_CATEGORIES, NOTIFICATION_TYPE_CATEGORY,
    NOTIFICATION_PRIORITIES, DELIVERY_METHODS, DELIVERY_IN_APP, DELIVERY_EMAIL, DELIVERY_PUSH,
    NOTIFICATION_TITLE_MAX, NOTIFICATION_MESSAGE_MAX, CATEGORY_SYSTEM,
    DEFAULT_QUIET_HOURS_START, DEFAULT_QUIET_HOURS_END,
)

logger = logging.getLogger("first_moments.notifications")

DELIVERED_STATUSES = ("delivered", "sent", "recorded")


class NotificationService:
    """Service for notification management"""

    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.notification_repo = NotificationRepository()
        self.push_token_repo = PushTokenRepository()
        self.user_repo = UserRepository()
        self.email_service = email_service or EmailService()

    # ===== QUERIES =====

    def list_notifications(self, user: User, skip: int = 0, limit: int = 20,
                           **filters) -> Tuple[List[Notification], int]:
        """List the caller's unexpired notifications"""
        return self.notification_repo.list_for_recipient(
            self.db, user.id, skip=skip, limit=limit, **filters
        )

    def get_unread_count(self, user: User, notification_type: Optional[str] = None) -> int:
        if notification_type:
            self._validate_choice("type", notification_type, NOTIFICATION_TYPES)
        return self.notification_repo.count_unread(self.db, user.id, notification_type)

    def get_stats(self, user: User) -> dict:
        return self.notification_repo.get_stats(self.db, user.id)

    def get_notification(self, user: User, notification_id: int) -> Notification:
        """Fetch one of the caller's notifications and mark it read"""
        notification = self._get_owned(user, notification_id)
        if notification.mark_as_read():
            notification = self.notification_repo.update(self.db, notification)
        return notification

    # ===== CREATION =====

    def create_notification(self, sender: Optional[User], data: NotificationCreate) -> Notification:
        """
        Validate and store a notification for data.recipient_id.

        Raises:
            ValidationException: Invalid field values, self-notification or the
                recipient has disabled the category
            NotFoundException: Recipient does not exist
        """
        self._validate_choice("type", data.type, NOTIFICATION_TYPES)
        category = data.category or NOTIFICATION_TYPE_CATEGORY[data.type]
        self._validate_choice("category", category, NOTIFICATION_CATEGORIES)
        self._validate_choice("priority", data.priority, NOTIFICATION_PRIORITIES)
        self._validate_choice("delivery_method", data.delivery_method, DELIVERY_METHODS)

        title = data.title.strip()
        message = data.message.strip()
        if not title or not message:
            raise ValidationException("Title and message are required")
        if len(title) > NOTIFICATION_TITLE_MAX:
            raise ValidationException(f"Title must be at most {NOTIFICATION_TITLE_MAX} characters")
        if len(message) > NOTIFICATION_MESSAGE_MAX:
            raise ValidationException(f"Message must be at most {NOTIFICATION_MESSAGE_MAX} characters")

        payload = self._validate_payload(data.data)

        if data.expires_at is not None and data.expires_at <= datetime.now():
            raise ValidationException("Expiry time must be in the future")

        if sender is not None and sender.id == data.recipient_id:
            raise ValidationException("Cannot send a notification to yourself")

        recipient = self.user_repo.get_by_id(self.db, data.recipient_id)
        if not recipient or not recipient.is_active:
            raise NotFoundException("Recipient", data.recipient_id)
        if not recipient.accepts_category(category):
            raise ValidationException(f"Recipient has disabled {category} notifications")

        notification = self._store(
            recipient=recipient,
            sender_id=sender.id if sender else None,
            notification_type=data.type,
            category=category,
            title=title,
            message=message,
            priority=data.priority,
            payload=payload,
            delivery_method=data.delivery_method,
            expires_at=data.expires_at,
        )
        logger.info(
            f"Notification {notification.id} ({notification.type}) sent to user {recipient.id}"
            + (f" by user {sender.id}" if sender else "")
        )
        return notification

    def send_test_notification(self, user: User) -> Notification:
        """Send a system notification to the caller"""
        return self._store(
            recipient=user,
            sender_id=None,
            notification_type="system",
            category=CATEGORY_SYSTEM,
            title="Test notification",
            message="This is a test notification from First Moments.",
            payload={"test": True},
        )

    def notify(self, recipient: User, notification_type: str, title: str, message: str,
               priority: str = "normal", data: Optional[dict] = None,
               sender_id: Optional[int] = None) -> Optional[Notification]:
        """
        Notify a user from inside the application.

        Returns None when the recipient has disabled the category.
        """
        category = NOTIFICATION_TYPE_CATEGORY[notification_type]
        if not recipient.accepts_category(category):
            logger.info(f"User {recipient.id} has {category} notifications disabled, skipping")
            return None
        return self._store(
            recipient=recipient,
            sender_id=sender_id,
            notification_type=notification_type,
            category=category,
            title=title[:NOTIFICATION_TITLE_MAX],
            message=message[:NOTIFICATION_MESSAGE_MAX],
            priority=priority,
            payload=data or {},
        )

    def notify_achievement_unlocked(self, user_achievement: UserAchievement,
                                    template: AchievementTemplate) -> Optional[Notification]:
        recipient = self.user_repo.get_by_id(self.db, user_achievement.user_id)
        if not recipient:
            return None

        priority = "high" if template.difficulty in ("hard", "legendary") else "normal"
        notification = self.notify(
            recipient,
            "achievement",
            "Achievement unlocked!",
            f"You earned \"{template.name}\" (+{user_achievement.points_awarded} points)",
            priority=priority,
            data={
                "template_id": template.id,
                "user_achievement_id": user_achievement.id,
                "points": user_achievement.points_awarded,
                "icon": template.icon,
            },
        )
        if notification is not None:
            logger.info(f"User {recipient.id} notified of achievement {template.id}")
        return notification

    # ===== UPDATES =====

    def mark_as_read(self, user: User, notification_id: int) -> Tuple[Notification, bool]:
        """Mark read; already-read notifications are returned untouched"""
        notification = self._get_owned(user, notification_id)
        changed = notification.mark_as_read()
        if changed:
            notification = self.notification_repo.update(self.db, notification)
        return notification, changed

    def mark_all_as_read(self, user: User) -> int:
        updated = self.notification_repo.mark_all_read(self.db, user.id)
        logger.info(f"User {user.id} marked {updated} notifications as read")
        return updated

    def delete_notification(self, user: User, notification_id: int) -> None:
        notification = self._get_owned(user, notification_id)
        self.notification_repo.delete(self.db, notification)

    def clear_all(self, user: User) -> int:
        deleted = self.notification_repo.delete_all_for_recipient(self.db, user.id)
        logger.info(f"User {user.id} cleared {deleted} notifications")
        return deleted

    def batch_delete(self, user: User, notification_ids: List[int]) -> int:
        return self.notification_repo.delete_many(self.db, user.id, list(set(notification_ids)))

    def purge_expired(self) -> int:
        return self.notification_repo.delete_expired(self.db)

    def send_notification(self, notification_id: int, channels: Optional[List[str]] = None,
                          now: Optional[datetime] = None) -> dict:
        """
        Re-deliver a stored notification through the given channels.

        Raises:
            NotFoundException: Notification missing or expired
            ValidationException: Unknown channel
        """
        notification = self.notification_repo.get_by_id(self.db, notification_id)
        if not notification:
            raise NotFoundException("Notification", notification_id)
        channels = list(dict.fromkeys(channels or [notification.delivery_method]))
        for channel in channels:
            self._validate_choice("channel", channel, DELIVERY_METHODS)

        recipient = self.user_repo.get_by_id(self.db, notification.recipient_id)
        if not recipient:
            raise NotFoundException("Recipient", notification.recipient_id)

        now = now or datetime.now()
        results = {
            channel: self._deliver_channel(notification, recipient, channel, now)
            for channel in channels
        }
        if any(result["status"] in DELIVERED_STATUSES for result in results.values()):
            notification.is_delivered = True
            notification.delivered_at = now
        notification = self.notification_repo.update(self.db, notification)
        logger.info(f"Notification {notification.id} re-sent via {', '.join(channels)}")
        return {"notification": notification, "channels": results}

    # ===== SETTINGS =====

    def get_settings(self, user: User) -> dict:
        return {
            "enabled": user.notifications_enabled is not False,
            "quiet_hours": {
                "enabled": bool(user.quiet_hours_enabled),
                "start": user.quiet_hours_start or DEFAULT_QUIET_HOURS_START,
                "end": user.quiet_hours_end or DEFAULT_QUIET_HOURS_END,
            },
            "preferences": {
                key: bool(getattr(user, f"notify_{key}"))
                for key in NOTIFICATION_CATEGORIES + (DELIVERY_EMAIL, DELIVERY_PUSH)
            },
            "push_tokens": [
                PushTokenResponse.model_validate(push_token)
                for push_token in self.push_token_repo.get_active(self.db, user.id)
            ],
        }

    def update_settings(self, user: User, data: NotificationSettingsUpdate) -> dict:
        if data.enabled is not None:
            user.notifications_enabled = data.enabled
        if data.quiet_hours is not None:
            for key, value in data.quiet_hours.model_dump(exclude_none=True).items():
                setattr(user, f"quiet_hours_{key}", value)
        if data.preferences is not None:
            for key, enabled in data.preferences.model_dump(exclude_none=True).items():
                setattr(user, f"notify_{key}", enabled)

        self.user_repo.update(self.db, user)
        logger.info(f"User {user.id} updated notification settings")
        return self.get_settings(user)

    def add_push_token(self, user: User, data: PushTokenCreate) -> PushToken:
        """Register a device token; a device keeps only its latest token"""
        push_token = self.push_token_repo.get_for_device(self.db, user.id, data.device_id)
        if push_token:
            push_token.token = data.token
            push_token.platform = data.platform
            push_token.is_active = True
            push_token.last_used_at = datetime.now()
            return self.push_token_repo.update(self.db, push_token)

        push_token = self.push_token_repo.create(self.db, PushToken(
            user_id=user.id,
            token=data.token,
            platform=data.platform,
            device_id=data.device_id,
        ))
        logger.info(f"User {user.id} registered a {data.platform} push token")
        return push_token

    def remove_push_token(self, user: User, device_id: str) -> bool:
        """Remove the device's token; returns False when none was registered"""
        push_token = self.push_token_repo.get_for_device(self.db, user.id, device_id)
        if not push_token:
            return False
        self.push_token_repo.delete(self.db, push_token)
        return True

    # ===== HELPERS =====

    def _get_owned(self, user: User, notification_id: int) -> Notification:
        notification = self.notification_repo.get_by_id(self.db, notification_id)
        if not notification:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != user.id:
            raise PermissionDeniedException("You do not have access to this notification")
        return notification

    def _store(self, recipient: User, sender_id: Optional[int], notification_type: str,
               category: str, title: str, message: str, priority: str = "normal",
               payload: Optional[dict] = None, delivery_method: str = DELIVERY_IN_APP,
               expires_at: Optional[datetime] = None) -> Notification:
        now = datetime.now()
        notification = Notification(
            recipient_id=recipient.id,
            sender_id=sender_id,
            type=notification_type,
            category=category,
            priority=priority,
            title=title,
            message=message,
            data=payload or {},
            delivery_method=delivery_method,
            expires_at=expires_at,
        )
        result = self._deliver_channel(notification, recipient, delivery_method, now)
        if result["status"] in DELIVERED_STATUSES:
            notification.is_delivered = True
            notification.delivered_at = now

        return self.notification_repo.create(self.db, notification)

    def _deliver_channel(self, notification: Notification, recipient: User,
                         channel: str, now: datetime) -> dict:
        """
        Deliver through one channel and report the outcome.

        Push is recorded against the recipient's active devices; no provider
        is contacted.
        """
        if channel == DELIVERY_IN_APP:
            return {"status": "delivered"}

        if channel == DELIVERY_EMAIL:
            if not recipient.notify_email:
                return {"status": "disabled"}
            try:
                sent = self.email_service.send(recipient.email, notification.title, notification.message)
            except EmailDeliveryException as e:
                logger.error(f"Email delivery of notification to user {recipient.id} failed: {e.details}")
                return {"status": "failed"}
            return {"status": "sent" if sent else "logged"}

        if not recipient.notify_push:
            return {"status": "disabled"}
        if notification.priority != "urgent" and recipient.in_quiet_hours(now):
            return {"status": "quiet_hours"}
        tokens = self.push_token_repo.get_active(self.db, recipient.id)
        if not tokens:
            return {"status": "no_devices"}
        for push_token in tokens:
            push_token.last_used_at = now
        logger.info(f"Push for user {recipient.id} recorded on {len(tokens)} device(s)")
        return {"status": "recorded", "devices": len(tokens)}

    @staticmethod
    def _validate_choice(field: str, value: str, choices) -> None:
        if value not in choices:
            raise ValidationException(
                f"Invalid {field} '{value}', expected one of: {', '.join(choices)}"
            )

    @staticmethod
    def _validate_payload(data: Any) -> dict:
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationException("Notification data must be an object")
        return data
