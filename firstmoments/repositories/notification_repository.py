"""
Notification repository - Data access layer for notifications and push tokens.
Every read goes through the expiry filter, so expired rows are invisible
even before the cleanup job purges them.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session, Query
from sqlalchemy import func, or_, case

from firstmoments.models import Notification, PushToken


def not_expired(now: Optional[datetime] = None):
    """Filter clause: no expiry set or expiry still in the future"""
    now = now or datetime.now()
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


class NotificationRepository:
    """Repository for Notification data access"""

    @staticmethod
    def _visible(db: Session, recipient_id: int, now: Optional[datetime] = None) -> Query:
        return db.query(Notification).filter(
            Notification.recipient_id == recipient_id,
            not_expired(now)
        )

    @staticmethod
    def get_by_id(db: Session, notification_id: int, now: Optional[datetime] = None) -> Optional[Notification]:
        """Get an unexpired notification by ID"""
        return db.query(Notification).filter(
            Notification.id == notification_id,
            not_expired(now)
        ).first()

    @staticmethod
    def list_for_recipient(
        db: Session,
        recipient_id: int,
        notification_type: Optional[str] = None,
        category: Optional[str] = None,
        is_read: Optional[bool] = None,
        priority: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
        now: Optional[datetime] = None
    ) -> Tuple[List[Notification], int]:
        """List a recipient's notifications, newest first"""
        query = NotificationRepository._visible(db, recipient_id, now)
        if notification_type:
            query = query.filter(Notification.type == notification_type)
        if category:
            query = query.filter(Notification.category == category)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        if priority:
            query = query.filter(Notification.priority == priority)
        if start_date:
            query = query.filter(Notification.created_at >= start_date)
        if end_date:
            query = query.filter(Notification.created_at <= end_date)

        total = query.count()
        notifications = query.order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset(skip).limit(limit).all()
        return notifications, total

    @staticmethod
    def count_unread(db: Session, recipient_id: int, notification_type: Optional[str] = None,
                     now: Optional[datetime] = None) -> int:
        query = NotificationRepository._visible(db, recipient_id, now).filter(Notification.is_read == False)
        if notification_type:
            query = query.filter(Notification.type == notification_type)
        return query.count()

    @staticmethod
    def get_stats(db: Session, recipient_id: int, now: Optional[datetime] = None) -> dict:
        """Totals plus per-type and per-category breakdowns of unexpired notifications"""
        base = NotificationRepository._visible(db, recipient_id, now)
        total = base.count()
        unread = base.filter(Notification.is_read == False).count()

        by_type = {}
        for notification_type, count, unread_count in base.with_entities(
            Notification.type,
            func.count(Notification.id),
            func.sum(case((Notification.is_read == False, 1), else_=0))
        ).group_by(Notification.type).all():
            by_type[notification_type] = {"total": count, "unread": int(unread_count or 0)}

        by_category = {
            category: count
            for category, count in base.with_entities(
                Notification.category, func.count(Notification.id)
            ).group_by(Notification.category).all()
        }

        return {
            "total": total,
            "unread": unread,
            "read": total - unread,
            "by_type": by_type,
            "by_category": by_category,
        }

    @staticmethod
    def mark_all_read(db: Session, recipient_id: int, now: Optional[datetime] = None) -> int:
        """Bulk-mark the recipient's unread, unexpired notifications as read"""
        now = now or datetime.now()
        updated = NotificationRepository._visible(db, recipient_id, now).filter(
            Notification.is_read == False
        ).update(
            {Notification.is_read: True, Notification.read_at: now, Notification.updated_at: now},
            synchronize_session=False
        )
        db.commit()
        return updated

    @staticmethod
    def delete_all_for_recipient(db: Session, recipient_id: int) -> int:
        deleted = db.query(Notification).filter(
            Notification.recipient_id == recipient_id
        ).delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def delete_many(db: Session, recipient_id: int, notification_ids: List[int]) -> int:
        """Delete the listed notifications that belong to the recipient"""
        deleted = db.query(Notification).filter(
            Notification.recipient_id == recipient_id,
            Notification.id.in_(notification_ids)
        ).delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def delete_expired(db: Session, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        deleted = db.query(Notification).filter(
            Notification.expires_at.isnot(None),
            Notification.expires_at < now
        ).delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def create(db: Session, notification: Notification) -> Notification:
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def update(db: Session, notification: Notification) -> Notification:
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def delete(db: Session, notification: Notification) -> None:
        db.delete(notification)
        db.commit()


class PushTokenRepository:
    """Repository for PushToken data access"""

    @staticmethod
    def get_for_device(db: Session, user_id: int, device_id: str) -> Optional[PushToken]:
        return db.query(PushToken).filter(
            PushToken.user_id == user_id,
            PushToken.device_id == device_id
        ).first()

    @staticmethod
    def get_active(db: Session, user_id: int) -> List[PushToken]:
        return db.query(PushToken).filter(
            PushToken.user_id == user_id,
            PushToken.is_active == True
        ).order_by(PushToken.created_at, PushToken.id).all()

    @staticmethod
    def create(db: Session, push_token: PushToken) -> PushToken:
        db.add(push_token)
        db.commit()
        db.refresh(push_token)
        return push_token

    @staticmethod
    def update(db: Session, push_token: PushToken) -> PushToken:
        db.commit()
        db.refresh(push_token)
        return push_token

    @staticmethod
    def delete(db: Session, push_token: PushToken) -> None:
        db.delete(push_token)
        db.commit()
