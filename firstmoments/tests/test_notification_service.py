"""
Tests for NotificationService.

Tests cover:
1. Creation validation (type, priority, lengths, payload, expiry)
2. Recipient checks and category preferences
3. Expired notifications are invisible
4. Read state transitions
5. Ownership of single and bulk operations
"""
import pytest
from datetime import datetime, timedelta

from firstmoments.models import Notification
from firstmoments.schemas import NotificationCreate
from firstmoments.services.notification_service import NotificationService
from firstmoments.exceptions import (
    ValidationException, NotFoundException, PermissionDeniedException,
)


def _payload(recipient, **fields):
    values = {
        "recipient_id": recipient.id,
        "type": "comment",
        "title": "New comment",
        "message": "Someone commented on your moment",
    }
    values.update(fields)
    return NotificationCreate(**values)


def _add_notification(db_session, recipient, **fields):
    values = {
        "recipient_id": recipient.id,
        "type": "system",
        "category": "system",
        "title": "Hello",
        "message": "World",
    }
    values.update(fields)
    notification = Notification(**values)
    db_session.add(notification)
    db_session.commit()
    db_session.refresh(notification)
    return notification


class TestCreateNotification:
    """Tests for create_notification validation"""

    def test_create_defaults(self, db_session, user, other_user):
        notification = NotificationService(db_session).create_notification(user, _payload(other_user))

        assert notification.sender_id == user.id
        assert notification.recipient_id == other_user.id
        assert notification.category == "social"
        assert notification.priority == "normal"
        assert notification.is_read is False
        assert notification.is_delivered is True
        assert notification.data == {}

    def test_title_and_message_are_trimmed(self, db_session, user, other_user):
        notification = NotificationService(db_session).create_notification(
            user, _payload(other_user, title="  Hi  ", message="  there ")
        )
        assert notification.title == "Hi"
        assert notification.message == "there"

    @pytest.mark.parametrize("fields", [
        {"type": "poke"},
        {"priority": "critical"},
        {"category": "gossip"},
        {"delivery_method": "pigeon"},
        {"title": "x" * 201},
        {"message": "x" * 1001},
        {"title": "   "},
        {"data": ["not", "an", "object"]},
    ])
    def test_invalid_fields_rejected(self, db_session, user, other_user, fields):
        with pytest.raises(ValidationException):
            NotificationService(db_session).create_notification(user, _payload(other_user, **fields))

    def test_expiry_must_be_in_future(self, db_session, user, other_user):
        with pytest.raises(ValidationException):
            NotificationService(db_session).create_notification(
                user, _payload(other_user, expires_at=datetime.now() - timedelta(minutes=1))
            )

    def test_cannot_notify_self(self, db_session, user):
        with pytest.raises(ValidationException):
            NotificationService(db_session).create_notification(user, _payload(user))

    def test_unknown_recipient(self, db_session, user):
        payload = NotificationCreate(recipient_id=999, type="comment", title="a", message="b")
        with pytest.raises(NotFoundException):
            NotificationService(db_session).create_notification(user, payload)

    def test_inactive_recipient(self, db_session, user, make_user):
        inactive = make_user(is_active=False)
        with pytest.raises(NotFoundException):
            NotificationService(db_session).create_notification(user, _payload(inactive))

    def test_disabled_category_rejected(self, db_session, user, make_user):
        recipient = make_user(notify_social=False)
        with pytest.raises(ValidationException):
            NotificationService(db_session).create_notification(user, _payload(recipient))

    def test_notify_returns_none_for_disabled_category(self, db_session, make_user):
        recipient = make_user(notify_social=False)
        result = NotificationService(db_session).notify(recipient, "like", "Liked", "Your moment")
        assert result is None
        assert db_session.query(Notification).count() == 0


class TestExpiry:
    """Expired notifications never show up in reads"""

    def test_expired_hidden_everywhere(self, db_session, user):
        service = NotificationService(db_session)
        live = _add_notification(db_session, user)
        expired = _add_notification(db_session, user, expires_at=datetime.now() - timedelta(hours=1))

        items, total = service.list_notifications(user)
        assert [item.id for item in items] == [live.id]
        assert total == 1
        assert service.get_unread_count(user) == 1
        assert service.get_stats(user)["total"] == 1

        with pytest.raises(NotFoundException):
            service.get_notification(user, expired.id)

    def test_purge_expired(self, db_session, user):
        _add_notification(db_session, user)
        _add_notification(db_session, user, expires_at=datetime.now() - timedelta(hours=1))

        assert NotificationService(db_session).purge_expired() == 1
        assert db_session.query(Notification).count() == 1


class TestReadState:
    """Tests for read transitions"""

    def test_mark_as_read_is_idempotent(self, db_session, user):
        service = NotificationService(db_session)
        notification = _add_notification(db_session, user)

        notification, changed = service.mark_as_read(user, notification.id)
        assert changed is True
        first_read_at = notification.read_at

        notification, changed = service.mark_as_read(user, notification.id)
        assert changed is False
        assert notification.read_at == first_read_at

    def test_get_marks_read(self, db_session, user):
        service = NotificationService(db_session)
        notification = _add_notification(db_session, user)

        fetched = service.get_notification(user, notification.id)

        assert fetched.is_read is True
        assert fetched.read_at is not None

    def test_mark_all_only_affects_caller(self, db_session, user, other_user):
        _add_notification(db_session, user)
        _add_notification(db_session, user)
        theirs = _add_notification(db_session, other_user)

        updated = NotificationService(db_session).mark_all_as_read(user)

        assert updated == 2
        db_session.refresh(theirs)
        assert theirs.is_read is False

    def test_mark_all_skips_expired(self, db_session, user):
        _add_notification(db_session, user)
        expired = _add_notification(db_session, user, expires_at=datetime.now() - timedelta(hours=1))

        updated = NotificationService(db_session).mark_all_as_read(user)

        assert updated == 1
        db_session.refresh(expired)
        assert expired.is_read is False

    def test_unread_count_by_type(self, db_session, user):
        _add_notification(db_session, user, type="like", category="social")
        _add_notification(db_session, user)
        service = NotificationService(db_session)

        assert service.get_unread_count(user, "like") == 1
        with pytest.raises(ValidationException):
            service.get_unread_count(user, "poke")

    def test_stats_breakdown(self, db_session, user):
        _add_notification(db_session, user, type="like", category="social", is_read=True)
        _add_notification(db_session, user, type="like", category="social")
        _add_notification(db_session, user)

        stats = NotificationService(db_session).get_stats(user)

        assert stats["total"] == 3
        assert stats["unread"] == 2
        assert stats["read"] == 1
        assert stats["by_type"]["like"] == {"total": 2, "unread": 1}
        assert stats["by_category"] == {"social": 2, "system": 1}


class TestOwnership:
    """Tests for access to other users' notifications"""

    def test_foreign_notification_forbidden(self, db_session, user, other_user):
        theirs = _add_notification(db_session, other_user)
        service = NotificationService(db_session)

        with pytest.raises(PermissionDeniedException):
            service.mark_as_read(user, theirs.id)
        with pytest.raises(PermissionDeniedException):
            service.delete_notification(user, theirs.id)

    def test_batch_delete_skips_foreign_ids(self, db_session, user, other_user):
        mine = _add_notification(db_session, user)
        theirs = _add_notification(db_session, other_user)

        deleted = NotificationService(db_session).batch_delete(user, [mine.id, theirs.id, mine.id])

        assert deleted == 1
        assert db_session.query(Notification).filter(Notification.id == theirs.id).count() == 1

    def test_clear_all_only_affects_caller(self, db_session, user, other_user):
        _add_notification(db_session, user)
        _add_notification(db_session, user)
        _add_notification(db_session, other_user)

        assert NotificationService(db_session).clear_all(user) == 2
        assert db_session.query(Notification).count() == 1
