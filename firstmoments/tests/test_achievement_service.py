"""
Tests for AchievementService.

Tests cover:
1. Template creation rules (unique name, limited window, prerequisites)
2. Initialization of user achievements
3. Progress updates, unlock rewards and template stats
4. Manual grants
5. Automatic progress from recorded events
6. Leaderboard ordering
"""
import pytest
from datetime import datetime, timedelta

from firstmoments.models import Notification, UserAchievement
from firstmoments.schemas import AchievementTemplateCreate, AchievementTemplateUpdate
from firstmoments.services.achievement_service import AchievementService
from firstmoments.exceptions import (
    ValidationException, ConflictException, PermissionDeniedException, NotFoundException,
)


def _template_payload(**fields):
    payload = {
        "name": "First steps",
        "description": "Record your first moment",
        "type": "milestone",
        "category": "records",
        "icon": "footprints",
        "condition_type": "count",
        "condition_target": 1,
    }
    payload.update(fields)
    return AchievementTemplateCreate(**payload)


class TestTemplateManagement:
    """Tests for template create/update/delete"""

    def test_create_template(self, db_session, admin_user):
        service = AchievementService(db_session)
        template = service.create_template(admin_user, _template_payload(points=25))

        assert template.id is not None
        assert template.points == 25
        assert template.created_by == admin_user.id
        assert template.status == "active"

    def test_duplicate_name_rejected(self, db_session, admin_user):
        service = AchievementService(db_session)
        service.create_template(admin_user, _template_payload())

        with pytest.raises(ConflictException):
            service.create_template(admin_user, _template_payload())

    def test_limited_template_needs_window(self, db_session, admin_user):
        service = AchievementService(db_session)
        with pytest.raises(ValidationException):
            service.create_template(admin_user, _template_payload(is_limited=True))

    def test_limited_window_must_be_ordered(self, db_session, admin_user):
        service = AchievementService(db_session)
        now = datetime.now()
        with pytest.raises(ValidationException):
            service.create_template(admin_user, _template_payload(
                is_limited=True, valid_from=now, valid_to=now - timedelta(days=1)
            ))

    def test_time_condition_needs_time_range(self, db_session, admin_user):
        service = AchievementService(db_session)
        with pytest.raises(ValidationException):
            service.create_template(admin_user, _template_payload(condition_type="time"))

    def test_unknown_prerequisite_rejected(self, db_session, admin_user):
        service = AchievementService(db_session)
        with pytest.raises(ValidationException):
            service.create_template(admin_user, _template_payload(prerequisites=[999]))

    def test_template_cannot_require_itself(self, db_session, admin_user, make_template):
        service = AchievementService(db_session)
        template = make_template()

        with pytest.raises(ValidationException):
            service.update_template(admin_user, template.id, AchievementTemplateUpdate(prerequisites=[template.id]))

    def test_soft_delete_deprecates(self, db_session, admin_user, make_template):
        service = AchievementService(db_session)
        template = make_template()

        service.delete_template(admin_user, template.id)

        db_session.refresh(template)
        assert template.status == "deprecated"
        assert template.is_available is False

    def test_permanent_delete_removes_user_rows(self, db_session, admin_user, user, make_template):
        service = AchievementService(db_session)
        template = make_template()
        service.initialize_user_achievements(user)

        service.delete_template(admin_user, template.id, permanent=True)

        assert db_session.query(UserAchievement).count() == 0
        with pytest.raises(NotFoundException):
            service.get_template(template.id)


class TestInitialization:
    """Tests for initialize_user_achievements"""

    def test_creates_rows_for_available_templates(self, db_session, user, make_template):
        make_template()
        make_template()
        make_template(status="inactive")

        created = AchievementService(db_session).initialize_user_achievements(user)

        assert len(created) == 2
        assert all(row.status == "not_started" for row in created)
        assert all(row.progress_percentage == 0 for row in created)

    def test_second_call_creates_nothing(self, db_session, user, make_template):
        make_template()
        service = AchievementService(db_session)
        service.initialize_user_achievements(user)

        assert service.initialize_user_achievements(user) == []

    def test_skips_expired_limited_templates(self, db_session, user, make_template):
        now = datetime.now()
        make_template(is_limited=True, valid_from=now - timedelta(days=10), valid_to=now - timedelta(days=1))

        assert AchievementService(db_session).initialize_user_achievements(user) == []

    def test_waits_for_prerequisites(self, db_session, admin_user, user, make_template):
        """Templates unlock once their prerequisites are achieved"""
        base = make_template(condition_target=1)
        advanced = make_template(prerequisites=[base.id])
        service = AchievementService(db_session)

        created = service.initialize_user_achievements(user)
        assert [row.template_id for row in created] == [base.id]

        service.grant_achievement(admin_user, user.id, base.id)
        created = service.initialize_user_achievements(user)
        assert [row.template_id for row in created] == [advanced.id]


class TestProgress:
    """Tests for update_progress and unlock side effects"""

    def test_progress_moves_to_in_progress(self, db_session, user, make_template):
        template = make_template(condition_target=5)
        service = AchievementService(db_session)
        row = service.initialize_user_achievements(user)[0]

        row = service.update_progress(user, row.id, 2)

        assert row.status == "in_progress"
        assert row.progress_percentage == pytest.approx(40.0)
        assert row.progress_history[-1]["value"] == 2
        assert row.progress_history[-1]["trigger"] == "manual"
        db_session.refresh(template)
        assert template.in_progress_count == 1

    def test_reaching_target_awards_points_and_notifies(self, db_session, user, make_template):
        template = make_template(condition_target=3, points=30)
        service = AchievementService(db_session)
        row = service.initialize_user_achievements(user)[0]

        row = service.update_progress(user, row.id, 3)

        assert row.status == "achieved"
        assert row.points_awarded == 30
        assert row.notified is True
        notification = db_session.query(Notification).filter(Notification.recipient_id == user.id).one()
        assert notification.type == "achievement"
        assert notification.data["template_id"] == template.id
        db_session.refresh(template)
        assert template.achieved_count == 1
        assert template.in_progress_count == 0

    def test_disabled_category_skips_notification(self, db_session, make_user, make_template):
        quiet_user = make_user(notify_achievement=False)
        make_template(condition_target=1)
        service = AchievementService(db_session)
        row = service.initialize_user_achievements(quiet_user)[0]

        row = service.update_progress(quiet_user, row.id, 1)

        assert row.status == "achieved"
        assert row.notified is False
        assert db_session.query(Notification).count() == 0

    def test_cannot_update_someone_elses_progress(self, db_session, user, other_user, make_template):
        make_template()
        service = AchievementService(db_session)
        row = service.initialize_user_achievements(user)[0]

        with pytest.raises(PermissionDeniedException):
            service.update_progress(other_user, row.id, 1)

    def test_admin_can_update_any_progress(self, db_session, user, admin_user, make_template):
        make_template(condition_target=4)
        service = AchievementService(db_session)
        row = service.initialize_user_achievements(user)[0]

        assert service.update_progress(admin_user, row.id, 1).status == "in_progress"

    def test_list_requires_own_or_admin(self, db_session, user, other_user, admin_user, make_template):
        make_template()
        service = AchievementService(db_session)
        service.initialize_user_achievements(user)

        with pytest.raises(PermissionDeniedException):
            service.list_user_achievements(other_user, user.id)

        items, total, stats = service.list_user_achievements(admin_user, user.id)
        assert total == 1
        assert stats["not_started"] == 1
        assert stats["total_points"] == 0


class TestGrant:
    """Tests for manual grants"""

    def test_grant_creates_achieved_row(self, db_session, admin_user, user, make_template):
        template = make_template(condition_target=10, points=50)

        row = AchievementService(db_session).grant_achievement(admin_user, user.id, template.id, "Beta tester")

        assert row.status == "achieved"
        assert row.progress_current == 10
        assert row.is_manually_granted is True
        assert row.granted_by == admin_user.id
        assert row.grant_reason == "Beta tester"
        assert row.points_awarded == 50

    def test_grant_twice_rejected(self, db_session, admin_user, user, make_template):
        template = make_template()
        service = AchievementService(db_session)
        service.grant_achievement(admin_user, user.id, template.id)

        with pytest.raises(ValidationException):
            service.grant_achievement(admin_user, user.id, template.id)

    def test_grant_to_unknown_user(self, db_session, admin_user, make_template):
        template = make_template()
        with pytest.raises(NotFoundException):
            AchievementService(db_session).grant_achievement(admin_user, 999, template.id)


class TestRecordProgress:
    """Tests for event driven progress"""

    def test_creates_row_and_increments(self, db_session, user, make_template):
        template = make_template(condition_target=2, category="records")
        service = AchievementService(db_session)

        updated = service.record_progress(user, "count", "records", "record_created")
        assert len(updated) == 1
        assert updated[0].template_id == template.id
        assert updated[0].progress_current == 1
        assert updated[0].status == "in_progress"

        updated = service.record_progress(user, "count", "records", "record_created")
        assert updated[0].status == "achieved"

    def test_ignores_other_categories(self, db_session, user, make_template):
        make_template(category="exploration")
        assert AchievementService(db_session).record_progress(user, "count", "records", "record_created") == []

    def test_achieved_rows_are_not_touched(self, db_session, user, make_template):
        make_template(condition_target=1)
        service = AchievementService(db_session)
        service.record_progress(user, "count", "records", "record_created")

        assert service.record_progress(user, "count", "records", "record_created") == []


class TestLeaderboard:
    """Tests for get_leaderboard"""

    def test_ranked_by_points(self, db_session, admin_user, user, other_user, make_template):
        small = make_template(points=10)
        big = make_template(points=100)
        service = AchievementService(db_session)
        service.grant_achievement(admin_user, user.id, small.id)
        service.grant_achievement(admin_user, other_user.id, big.id)

        board = service.get_leaderboard("total_points", "all_time")

        assert [entry["user"]["username"] for entry in board] == ["bob", "alice"]
        assert board[0]["rank"] == 1
        assert board[0]["total_points"] == 100
        assert board[0]["achievement_count"] == 1

    def test_ranked_by_count(self, db_session, admin_user, user, other_user, make_template):
        first = make_template(points=10)
        second = make_template(points=10)
        big = make_template(points=100)
        service = AchievementService(db_session)
        service.grant_achievement(admin_user, user.id, first.id)
        service.grant_achievement(admin_user, user.id, second.id)
        service.grant_achievement(admin_user, other_user.id, big.id)

        board = service.get_leaderboard("achievement_count", "week")

        assert board[0]["user"]["id"] == user.id
        assert board[0]["achievement_count"] == 2

    def test_invalid_period(self, db_session):
        with pytest.raises(ValidationException):
            AchievementService(db_session).get_leaderboard("total_points", "decade")
