"""
Tests for UserAchievement derived state.

Tests cover:
1. Percentage calculation and clamping
2. Status derivation on insert and update
3. started_at / achieved_at timestamps
4. Achieved status is terminal
5. Unique (user, template) pair
"""
import pytest
from sqlalchemy.exc import IntegrityError

from firstmoments.models import UserAchievement


@pytest.fixture
def template(make_template):
    return make_template(condition_target=4)


def _create(db_session, user, template, current=0, target=4):
    achievement = UserAchievement(
        user_id=user.id,
        template_id=template.id,
        progress_current=current,
        progress_target=target,
    )
    db_session.add(achievement)
    db_session.commit()
    db_session.refresh(achievement)
    return achievement


class TestPercentage:
    """Tests for progress_percentage"""

    def test_percentage_from_current_and_target(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=1, target=4)
        assert achievement.progress_percentage == pytest.approx(25.0)

    def test_percentage_is_clamped_at_100(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=10, target=4)
        assert achievement.progress_percentage == pytest.approx(100.0)

    def test_remaining(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=3, target=4)
        assert achievement.remaining == 1
        achievement.progress_current = 9
        db_session.commit()
        assert achievement.remaining == 0


class TestStatusDerivation:
    """Tests for status and timestamps"""

    def test_zero_progress_is_not_started(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=0)
        assert achievement.status == "not_started"
        assert achievement.started_at is None
        assert achievement.achieved_at is None

    def test_partial_progress_is_in_progress(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=2)
        assert achievement.status == "in_progress"
        assert achievement.started_at is not None

    def test_started_at_set_once(self, db_session, user, template):
        """Further progress keeps the first start time"""
        achievement = _create(db_session, user, template, current=1)
        started_at = achievement.started_at

        achievement.progress_current = 2
        db_session.commit()
        db_session.refresh(achievement)

        assert achievement.started_at == started_at

    def test_reaching_target_achieves(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=1)

        achievement.progress_current = 4
        db_session.commit()
        db_session.refresh(achievement)

        assert achievement.status == "achieved"
        assert achievement.achieved_at is not None
        assert achievement.progress_percentage == pytest.approx(100.0)

    def test_back_to_zero_resets_start(self, db_session, user, template):
        achievement = _create(db_session, user, template, current=2)

        achievement.progress_current = 0
        db_session.commit()
        db_session.refresh(achievement)

        assert achievement.status == "not_started"
        assert achievement.started_at is None

    def test_achieved_is_sticky(self, db_session, user, template):
        """Lowering progress after achieving keeps the achievement"""
        achievement = _create(db_session, user, template, current=4)
        achieved_at = achievement.achieved_at

        achievement.progress_current = 1
        db_session.commit()
        db_session.refresh(achievement)

        assert achievement.status == "achieved"
        assert achievement.achieved_at == achieved_at
        assert achievement.progress_percentage == pytest.approx(25.0)


class TestUniquePair:

    def test_duplicate_user_template_rejected(self, db_session, user, template):
        _create(db_session, user, template)

        db_session.add(UserAchievement(user_id=user.id, template_id=template.id, progress_target=4))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_same_template_for_other_user_allowed(self, db_session, user, other_user, template):
        _create(db_session, user, template)
        other = _create(db_session, other_user, template)
        assert other.id is not None
