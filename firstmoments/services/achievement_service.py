"""
Achievement service.
Manages achievement templates and per-user progress: initialization,
progress updates, manual grants, unlock rewards and the leaderboard.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.models import AchievementTemplate, UserAchievement, User
from firstmoments.schemas import AchievementTemplateCreate, AchievementTemplateUpdate
from firstmoments.repositories.achievement_repository import (
    AchievementTemplateRepository, UserAchievementRepository
)
from firstmoments.repositories.user_repository import UserRepository
from firstmoments.services.notification_service import NotificationService
from firstmoments.exceptions import (
    ValidationException, NotFoundException, PermissionDeniedException, ConflictException,
)
from firstmoments.constants import (
    ROLE_ADMIN, TEMPLATE_STATUS_DEPRECATED, ACHIEVEMENT_STATUS_ACHIEVED,
    ACHIEVEMENT_STATUS_IN_PROGRESS, LEADERBOARD_TYPES, LEADERBOARD_PERIODS,
)

logger = logging.getLogger("first_moments.achievements")


class AchievementService:
    """Service for achievement templates and user progress"""

    def __init__(self, db: Session):
        self.db = db
        self.template_repo = AchievementTemplateRepository()
        self.user_achievement_repo = UserAchievementRepository()
        self.user_repo = UserRepository()
        self.notification_service = NotificationService(db)

    # ===== TEMPLATES =====

    def list_templates(self, skip: int = 0, limit: int = 20, **filters) -> Tuple[List[AchievementTemplate], int]:
        return self.template_repo.list_templates(self.db, skip=skip, limit=limit, **filters)

    def get_template(self, template_id: int) -> AchievementTemplate:
        template = self.template_repo.get_by_id(self.db, template_id)
        if not template:
            raise NotFoundException("Achievement template", template_id)
        return template

    def create_template(self, admin: User, data: AchievementTemplateCreate) -> AchievementTemplate:
        if self.template_repo.get_by_name(self.db, data.name):
            raise ConflictException("name", "Achievement template name already exists")

        fields = data.model_dump()
        self._validate_template(fields)
        self._validate_prerequisites(fields["prerequisites"])

        template = AchievementTemplate(**fields, created_by=admin.id)
        template = self.template_repo.create(self.db, template)
        logger.info(f"Admin {admin.id} created achievement template {template.id} ({template.name})")
        return template

    def update_template(self, admin: User, template_id: int,
                        data: AchievementTemplateUpdate) -> AchievementTemplate:
        template = self.get_template(template_id)
        update_data = data.model_dump(exclude_unset=True)

        new_name = update_data.get("name")
        if new_name and new_name != template.name:
            existing = self.template_repo.get_by_name(self.db, new_name)
            if existing and existing.id != template.id:
                raise ConflictException("name", "Achievement template name already exists")

        merged = {
            "is_limited": template.is_limited,
            "valid_from": template.valid_from,
            "valid_to": template.valid_to,
            "condition_type": template.condition_type,
            "condition_params": template.condition_params or {},
        }
        merged.update({key: value for key, value in update_data.items() if key in merged})
        self._validate_template(merged)

        if "prerequisites" in update_data:
            prerequisites = update_data["prerequisites"] or []
            if template.id in prerequisites:
                raise ValidationException("A template cannot be its own prerequisite")
            self._validate_prerequisites(prerequisites)

        for key, value in update_data.items():
            setattr(template, key, value)

        template = self.template_repo.update(self.db, template)
        logger.info(f"Admin {admin.id} updated achievement template {template.id}")
        return template

    def delete_template(self, admin: User, template_id: int, permanent: bool = False) -> None:
        """Deprecate a template, or remove it with all user rows when permanent"""
        template = self.get_template(template_id)
        if permanent:
            self.template_repo.delete(self.db, template)
            logger.warning(f"Admin {admin.id} permanently deleted achievement template {template_id}")
        else:
            template.status = TEMPLATE_STATUS_DEPRECATED
            self.template_repo.update(self.db, template)
            logger.info(f"Admin {admin.id} deprecated achievement template {template_id}")

    @staticmethod
    def _validate_template(fields: dict) -> None:
        if fields.get("is_limited"):
            valid_from = fields.get("valid_from")
            valid_to = fields.get("valid_to")
            if not valid_from or not valid_to:
                raise ValidationException("Limited achievements need valid_from and valid_to")
            if valid_from >= valid_to:
                raise ValidationException("valid_from must be earlier than valid_to")

        params = fields.get("condition_params") or {}
        condition_type = fields.get("condition_type")
        if condition_type == "time" and not params.get("time_range"):
            raise ValidationException("Time conditions need condition_params.time_range")
        if condition_type == "location" and not params.get("location"):
            raise ValidationException("Location conditions need condition_params.location")

    def _validate_prerequisites(self, prerequisites: List[int]) -> None:
        if not prerequisites:
            return
        found = {template.id for template in self.template_repo.get_by_ids(self.db, prerequisites)}
        missing = [template_id for template_id in prerequisites if template_id not in found]
        if missing:
            raise ValidationException(f"Unknown prerequisite templates: {missing}")

    # ===== USER ACHIEVEMENTS =====

    def list_user_achievements(self, viewer: User, user_id: int, skip: int = 0,
                               limit: int = 20, **filters) -> Tuple[List[UserAchievement], int, dict]:
        """List a user's achievements with summary stats; own or admin only"""
        if viewer.id != user_id and viewer.role != ROLE_ADMIN:
            raise PermissionDeniedException("You can only view your own achievements")
        if not self.user_repo.get_by_id(self.db, user_id):
            raise NotFoundException("User", user_id)

        achievements, total = self.user_achievement_repo.list_for_user(
            self.db, user_id, skip=skip, limit=limit, **filters
        )
        stats = self.user_achievement_repo.get_user_stats(self.db, user_id)
        return achievements, total, stats

    def initialize_user_achievements(self, user: User) -> List[UserAchievement]:
        """
        Create not_started rows for every available template the user has
        not started yet and whose prerequisites are achieved.
        """
        existing = set(self.user_achievement_repo.get_template_ids_for_user(self.db, user.id))
        achieved = set(self.user_achievement_repo.get_achieved_template_ids(self.db, user.id))

        created = []
        for template in self.template_repo.get_active(self.db):
            if template.id in existing or not template.is_available:
                continue
            if not set(template.prerequisites or []).issubset(achieved):
                continue
            created.append(self.user_achievement_repo.add(self.db, UserAchievement(
                user_id=user.id,
                template_id=template.id,
                progress_current=0,
                progress_target=template.condition_target,
                progress_history=[],
            )))

        self.db.commit()
        for achievement in created:
            self.db.refresh(achievement)
        logger.info(f"Initialized {len(created)} achievements for user {user.id}")
        return created

    def get_user_achievement(self, viewer: User, achievement_id: int) -> UserAchievement:
        achievement = self.user_achievement_repo.get_by_id(self.db, achievement_id)
        if not achievement:
            raise NotFoundException("User achievement", achievement_id)
        if achievement.user_id != viewer.id and viewer.role != ROLE_ADMIN:
            raise PermissionDeniedException("You can only update your own achievements")
        return achievement

    def update_progress(self, viewer: User, achievement_id: int, current: int,
                        trigger: str = "manual") -> UserAchievement:
        """Set the progress of an achievement; status follows from the value"""
        achievement = self.get_user_achievement(viewer, achievement_id)
        return self._apply_progress(achievement, current, trigger)

    def grant_achievement(self, admin: User, user_id: int, template_id: int,
                          reason: Optional[str] = None) -> UserAchievement:
        """Manually complete an achievement for a user"""
        if not self.user_repo.get_by_id(self.db, user_id):
            raise NotFoundException("User", user_id)
        template = self.get_template(template_id)

        achievement = self.user_achievement_repo.get_by_pair(self.db, user_id, template_id)
        if achievement and achievement.is_achieved:
            raise ValidationException("User has already achieved this")
        if not achievement:
            achievement = self.user_achievement_repo.add(self.db, UserAchievement(
                user_id=user_id,
                template_id=template.id,
                progress_current=0,
                progress_target=template.condition_target,
                progress_history=[],
            ))

        achievement.is_manually_granted = True
        achievement.granted_by = admin.id
        achievement.grant_reason = reason
        logger.info(f"Admin {admin.id} granted template {template_id} to user {user_id}")
        return self._apply_progress(achievement, achievement.progress_target, "manual")

    def record_progress(self, user: User, condition_type: str, category: str,
                        trigger: str, increment: int = 1) -> List[UserAchievement]:
        """
        Advance every active template matching condition type and category,
        creating the user's row when it does not exist yet.
        """
        templates = self.template_repo.get_active_by_condition(self.db, condition_type, category)
        if not templates:
            return []

        achieved = set(self.user_achievement_repo.get_achieved_template_ids(self.db, user.id))
        rows = {
            row.template_id: row
            for row in self.user_achievement_repo.get_for_templates(
                self.db, user.id, [template.id for template in templates]
            )
        }

        updated = []
        for template in templates:
            row = rows.get(template.id)
            if row is None:
                if not template.is_available or not set(template.prerequisites or []).issubset(achieved):
                    continue
                row = self.user_achievement_repo.add(self.db, UserAchievement(
                    user_id=user.id,
                    template_id=template.id,
                    progress_current=0,
                    progress_target=template.condition_target,
                    progress_history=[],
                ))
            if row.is_achieved:
                continue
            updated.append(self._apply_progress(row, (row.progress_current or 0) + increment, trigger))
        return updated

    def _apply_progress(self, achievement: UserAchievement, current: int, trigger: str) -> UserAchievement:
        previous_status = achievement.status
        achievement.progress_current = current
        # Reassign so the JSON column is flagged as changed
        achievement.progress_history = list(achievement.progress_history or []) + [{
            "value": current,
            "trigger": trigger,
            "timestamp": datetime.now().isoformat(),
        }]
        achievement = self.user_achievement_repo.update(self.db, achievement)

        if achievement.status != previous_status:
            template = self.get_template(achievement.template_id)
            if achievement.status == ACHIEVEMENT_STATUS_ACHIEVED:
                self._on_achieved(achievement, template)
            self._refresh_template_stats(template)
        return achievement

    def _on_achieved(self, achievement: UserAchievement, template: AchievementTemplate) -> None:
        achievement.points_awarded = template.points or 0
        self.db.commit()

        notification = self.notification_service.notify_achievement_unlocked(achievement, template)
        if notification is not None:
            achievement.notified = True
            self.db.commit()
        logger.info(
            f"User {achievement.user_id} achieved template {template.id} "
            f"(+{achievement.points_awarded} points)"
        )

    def _refresh_template_stats(self, template: AchievementTemplate) -> None:
        template.achieved_count = self.user_achievement_repo.count_by_status(
            self.db, template.id, ACHIEVEMENT_STATUS_ACHIEVED
        )
        template.in_progress_count = self.user_achievement_repo.count_by_status(
            self.db, template.id, ACHIEVEMENT_STATUS_IN_PROGRESS
        )
        self.db.commit()

    # ===== LEADERBOARD =====

    def get_leaderboard(self, leaderboard_type: str = "total_points", period: str = "all_time",
                        limit: int = 10) -> List[dict]:
        if leaderboard_type not in LEADERBOARD_TYPES:
            raise ValidationException(f"Invalid leaderboard type '{leaderboard_type}'")
        if period not in LEADERBOARD_PERIODS:
            raise ValidationException(f"Invalid leaderboard period '{period}'")

        days = LEADERBOARD_PERIODS[period]
        since = datetime.now() - timedelta(days=days) if days else None

        rows = self.user_achievement_repo.leaderboard(
            self.db,
            order_by_points=leaderboard_type == "total_points",
            since=since,
            limit=limit
        )
        return [
            {
                "rank": rank,
                "user": {
                    "id": user.id,
                    "username": user.username,
                    "nickname": user.nickname,
                    "avatar": user.avatar,
                },
                "total_points": int(total_points or 0),
                "achievement_count": achievement_count,
            }
            for rank, (user, total_points, achievement_count) in enumerate(rows, start=1)
        ]
