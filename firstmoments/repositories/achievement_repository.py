"""
Achievement repository - Data access layer for achievement templates
and per-user achievement progress.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, or_

from firstmoments.models import AchievementTemplate, UserAchievement, User
from firstmoments.constants import (
    TEMPLATE_STATUS_ACTIVE, ACHIEVEMENT_STATUS_ACHIEVED, ACHIEVEMENT_STATUS_IN_PROGRESS,
    ACHIEVEMENT_STATUS_NOT_STARTED,
)


class AchievementTemplateRepository:
    """Repository for AchievementTemplate data access"""

    @staticmethod
    def get_by_id(db: Session, template_id: int) -> Optional[AchievementTemplate]:
        return db.query(AchievementTemplate).filter(AchievementTemplate.id == template_id).first()

    @staticmethod
    def get_by_name(db: Session, name: str) -> Optional[AchievementTemplate]:
        return db.query(AchievementTemplate).filter(AchievementTemplate.name == name).first()

    @staticmethod
    def get_by_ids(db: Session, template_ids: List[int]) -> List[AchievementTemplate]:
        if not template_ids:
            return []
        return db.query(AchievementTemplate).filter(AchievementTemplate.id.in_(template_ids)).all()

    @staticmethod
    def list_templates(
        db: Session,
        template_type: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        status: Optional[str] = TEMPLATE_STATUS_ACTIVE,
        include_hidden: bool = False,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[AchievementTemplate], int]:
        """List templates with filters, ordered by category, difficulty and name"""
        query = db.query(AchievementTemplate)
        if template_type:
            query = query.filter(AchievementTemplate.type == template_type)
        if category:
            query = query.filter(AchievementTemplate.category == category)
        if difficulty:
            query = query.filter(AchievementTemplate.difficulty == difficulty)
        if status:
            query = query.filter(AchievementTemplate.status == status)
        if not include_hidden:
            query = query.filter(AchievementTemplate.is_hidden == False)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    AchievementTemplate.name.ilike(pattern),
                    AchievementTemplate.description.ilike(pattern)
                )
            )

        total = query.count()
        templates = query.order_by(
            AchievementTemplate.category, AchievementTemplate.points, AchievementTemplate.name
        ).offset(skip).limit(limit).all()
        return templates, total

    @staticmethod
    def get_active(db: Session) -> List[AchievementTemplate]:
        return db.query(AchievementTemplate).filter(
            AchievementTemplate.status == TEMPLATE_STATUS_ACTIVE
        ).order_by(AchievementTemplate.id).all()

    @staticmethod
    def get_active_by_condition(db: Session, condition_type: str, category: str) -> List[AchievementTemplate]:
        return db.query(AchievementTemplate).filter(
            AchievementTemplate.status == TEMPLATE_STATUS_ACTIVE,
            AchievementTemplate.condition_type == condition_type,
            AchievementTemplate.category == category
        ).all()

    @staticmethod
    def create(db: Session, template: AchievementTemplate) -> AchievementTemplate:
        db.add(template)
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def update(db: Session, template: AchievementTemplate) -> AchievementTemplate:
        db.commit()
        db.refresh(template)
        return template

    @staticmethod
    def delete(db: Session, template: AchievementTemplate) -> None:
        """Permanently delete a template and every user row that references it"""
        db.query(UserAchievement).filter(
            UserAchievement.template_id == template.id
        ).delete(synchronize_session=False)
        db.delete(template)
        db.commit()


class UserAchievementRepository:
    """Repository for UserAchievement data access"""

    @staticmethod
    def get_by_id(db: Session, achievement_id: int) -> Optional[UserAchievement]:
        return db.query(UserAchievement).filter(UserAchievement.id == achievement_id).first()

    @staticmethod
    def get_by_pair(db: Session, user_id: int, template_id: int) -> Optional[UserAchievement]:
        return db.query(UserAchievement).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.template_id == template_id
        ).first()

    @staticmethod
    def get_template_ids_for_user(db: Session, user_id: int) -> List[int]:
        rows = db.query(UserAchievement.template_id).filter(UserAchievement.user_id == user_id).all()
        return [row.template_id for row in rows]

    @staticmethod
    def get_achieved_template_ids(db: Session, user_id: int) -> List[int]:
        rows = db.query(UserAchievement.template_id).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.status == ACHIEVEMENT_STATUS_ACHIEVED
        ).all()
        return [row.template_id for row in rows]

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: int,
        status: Optional[str] = None,
        template_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[UserAchievement], int]:
        """List a user's achievements, most recently updated first"""
        query = db.query(UserAchievement).filter(UserAchievement.user_id == user_id)
        if status:
            query = query.filter(UserAchievement.status == status)
        if template_type or difficulty:
            query = query.join(AchievementTemplate, AchievementTemplate.id == UserAchievement.template_id)
            if template_type:
                query = query.filter(AchievementTemplate.type == template_type)
            if difficulty:
                query = query.filter(AchievementTemplate.difficulty == difficulty)

        total = query.count()
        achievements = query.order_by(
            UserAchievement.updated_at.desc(), UserAchievement.id.desc()
        ).offset(skip).limit(limit).all()
        return achievements, total

    @staticmethod
    def get_for_templates(db: Session, user_id: int, template_ids: List[int]) -> List[UserAchievement]:
        if not template_ids:
            return []
        return db.query(UserAchievement).filter(
            UserAchievement.user_id == user_id,
            UserAchievement.template_id.in_(template_ids)
        ).all()

    @staticmethod
    def get_user_stats(db: Session, user_id: int) -> dict:
        """Counts by status plus total awarded points for a user"""
        rows = db.query(
            UserAchievement.status,
            func.count(UserAchievement.id),
            func.coalesce(func.sum(UserAchievement.points_awarded), 0)
        ).filter(UserAchievement.user_id == user_id).group_by(UserAchievement.status).all()

        stats = {
            "total": 0,
            ACHIEVEMENT_STATUS_ACHIEVED: 0,
            ACHIEVEMENT_STATUS_IN_PROGRESS: 0,
            ACHIEVEMENT_STATUS_NOT_STARTED: 0,
            "total_points": 0,
        }
        for status, count, points in rows:
            stats[status] = count
            stats["total"] += count
            stats["total_points"] += int(points or 0)
        return stats

    @staticmethod
    def count_by_status(db: Session, template_id: int, status: str) -> int:
        return db.query(func.count(UserAchievement.id)).filter(
            UserAchievement.template_id == template_id,
            UserAchievement.status == status
        ).scalar()

    @staticmethod
    def leaderboard(
        db: Session,
        order_by_points: bool = True,
        since: Optional[datetime] = None,
        limit: int = 10
    ) -> list:
        """Aggregate achieved rows per active user"""
        points = func.coalesce(func.sum(UserAchievement.points_awarded), 0).label("total_points")
        count = func.count(UserAchievement.id).label("achievement_count")

        query = db.query(User, points, count).join(
            UserAchievement, UserAchievement.user_id == User.id
        ).filter(
            UserAchievement.status == ACHIEVEMENT_STATUS_ACHIEVED,
            User.is_active == True
        )
        if since is not None:
            query = query.filter(UserAchievement.achieved_at >= since)

        query = query.group_by(User.id)
        if order_by_points:
            query = query.order_by(points.desc(), count.desc(), User.id)
        else:
            query = query.order_by(count.desc(), points.desc(), User.id)
        return query.limit(limit).all()

    @staticmethod
    def add(db: Session, achievement: UserAchievement) -> UserAchievement:
        """Stage a new row; the caller commits"""
        db.add(achievement)
        return achievement

    @staticmethod
    def create(db: Session, achievement: UserAchievement) -> UserAchievement:
        db.add(achievement)
        db.commit()
        db.refresh(achievement)
        return achievement

    @staticmethod
    def update(db: Session, achievement: UserAchievement) -> UserAchievement:
        db.commit()
        db.refresh(achievement)
        return achievement
