"""
User service.
Account self-service (profile fields, preferences, password, deactivation)
plus admin listing and public lookups.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.auth import hash_password, verify_password
from firstmoments.models import User
from firstmoments.schemas import UserUpdate, PasswordChangeRequest
from firstmoments.repositories.user_repository import UserRepository, RefreshTokenRepository
from firstmoments.repositories.profile_repository import ProfileRepository
from firstmoments.repositories.moment_repository import MomentRepository
from firstmoments.repositories.achievement_repository import UserAchievementRepository
from firstmoments.repositories.notification_repository import NotificationRepository
from firstmoments.services.auth_service import AuthService
from firstmoments.exceptions import NotFoundException, ValidationException

logger = logging.getLogger("first_moments.users")


class UserService:
    """Service for user accounts"""

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository()
        self.token_repo = RefreshTokenRepository()

    def update_me(self, user: User, data: UserUpdate) -> User:
        update_data = data.model_dump(exclude_unset=True, exclude={"notification_preferences"})
        for key, value in update_data.items():
            setattr(user, key, value)

        if data.notification_preferences is not None:
            preferences = data.notification_preferences.model_dump(exclude_none=True)
            for category, enabled in preferences.items():
                setattr(user, f"notify_{category}", enabled)

        return self.user_repo.update(self.db, user)

    def change_password(self, user: User, data: PasswordChangeRequest,
                        user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> dict:
        """
        Change the password, revoke every session and issue a fresh token pair.

        Raises:
            ValidationException: Current password is wrong or the new one is the same
        """
        if not verify_password(data.current_password, user.password_hash):
            raise ValidationException("Current password is incorrect")
        if data.new_password == data.current_password:
            raise ValidationException("New password must differ from the current password")

        user.password_hash = hash_password(data.new_password)
        user.password_changed_at = datetime.now()
        self.token_repo.delete_all_for_user(self.db, user.id)
        self.user_repo.update(self.db, user)
        logger.info(f"User {user.id} changed password")

        return AuthService(self.db).issue_tokens(user, user_agent, ip_address)

    def delete_account(self, user: User, password: str) -> None:
        """Deactivate the account after password confirmation"""
        if not verify_password(password, user.password_hash):
            raise ValidationException("Password is incorrect")

        user.is_active = False
        self.token_repo.delete_all_for_user(self.db, user.id)
        self.user_repo.update(self.db, user)
        logger.warning(f"User {user.id} deactivated their account")

    def get_stats(self, user: User) -> dict:
        notification_stats = NotificationRepository.get_stats(self.db, user.id)
        return {
            "profile_count": ProfileRepository.count_for_user(self.db, user.id),
            "moment_count": MomentRepository.count_for_creator(self.db, user.id),
            "achievements": UserAchievementRepository.get_user_stats(self.db, user.id),
            "notifications": {
                "total": notification_stats["total"],
                "unread": notification_stats["unread"],
            },
            "member_since": user.created_at,
        }

    def list_users(self, search: Optional[str] = None, is_active: Optional[bool] = None,
                   skip: int = 0, limit: int = 20) -> Tuple[List[User], int]:
        return self.user_repo.search(self.db, search=search, is_active=is_active, skip=skip, limit=limit)

    def get_user(self, user_id: int) -> User:
        user = self.user_repo.get_by_id(self.db, user_id)
        if not user or not user.is_active:
            raise NotFoundException("User", user_id)
        return user
