"""
Profile service.
Personas that moments are filed under: ownership, visibility, the default
profile and soft deletion.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.models import Profile, User
from firstmoments.schemas import ProfileCreate, ProfileUpdate
from firstmoments.repositories.profile_repository import ProfileRepository
from firstmoments.repositories.moment_repository import MomentRepository
from firstmoments.exceptions import NotFoundException, PermissionDeniedException, ConflictException

logger = logging.getLogger("first_moments.profiles")


class ProfileService:
    """Service for profile management"""

    def __init__(self, db: Session):
        self.db = db
        self.profile_repo = ProfileRepository()
        self.moment_repo = MomentRepository()

    def list_profiles(self, user: User, profile_type: Optional[str] = None, search: Optional[str] = None,
                      only_own: bool = False, skip: int = 0, limit: int = 20) -> Tuple[List[Profile], int]:
        return self.profile_repo.list_visible(
            self.db, user.id, profile_type=profile_type, search=search,
            only_own=only_own, skip=skip, limit=limit
        )

    def get_profile(self, user: User, profile_id: int) -> Profile:
        """Get a profile the user may see"""
        profile = self.profile_repo.get_by_id(self.db, profile_id)
        if not profile:
            raise NotFoundException("Profile", profile_id)
        if not profile.has_access(user.id):
            raise PermissionDeniedException("This profile is private")
        return profile

    def get_owned_profile(self, user: User, profile_id: int) -> Profile:
        profile = self.profile_repo.get_by_id(self.db, profile_id)
        if not profile:
            raise NotFoundException("Profile", profile_id)
        if profile.user_id != user.id:
            raise PermissionDeniedException("You do not own this profile")
        return profile

    def create_profile(self, user: User, data: ProfileCreate) -> Profile:
        if self.profile_repo.get_by_name(self.db, user.id, data.name):
            raise ConflictException("name", "You already have a profile with this name")

        profile = Profile(**data.model_dump(), user_id=user.id)
        # First profile becomes the default
        profile.is_default = self.profile_repo.count_for_user(self.db, user.id) == 0

        profile = self.profile_repo.create(self.db, profile)
        logger.info(f"User {user.id} created profile {profile.id}")
        return profile

    def update_profile(self, user: User, profile_id: int, data: ProfileUpdate) -> Profile:
        profile = self.get_owned_profile(user, profile_id)
        update_data = data.model_dump(exclude_unset=True)

        new_name = update_data.get("name")
        if new_name and new_name != profile.name:
            existing = self.profile_repo.get_by_name(self.db, user.id, new_name)
            if existing and existing.id != profile.id:
                raise ConflictException("name", "You already have a profile with this name")

        if update_data.get("is_default"):
            self.profile_repo.clear_default(self.db, user.id, except_id=profile.id)
        elif "is_default" in update_data:
            # Unsetting is ignored; choose another default instead
            update_data.pop("is_default")

        for key, value in update_data.items():
            setattr(profile, key, value)

        return self.profile_repo.update(self.db, profile)

    def delete_profile(self, user: User, profile_id: int, permanent: bool = False) -> None:
        """Soft-delete a profile, or remove it with its moments when permanent"""
        profile = self.get_owned_profile(user, profile_id)
        was_default = profile.is_default

        if permanent:
            deleted_moments = self.moment_repo.delete_for_profile(self.db, profile.id)
            self.profile_repo.delete(self.db, profile)
            logger.warning(
                f"User {user.id} permanently deleted profile {profile_id} with {deleted_moments} moments"
            )
        else:
            profile.is_deleted = True
            profile.deleted_at = datetime.now()
            profile.is_default = False
            self.profile_repo.update(self.db, profile)
            logger.info(f"User {user.id} deleted profile {profile_id}")

        if was_default:
            remaining = self.profile_repo.get_for_user(self.db, user.id)
            if remaining:
                remaining[0].is_default = True
                self.db.commit()

    def refresh_stats(self, profile: Profile) -> Profile:
        """Recount live moments of the profile"""
        profile.moment_count = self.moment_repo.count_for_profile(self.db, profile.id)
        profile.last_moment_at = self.moment_repo.latest_moment_date(self.db, profile.id)
        return self.profile_repo.update(self.db, profile)
