"""
Moment service.
Journal entries: visibility rules, likes, comments and the side effects of
creating a moment (profile stats and record achievements).
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.models import Moment, MomentComment, MomentLike, User
from firstmoments.schemas import MomentCreate, MomentUpdate, CommentCreate
from firstmoments.repositories.moment_repository import MomentRepository
from firstmoments.repositories.profile_repository import ProfileRepository
from firstmoments.repositories.user_repository import UserRepository
from firstmoments.services.profile_service import ProfileService
from firstmoments.services.achievement_service import AchievementService
from firstmoments.services.notification_service import NotificationService
from firstmoments.exceptions import NotFoundException, PermissionDeniedException
from firstmoments.constants import PRIVACY_PUBLIC

logger = logging.getLogger("first_moments.moments")


class MomentService:
    """Service for moment management"""

    def __init__(self, db: Session):
        self.db = db
        self.moment_repo = MomentRepository()
        self.profile_repo = ProfileRepository()
        self.user_repo = UserRepository()
        self.profile_service = ProfileService(db)
        self.achievement_service = AchievementService(db)
        self.notification_service = NotificationService(db)

    def list_moments(self, user: User, profile_id: Optional[int] = None, skip: int = 0,
                     limit: int = 20, **filters) -> Tuple[List[Moment], int]:
        profile_owned = False
        if profile_id is not None:
            profile = self.profile_service.get_profile(user, profile_id)
            profile_owned = profile.user_id == user.id

        return self.moment_repo.list_moments(
            self.db, user.id, profile_id=profile_id, profile_owned=profile_owned,
            skip=skip, limit=limit, **filters
        )

    def create_moment(self, user: User, data: MomentCreate) -> Moment:
        profile = self.profile_repo.get_by_id(self.db, data.profile_id)
        if not profile:
            raise NotFoundException("Profile", data.profile_id)
        if profile.user_id != user.id:
            raise PermissionDeniedException("You can only add moments to your own profiles")

        fields = data.model_dump(exclude={"location"})
        moment = Moment(**fields, creator_id=user.id)
        if moment.moment_date is None:
            moment.moment_date = datetime.now()
        self._apply_location(moment, data.location)

        moment = self.moment_repo.create(self.db, moment)
        logger.info(f"User {user.id} created moment {moment.id} in profile {profile.id}")

        self.profile_service.refresh_stats(profile)
        self.achievement_service.record_progress(user, "count", "records", "record_created")
        self.db.refresh(moment)
        return moment

    def get_moment(self, user: User, moment_id: int, count_view: bool = True) -> Moment:
        """Get a visible moment; views by anyone but the creator are counted"""
        moment = self._get_visible(user, moment_id)
        if count_view and moment.creator_id != user.id:
            moment.view_count = (moment.view_count or 0) + 1
            moment = self.moment_repo.update(self.db, moment)
        return moment

    def update_moment(self, user: User, moment_id: int, data: MomentUpdate) -> Moment:
        moment = self._get_own(user, moment_id)
        update_data = data.model_dump(exclude_unset=True, exclude={"location"})
        for key, value in update_data.items():
            setattr(moment, key, value)
        if "location" in data.model_fields_set:
            self._apply_location(moment, data.location)

        moment = self.moment_repo.update(self.db, moment)
        if "moment_date" in update_data:
            profile = self.profile_repo.get_by_id(self.db, moment.profile_id)
            if profile:
                self.profile_service.refresh_stats(profile)
        return moment

    def delete_moment(self, user: User, moment_id: int, permanent: bool = False) -> None:
        moment = self._get_own(user, moment_id)
        profile_id = moment.profile_id

        if permanent:
            self.moment_repo.delete(self.db, moment)
        else:
            moment.is_deleted = True
            moment.deleted_at = datetime.now()
            self.moment_repo.update(self.db, moment)
        logger.info(f"User {user.id} deleted moment {moment_id} (permanent={permanent})")

        profile = self.profile_repo.get_by_id(self.db, profile_id)
        if profile:
            self.profile_service.refresh_stats(profile)

    def toggle_like(self, user: User, moment_id: int) -> dict:
        """Like the moment, or remove the caller's like if present"""
        moment = self._get_visible(user, moment_id)
        like = self.moment_repo.get_like(self.db, moment.id, user.id)

        if like:
            moment.likes.remove(like)
            action = "unliked"
        else:
            moment.likes.append(MomentLike(user_id=user.id))
            action = "liked"
        self.db.commit()

        if action == "liked" and moment.creator_id != user.id:
            self._notify_creator(moment, user, "like", f"{user.display_name} liked your moment")

        return {"action": action, "like_count": moment.like_count}

    def add_comment(self, user: User, moment_id: int, data: CommentCreate) -> MomentComment:
        moment = self._get_visible(user, moment_id)
        comment = MomentComment(user_id=user.id, content=data.content)
        moment.comments.append(comment)
        self.db.commit()
        self.db.refresh(comment)

        if moment.creator_id != user.id:
            self._notify_creator(moment, user, "comment", f"{user.display_name} commented on your moment")
        return comment

    def delete_comment(self, user: User, moment_id: int, comment_id: int) -> None:
        """Delete a comment; allowed for its author and the moment creator"""
        moment = self.moment_repo.get_by_id(self.db, moment_id)
        if not moment:
            raise NotFoundException("Moment", moment_id)
        comment = self.moment_repo.get_comment(self.db, moment.id, comment_id)
        if not comment:
            raise NotFoundException("Comment", comment_id)
        if comment.user_id != user.id and moment.creator_id != user.id:
            raise PermissionDeniedException("You cannot delete this comment")

        moment.comments.remove(comment)
        self.db.commit()

    def _get_visible(self, user: User, moment_id: int) -> Moment:
        moment = self.moment_repo.get_by_id(self.db, moment_id)
        if not moment:
            raise NotFoundException("Moment", moment_id)
        if moment.creator_id == user.id:
            return moment

        profile = self.profile_repo.get_by_id(self.db, moment.profile_id)
        if moment.privacy != PRIVACY_PUBLIC or not profile or not profile.has_access(user.id):
            raise PermissionDeniedException("This moment is private")
        return moment

    def _get_own(self, user: User, moment_id: int) -> Moment:
        moment = self.moment_repo.get_by_id(self.db, moment_id)
        if not moment:
            raise NotFoundException("Moment", moment_id)
        if moment.creator_id != user.id:
            raise PermissionDeniedException("Only the creator can modify this moment")
        return moment

    @staticmethod
    def _apply_location(moment: Moment, location) -> None:
        if location is None:
            moment.latitude = None
            moment.longitude = None
            moment.address = None
            moment.place_name = None
        else:
            moment.latitude = location.latitude
            moment.longitude = location.longitude
            moment.address = location.address
            moment.place_name = location.place_name

    def _notify_creator(self, moment: Moment, actor: User, notification_type: str, title: str) -> None:
        creator = self.user_repo.get_by_id(self.db, moment.creator_id)
        if not creator or not creator.is_active:
            return
        self.notification_service.notify(
            creator,
            notification_type,
            title,
            moment.title,
            data={"moment_id": moment.id},
            sender_id=actor.id,
        )
