"""
Moment repository - Data access layer for moments and their likes, comments and tags.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, or_, and_

from firstmoments.models import Moment, MomentLike, MomentComment, MomentTag, Profile
from firstmoments.constants import PRIVACY_PUBLIC

SORTABLE_FIELDS = {
    "moment_date": Moment.moment_date,
    "created_at": Moment.created_at,
    "updated_at": Moment.updated_at,
    "title": Moment.title,
    "view_count": Moment.view_count,
}


class MomentRepository:
    """Repository for Moment data access"""

    @staticmethod
    def get_by_id(db: Session, moment_id: int, include_deleted: bool = False) -> Optional[Moment]:
        """Get moment by ID"""
        query = db.query(Moment).filter(Moment.id == moment_id)
        if not include_deleted:
            query = query.filter(Moment.is_deleted == False)
        return query.first()

    @staticmethod
    def list_moments(
        db: Session,
        viewer_id: int,
        profile_id: Optional[int] = None,
        profile_owned: bool = False,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        mood: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        sort_by: str = "moment_date",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Moment], int]:
        """
        List moments visible to the viewer.

        Without a profile the viewer sees their own moments plus public
        moments on public profiles. With a profile the owner sees all of its
        moments and everyone else only the public ones.
        """
        query = db.query(Moment).join(Profile, Profile.id == Moment.profile_id).filter(
            Moment.is_deleted == False,
            Profile.is_deleted == False
        )

        if profile_id is not None:
            query = query.filter(Moment.profile_id == profile_id)
            if not profile_owned:
                query = query.filter(Moment.privacy == PRIVACY_PUBLIC)
        else:
            query = query.filter(
                or_(
                    Moment.creator_id == viewer_id,
                    and_(Moment.privacy == PRIVACY_PUBLIC, Profile.is_public == True)
                )
            )

        if category:
            query = query.filter(Moment.category == category)
        if mood:
            query = query.filter(Moment.mood == mood)
        if start_date:
            query = query.filter(Moment.moment_date >= start_date)
        if end_date:
            query = query.filter(Moment.moment_date <= end_date)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Moment.title.ilike(pattern),
                Moment.content.ilike(pattern),
                Moment.tag_entries.any(MomentTag.tag.ilike(pattern))
            ))
        # Any of the given tags matches
        if tags:
            query = query.filter(Moment.tag_entries.any(MomentTag.tag.in_(tags)))

        total = query.count()

        sort_column = SORTABLE_FIELDS.get(sort_by, Moment.moment_date)
        ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
        moments = query.order_by(
            Moment.is_pinned.desc(), ordering, Moment.id.desc()
        ).offset(skip).limit(limit).all()
        return moments, total

    @staticmethod
    def count_for_profile(db: Session, profile_id: int) -> int:
        return db.query(func.count(Moment.id)).filter(
            Moment.profile_id == profile_id,
            Moment.is_deleted == False
        ).scalar()

    @staticmethod
    def latest_moment_date(db: Session, profile_id: int) -> Optional[datetime]:
        return db.query(func.max(Moment.moment_date)).filter(
            Moment.profile_id == profile_id,
            Moment.is_deleted == False
        ).scalar()

    @staticmethod
    def count_for_creator(db: Session, creator_id: int) -> int:
        return db.query(func.count(Moment.id)).filter(
            Moment.creator_id == creator_id,
            Moment.is_deleted == False
        ).scalar()

    @staticmethod
    def delete_for_profile(db: Session, profile_id: int) -> int:
        """Hard-delete every moment of a profile together with its child rows"""
        moment_ids = [
            row.id for row in db.query(Moment.id).filter(Moment.profile_id == profile_id).all()
        ]
        if not moment_ids:
            return 0
        db.query(MomentLike).filter(MomentLike.moment_id.in_(moment_ids)).delete(synchronize_session=False)
        db.query(MomentComment).filter(MomentComment.moment_id.in_(moment_ids)).delete(synchronize_session=False)
        db.query(MomentTag).filter(MomentTag.moment_id.in_(moment_ids)).delete(synchronize_session=False)
        return db.query(Moment).filter(Moment.id.in_(moment_ids)).delete(synchronize_session=False)

    @staticmethod
    def get_like(db: Session, moment_id: int, user_id: int) -> Optional[MomentLike]:
        return db.query(MomentLike).filter(
            MomentLike.moment_id == moment_id,
            MomentLike.user_id == user_id
        ).first()

    @staticmethod
    def get_comment(db: Session, moment_id: int, comment_id: int) -> Optional[MomentComment]:
        return db.query(MomentComment).filter(
            MomentComment.moment_id == moment_id,
            MomentComment.id == comment_id
        ).first()

    @staticmethod
    def create(db: Session, moment: Moment) -> Moment:
        """Create new moment"""
        db.add(moment)
        db.commit()
        db.refresh(moment)
        return moment

    @staticmethod
    def update(db: Session, moment: Moment) -> Moment:
        """Update existing moment"""
        db.commit()
        db.refresh(moment)
        return moment

    @staticmethod
    def delete(db: Session, moment: Moment) -> None:
        """Permanently delete a moment"""
        db.delete(moment)
        db.commit()
