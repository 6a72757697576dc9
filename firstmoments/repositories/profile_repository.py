"""
Profile repository - Data access layer for Profile model.
"""
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, or_

from firstmoments.models import Profile


class ProfileRepository:
    """Repository for Profile data access"""

    @staticmethod
    def get_by_id(db: Session, profile_id: int, include_deleted: bool = False) -> Optional[Profile]:
        """Get profile by ID, skipping soft-deleted ones unless asked"""
        query = db.query(Profile).filter(Profile.id == profile_id)
        if not include_deleted:
            query = query.filter(Profile.is_deleted == False)
        return query.first()

    @staticmethod
    def get_by_name(db: Session, user_id: int, name: str) -> Optional[Profile]:
        """Get a live profile of the owner with the given name"""
        return db.query(Profile).filter(
            Profile.user_id == user_id,
            Profile.name == name,
            Profile.is_deleted == False
        ).first()

    @staticmethod
    def get_for_user(db: Session, user_id: int) -> List[Profile]:
        return db.query(Profile).filter(
            Profile.user_id == user_id,
            Profile.is_deleted == False
        ).order_by(Profile.created_at).all()

    @staticmethod
    def list_visible(
        db: Session,
        user_id: int,
        profile_type: Optional[str] = None,
        search: Optional[str] = None,
        only_own: bool = False,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Profile], int]:
        """List the user's own profiles plus public profiles of others"""
        query = db.query(Profile).filter(Profile.is_deleted == False)
        if only_own:
            query = query.filter(Profile.user_id == user_id)
        else:
            query = query.filter(or_(Profile.user_id == user_id, Profile.is_public == True))
        if profile_type:
            query = query.filter(Profile.type == profile_type)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Profile.name.ilike(pattern), Profile.description.ilike(pattern)))

        total = query.count()
        profiles = query.order_by(
            Profile.is_default.desc(), Profile.created_at.desc(), Profile.id.desc()
        ).offset(skip).limit(limit).all()
        return profiles, total

    @staticmethod
    def count_for_user(db: Session, user_id: int) -> int:
        return db.query(func.count(Profile.id)).filter(
            Profile.user_id == user_id,
            Profile.is_deleted == False
        ).scalar()

    @staticmethod
    def clear_default(db: Session, user_id: int, except_id: Optional[int] = None) -> None:
        query = db.query(Profile).filter(Profile.user_id == user_id, Profile.is_default == True)
        if except_id is not None:
            query = query.filter(Profile.id != except_id)
        query.update({Profile.is_default: False}, synchronize_session=False)

    @staticmethod
    def create(db: Session, profile: Profile) -> Profile:
        """Create new profile"""
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def update(db: Session, profile: Profile) -> Profile:
        """Update existing profile"""
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def delete(db: Session, profile: Profile) -> None:
        """Permanently delete a profile"""
        db.delete(profile)
        db.commit()
