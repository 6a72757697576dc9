"""
User repository - Data access layer for User and RefreshToken models.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, or_

from firstmoments.models import User, RefreshToken


class UserRepository:
    """Repository for User data access"""

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)"""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username"""
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def get_by_verification_token(db: Session, token: str) -> Optional[User]:
        return db.query(User).filter(User.email_verification_token == token).first()

    @staticmethod
    def get_by_reset_token(db: Session, token: str) -> Optional[User]:
        return db.query(User).filter(User.password_reset_token == token).first()

    @staticmethod
    def search(
        db: Session,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[User], int]:
        """Search users by username, email or nickname, newest first"""
        query = db.query(User)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    User.username.ilike(pattern),
                    User.email.ilike(pattern),
                    User.nickname.ilike(pattern)
                )
            )
        if is_active is not None:
            query = query.filter(User.is_active == is_active)

        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit).all()
        return users, total

    @staticmethod
    def count(db: Session) -> int:
        return db.query(func.count(User.id)).scalar()

    @staticmethod
    def create(db: Session, user: User) -> User:
        """Create new user"""
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update(db: Session, user: User) -> User:
        """Update existing user"""
        db.commit()
        db.refresh(user)
        return user


class RefreshTokenRepository:
    """Repository for stored refresh tokens"""

    @staticmethod
    def get(db: Session, user_id: int, token: str) -> Optional[RefreshToken]:
        return db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.token == token
        ).first()

    @staticmethod
    def add(db: Session, user_id: int, token: str,
            user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> RefreshToken:
        """Stage a refresh token; the caller commits"""
        refresh_token = RefreshToken(
            user_id=user_id,
            token=token,
            user_agent=user_agent,
            ip_address=ip_address
        )
        db.add(refresh_token)
        return refresh_token

    @staticmethod
    def delete_token(db: Session, user_id: int, token: str) -> int:
        return db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.token == token
        ).delete(synchronize_session=False)

    @staticmethod
    def delete_all_for_user(db: Session, user_id: int) -> int:
        return db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).delete(synchronize_session=False)

    @staticmethod
    def delete_older_than(db: Session, cutoff: datetime, user_id: Optional[int] = None) -> int:
        """Delete refresh tokens created before cutoff"""
        query = db.query(RefreshToken).filter(RefreshToken.created_at < cutoff)
        if user_id is not None:
            query = query.filter(RefreshToken.user_id == user_id)
        return query.delete(synchronize_session=False)

    @staticmethod
    def count_for_user(db: Session, user_id: int) -> int:
        return db.query(func.count(RefreshToken.id)).filter(RefreshToken.user_id == user_id).scalar()
