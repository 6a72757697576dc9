"""
Authentication primitives: password hashing, JWT issuing and the
request dependencies that resolve the current user.
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from firstmoments.constants import (
    JWT_SECRET, JWT_REFRESH_SECRET, JWT_ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS, BCRYPT_ROUNDS,
    TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, ROLE_ADMIN,
)
from firstmoments.database import get_db
from firstmoments.exceptions import AuthenticationException, PermissionDeniedException
from firstmoments.models import User

logger = logging.getLogger("first_moments.auth")

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def generate_token() -> str:
    """Random URL-safe token for email verification and password reset"""
    return secrets.token_urlsafe(32)


def _encode(user_id: int, token_type: str, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int) -> str:
    return _encode(user_id, TOKEN_TYPE_ACCESS, JWT_SECRET, timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(user_id: int) -> str:
    return _encode(user_id, TOKEN_TYPE_REFRESH, JWT_REFRESH_SECRET, timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str, token_type: str = TOKEN_TYPE_ACCESS) -> dict:
    """
    Decode and validate a JWT of the given type.

    Raises:
        AuthenticationException: If the token is expired, malformed or of another type
    """
    secret = JWT_REFRESH_SECRET if token_type == TOKEN_TYPE_REFRESH else JWT_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationException("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationException("Invalid token")

    if payload.get("type") != token_type or not payload.get("sub"):
        raise AuthenticationException("Invalid token")
    return payload


def issued_before_password_change(payload: dict, user: User) -> bool:
    if not user.password_changed_at:
        return False
    issued_at = payload.get("iat", 0)
    return int(user.password_changed_at.timestamp()) > issued_at


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token into an active user"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationException("Authentication required")

    payload = decode_token(credentials.credentials, TOKEN_TYPE_ACCESS)
    user = db.query(User).filter(User.id == int(payload["sub"])).first()

    if not user:
        raise AuthenticationException("User no longer exists")
    if not user.is_active:
        raise AuthenticationException("Account is deactivated")
    if issued_before_password_change(payload, user):
        raise AuthenticationException("Password was changed, please log in again")

    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_ADMIN:
        logger.warning(f"User {current_user.id} attempted an admin action")
        raise PermissionDeniedException("Admin privileges required")
    return current_user
