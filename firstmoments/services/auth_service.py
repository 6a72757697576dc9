"""
Authentication service.
Handles registration, login with brute-force lockout, token rotation,
email verification and password reset.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from firstmoments.auth import (
    hash_password, verify_password, generate_token,
    create_access_token, create_refresh_token, decode_token,
)
from firstmoments.models import User
from firstmoments.schemas import RegisterRequest
from firstmoments.repositories.user_repository import UserRepository, RefreshTokenRepository
from firstmoments.services.email_service import EmailService
from firstmoments.exceptions import (
    AuthenticationException, PermissionDeniedException, AccountLockedException,
    ConflictException, ValidationException, RateLimitException, EmailDeliveryException,
)
from firstmoments.constants import (
    MAX_LOGIN_ATTEMPTS, ACCOUNT_LOCK_MINUTES, EMAIL_VERIFICATION_HOURS,
    PASSWORD_RESET_MINUTES, VERIFICATION_RESEND_COOLDOWN_SECONDS,
    ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS, TOKEN_TYPE_REFRESH,
)

logger = logging.getLogger("first_moments.auth")


class AuthService:
    """Service for authentication flows"""

    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.user_repo = UserRepository()
        self.token_repo = RefreshTokenRepository()
        self.email_service = email_service or EmailService()

    def register(self, data: RegisterRequest, user_agent: Optional[str] = None,
                 ip_address: Optional[str] = None) -> dict:
        """Create an account and log it in"""
        email = data.email.strip().lower()
        if self.user_repo.get_by_email(self.db, email):
            raise ConflictException("email", "Email is already registered")
        if self.user_repo.get_by_username(self.db, data.username):
            raise ConflictException("username", "Username is already taken")

        now = datetime.now()
        user = User(
            username=data.username,
            email=email,
            password_hash=hash_password(data.password),
            email_verification_token=generate_token(),
            email_verification_expires=now + timedelta(hours=EMAIL_VERIFICATION_HOURS),
            last_login_at=now,
            last_login_ip=ip_address,
        )
        user = self.user_repo.create(self.db, user)
        logger.info(f"User registered: {user.id} ({user.username})")

        self._send_verification(user)
        tokens = self.issue_tokens(user, user_agent, ip_address)
        return {"user": user, **tokens}

    def login(self, email: str, password: str, user_agent: Optional[str] = None,
              ip_address: Optional[str] = None) -> dict:
        """
        Verify credentials and issue tokens.

        Raises:
            AuthenticationException: Unknown email or wrong password
            PermissionDeniedException: Account is deactivated
            AccountLockedException: Too many failed attempts
        """
        user = self.user_repo.get_by_email(self.db, email)
        if not user:
            logger.warning(f"Login failed for unknown email from {ip_address}")
            raise AuthenticationException("Invalid email or password")
        if not user.is_active:
            raise PermissionDeniedException("Account is deactivated")

        now = datetime.now()
        if user.lock_until is not None:
            if user.lock_until > now:
                remaining = math.ceil((user.lock_until - now).total_seconds() / 60)
                raise AccountLockedException(remaining)
            # Lock expired, start counting again
            user.login_attempts = 0
            user.lock_until = None

        if not verify_password(password, user.password_hash):
            user.login_attempts = (user.login_attempts or 0) + 1
            user.last_login_attempt = now
            if user.login_attempts >= MAX_LOGIN_ATTEMPTS:
                user.lock_until = now + timedelta(minutes=ACCOUNT_LOCK_MINUTES)
                self.db.commit()
                logger.warning(
                    f"User {user.id} locked for {ACCOUNT_LOCK_MINUTES} minutes "
                    f"after {user.login_attempts} failed logins from {ip_address}"
                )
                raise AccountLockedException(ACCOUNT_LOCK_MINUTES)
            self.db.commit()
            logger.warning(f"Login failed for user {user.id} (attempt {user.login_attempts})")
            raise AuthenticationException("Invalid email or password")

        user.login_attempts = 0
        user.lock_until = None
        user.last_login_attempt = now
        user.last_login_at = now
        user.last_login_ip = ip_address
        self.token_repo.delete_older_than(
            self.db, now - timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS), user_id=user.id
        )

        tokens = self.issue_tokens(user, user_agent, ip_address)
        logger.info(f"User {user.id} logged in from {ip_address}")
        return {"user": user, **tokens}

    def refresh(self, refresh_token: str, user_agent: Optional[str] = None,
                ip_address: Optional[str] = None) -> dict:
        """Exchange a stored refresh token for a new token pair"""
        payload = decode_token(refresh_token, TOKEN_TYPE_REFRESH)
        user = self.user_repo.get_by_id(self.db, int(payload["sub"]))
        if not user or not user.is_active:
            raise AuthenticationException("Invalid refresh token")

        if not self.token_repo.get(self.db, user.id, refresh_token):
            logger.warning(f"Unknown refresh token presented for user {user.id}")
            raise AuthenticationException("Refresh token has been revoked")

        self.token_repo.delete_token(self.db, user.id, refresh_token)
        return self.issue_tokens(user, user_agent, ip_address)

    def logout(self, user: User, refresh_token: Optional[str] = None) -> int:
        """Revoke one refresh token, or all of them when none is given"""
        if refresh_token:
            removed = self.token_repo.delete_token(self.db, user.id, refresh_token)
        else:
            removed = self.token_repo.delete_all_for_user(self.db, user.id)
        self.db.commit()
        logger.info(f"User {user.id} logged out ({removed} tokens revoked)")
        return removed

    def forgot_password(self, email: str) -> None:
        """Start a password reset; silent for unknown emails"""
        user = self.user_repo.get_by_email(self.db, email)
        if not user or not user.is_active:
            logger.info("Password reset requested for unknown or inactive email")
            return

        user.password_reset_token = generate_token()
        user.password_reset_expires = datetime.now() + timedelta(minutes=PASSWORD_RESET_MINUTES)
        self.user_repo.update(self.db, user)

        try:
            self.email_service.send_password_reset_email(user.email, user.username, user.password_reset_token)
        except EmailDeliveryException as e:
            logger.error(f"Password reset email for user {user.id} failed: {e.details}")

    def reset_password(self, token: str, new_password: str) -> User:
        user = self.user_repo.get_by_reset_token(self.db, token)
        now = datetime.now()
        if not user or not user.password_reset_expires or user.password_reset_expires < now:
            raise ValidationException("Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.password_changed_at = now
        user.password_reset_token = None
        user.password_reset_expires = None
        user.login_attempts = 0
        user.lock_until = None
        self.token_repo.delete_all_for_user(self.db, user.id)
        user = self.user_repo.update(self.db, user)
        logger.info(f"Password reset for user {user.id}")
        return user

    def verify_email(self, token: str) -> User:
        user = self.user_repo.get_by_verification_token(self.db, token)
        if not user or not user.email_verification_expires \
                or user.email_verification_expires < datetime.now():
            raise ValidationException("Invalid or expired verification token")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        user = self.user_repo.update(self.db, user)
        logger.info(f"Email verified for user {user.id}")
        return user

    def resend_verification(self, email: str) -> None:
        user = self.user_repo.get_by_email(self.db, email)
        if not user:
            return
        if user.is_email_verified:
            raise ValidationException("Email is already verified")

        now = datetime.now()
        if user.email_verification_expires:
            issued_at = user.email_verification_expires - timedelta(hours=EMAIL_VERIFICATION_HOURS)
            if (now - issued_at).total_seconds() < VERIFICATION_RESEND_COOLDOWN_SECONDS:
                raise RateLimitException("Verification email was just sent, please wait a minute")

        user.email_verification_token = generate_token()
        user.email_verification_expires = now + timedelta(hours=EMAIL_VERIFICATION_HOURS)
        self.user_repo.update(self.db, user)
        self._send_verification(user)

    def _send_verification(self, user: User) -> None:
        try:
            self.email_service.send_verification_email(
                user.email, user.username, user.email_verification_token
            )
        except EmailDeliveryException as e:
            logger.error(f"Verification email for user {user.id} failed: {e.details}")

    def issue_tokens(self, user: User, user_agent: Optional[str], ip_address: Optional[str]) -> dict:
        access_token = create_access_token(user.id)
        refresh_token = create_refresh_token(user.id)
        self.token_repo.add(self.db, user.id, refresh_token, user_agent, ip_address)
        self.db.commit()
        self.db.refresh(user)
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }
