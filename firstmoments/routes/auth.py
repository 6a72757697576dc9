"""
Authentication HTTP routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    RegisterRequest, LoginRequest, RefreshRequest, LogoutRequest,
    ForgotPasswordRequest, ResetPasswordRequest, ResendVerificationRequest, UserResponse,
)
from firstmoments.services.auth_service import AuthService
from firstmoments.shared.responses import success_response, client_info

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_payload(result: dict) -> dict:
    return {
        "user": UserResponse.model_validate(result["user"]),
        "access_token": result["access_token"],
        "refresh_token": result["refresh_token"],
        "token_type": result["token_type"],
        "expires_in": result["expires_in"],
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Create an account and return a session."""
    user_agent, ip_address = client_info(request)
    result = AuthService(db).register(payload, user_agent, ip_address)
    return success_response(_session_payload(result), "Registration successful")


@router.post("/login")
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Log in with email and password."""
    user_agent, ip_address = client_info(request)
    result = AuthService(db).login(payload.email, payload.password, user_agent, ip_address)
    return success_response(_session_payload(result), "Login successful")


@router.post("/refresh")
def refresh_tokens(payload: RefreshRequest, request: Request, db: Session = Depends(get_db)):
    """Rotate a refresh token."""
    user_agent, ip_address = client_info(request)
    tokens = AuthService(db).refresh(payload.refresh_token, user_agent, ip_address)
    return success_response(tokens, "Token refreshed")


@router.post("/logout")
def logout(
    payload: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Revoke the given refresh token, or every session when omitted."""
    refresh_token = payload.refresh_token if payload else None
    AuthService(db).logout(current_user, refresh_token)
    return success_response(None, "Logged out")


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    AuthService(db).forgot_password(payload.email)
    return success_response(None, "If the email is registered, a reset link has been sent")


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    AuthService(db).reset_password(payload.token, payload.password)
    return success_response(None, "Password has been reset, please log in")


@router.get("/verify-email/{token}")
def verify_email(token: str, db: Session = Depends(get_db)):
    user = AuthService(db).verify_email(token)
    return success_response(UserResponse.model_validate(user), "Email verified")


@router.post("/resend-verification")
def resend_verification(payload: ResendVerificationRequest, db: Session = Depends(get_db)):
    AuthService(db).resend_verification(payload.email)
    return success_response(None, "If the account exists, a verification email has been sent")


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    return success_response(UserResponse.model_validate(current_user))
