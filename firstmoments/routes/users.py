"""
User HTTP routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user, require_admin
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    UserUpdate, PasswordChangeRequest, DeleteAccountRequest, UserResponse, PublicUserResponse,
)
from firstmoments.services.user_service import UserService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response, client_info

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    return success_response(UserResponse.model_validate(current_user))


@router.put("/me")
def update_me(
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update profile fields and notification preferences."""
    user = UserService(db).update_me(current_user, payload)
    return success_response(UserResponse.model_validate(user), "Profile updated")


@router.put("/me/password")
def change_password(
    payload: PasswordChangeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change password; other sessions are signed out."""
    user_agent, ip_address = client_info(request)
    tokens = UserService(db).change_password(current_user, payload, user_agent, ip_address)
    return success_response(tokens, "Password changed")


@router.delete("/me")
def delete_me(
    payload: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    UserService(db).delete_account(current_user, payload.password)
    return success_response(None, "Account deactivated")


@router.get("/me/stats")
def get_my_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return success_response(UserService(db).get_stats(current_user))


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List users (admin only)."""
    users, total = UserService(db).list_users(search, is_active, get_offset(page, limit), limit)
    return success_response({
        "users": [UserResponse.model_validate(user) for user in users],
        "pagination": build_pagination(page, limit, total),
    })


@router.get("/{user_id}")
def get_user(
    user_id: int,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Public fields of another user."""
    user = UserService(db).get_user(user_id)
    return success_response(PublicUserResponse.model_validate(user))
