"""
Profile HTTP routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import ProfileCreate, ProfileUpdate, ProfileResponse, PROFILE_TYPE_PATTERN
from firstmoments.services.profile_service import ProfileService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.get("")
def list_profiles(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = Query(None, pattern=PROFILE_TYPE_PATTERN),
    search: Optional[str] = Query(None, max_length=100),
    mine: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Own profiles plus public profiles of other users."""
    profiles, total = ProfileService(db).list_profiles(
        current_user, profile_type=type, search=search, only_own=mine,
        skip=get_offset(page, limit), limit=limit
    )
    return success_response({
        "profiles": [ProfileResponse.model_validate(profile) for profile in profiles],
        "pagination": build_pagination(page, limit, total),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    profile = ProfileService(db).create_profile(current_user, payload)
    return success_response(ProfileResponse.model_validate(profile), "Profile created")


@router.get("/{profile_id}")
def get_profile(
    profile_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    profile = ProfileService(db).get_profile(current_user, profile_id)
    return success_response(ProfileResponse.model_validate(profile))


@router.put("/{profile_id}")
def update_profile(
    profile_id: int,
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    profile = ProfileService(db).update_profile(current_user, profile_id, payload)
    return success_response(ProfileResponse.model_validate(profile), "Profile updated")


@router.delete("/{profile_id}")
def delete_profile(
    profile_id: int,
    permanent: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete a profile; permanent=true also removes its moments."""
    ProfileService(db).delete_profile(current_user, profile_id, permanent)
    return success_response(None, "Profile deleted")
