"""
Moment HTTP routes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    MomentCreate, MomentUpdate, MomentResponse, CommentCreate, CommentResponse,
    MOMENT_CATEGORY_PATTERN, MOOD_PATTERN, to_naive,
)
from firstmoments.services.moment_service import MomentService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response

router = APIRouter(prefix="/api/moments", tags=["moments"])


@router.get("")
def list_moments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    profile_id: Optional[int] = None,
    category: Optional[str] = Query(None, pattern=MOMENT_CATEGORY_PATTERN),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    mood: Optional[str] = Query(None, pattern=MOOD_PATTERN),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = Query(None, max_length=100),
    sort_by: str = Query("moment_date", pattern=r"^(moment_date|created_at|updated_at|title|view_count)$"),
    sort_order: str = Query("desc", pattern=r"^(asc|desc)$"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List visible moments, pinned first."""
    tag_list = [tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None
    moments, total = MomentService(db).list_moments(
        current_user,
        profile_id=profile_id,
        category=category,
        tags=tag_list,
        mood=mood,
        start_date=to_naive(start_date),
        end_date=to_naive(end_date),
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=get_offset(page, limit),
        limit=limit,
    )
    return success_response({
        "moments": [MomentResponse.model_validate(moment) for moment in moments],
        "pagination": build_pagination(page, limit, total),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def create_moment(
    payload: MomentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    moment = MomentService(db).create_moment(current_user, payload)
    return success_response(MomentResponse.model_validate(moment), "Moment created")


@router.get("/{moment_id}")
def get_moment(
    moment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = MomentService(db)
    moment = service.get_moment(current_user, moment_id)
    data = MomentResponse.model_validate(moment).model_dump()
    data["is_liked"] = moment.is_liked_by(current_user.id)
    return success_response(data)


@router.put("/{moment_id}")
def update_moment(
    moment_id: int,
    payload: MomentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    moment = MomentService(db).update_moment(current_user, moment_id, payload)
    return success_response(MomentResponse.model_validate(moment), "Moment updated")


@router.delete("/{moment_id}")
def delete_moment(
    moment_id: int,
    permanent: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    MomentService(db).delete_moment(current_user, moment_id, permanent)
    return success_response(None, "Moment deleted")


@router.post("/{moment_id}/like")
def toggle_like(
    moment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Like or unlike a moment."""
    result = MomentService(db).toggle_like(current_user, moment_id)
    return success_response(result, "Moment liked" if result["action"] == "liked" else "Like removed")


@router.post("/{moment_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    moment_id: int,
    payload: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    comment = MomentService(db).add_comment(current_user, moment_id, payload)
    return success_response(CommentResponse.model_validate(comment), "Comment added")


@router.delete("/{moment_id}/comments/{comment_id}")
def delete_comment(
    moment_id: int,
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    MomentService(db).delete_comment(current_user, moment_id, comment_id)
    return success_response(None, "Comment deleted")
