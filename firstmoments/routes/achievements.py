"""
Achievement HTTP routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user, require_admin
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    AchievementTemplateCreate, AchievementTemplateUpdate, AchievementTemplateResponse,
    UserAchievementResponse, ProgressUpdate, GrantAchievementRequest,
    ACHIEVEMENT_TYPE_PATTERN, ACHIEVEMENT_CATEGORY_PATTERN, DIFFICULTY_PATTERN, TEMPLATE_STATUS_PATTERN,
)
from firstmoments.services.achievement_service import AchievementService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response

router = APIRouter(prefix="/api/achievements", tags=["achievements"])

ACHIEVEMENT_STATUS_PATTERN = r"^(not_started|in_progress|achieved)$"


# ===== TEMPLATES =====

@router.get("/templates")
def list_templates(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = Query(None, pattern=ACHIEVEMENT_TYPE_PATTERN),
    category: Optional[str] = Query(None, pattern=ACHIEVEMENT_CATEGORY_PATTERN),
    difficulty: Optional[str] = Query(None, pattern=DIFFICULTY_PATTERN),
    status: Optional[str] = Query("active", pattern=TEMPLATE_STATUS_PATTERN),
    include_hidden: bool = False,
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db)
):
    """List achievement templates (public)."""
    templates, total = AchievementService(db).list_templates(
        skip=get_offset(page, limit),
        limit=limit,
        template_type=type,
        category=category,
        difficulty=difficulty,
        status=status,
        include_hidden=include_hidden,
        search=search,
    )
    return success_response({
        "templates": [AchievementTemplateResponse.model_validate(template) for template in templates],
        "pagination": build_pagination(page, limit, total),
    })


@router.get("/templates/{template_id}")
def get_template(template_id: int, db: Session = Depends(get_db)):
    template = AchievementService(db).get_template(template_id)
    return success_response(AchievementTemplateResponse.model_validate(template))


@router.post("/templates", status_code=status.HTTP_201_CREATED)
def create_template(
    payload: AchievementTemplateCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    template = AchievementService(db).create_template(admin, payload)
    return success_response(AchievementTemplateResponse.model_validate(template), "Template created")


@router.put("/templates/{template_id}")
def update_template(
    template_id: int,
    payload: AchievementTemplateUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    template = AchievementService(db).update_template(admin, template_id, payload)
    return success_response(AchievementTemplateResponse.model_validate(template), "Template updated")


@router.delete("/templates/{template_id}")
def delete_template(
    template_id: int,
    permanent: bool = False,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Deprecate a template; permanent=true removes it and its user rows."""
    AchievementService(db).delete_template(admin, template_id, permanent)
    return success_response(None, "Template deleted" if permanent else "Template deprecated")


# ===== USER ACHIEVEMENTS =====

def _user_achievements_response(service: AchievementService, viewer: User, user_id: int,
                                page: int, limit: int, **filters) -> dict:
    achievements, total, stats = service.list_user_achievements(
        viewer, user_id, skip=get_offset(page, limit), limit=limit, **filters
    )
    return success_response({
        "achievements": [UserAchievementResponse.model_validate(item) for item in achievements],
        "stats": stats,
        "pagination": build_pagination(page, limit, total),
    })


@router.get("/user")
def list_my_achievements(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, pattern=ACHIEVEMENT_STATUS_PATTERN),
    type: Optional[str] = Query(None, pattern=ACHIEVEMENT_TYPE_PATTERN),
    difficulty: Optional[str] = Query(None, pattern=DIFFICULTY_PATTERN),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _user_achievements_response(
        AchievementService(db), current_user, current_user.id, page, limit,
        status=status, template_type=type, difficulty=difficulty
    )


@router.get("/user/{user_id}")
def list_user_achievements(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, pattern=ACHIEVEMENT_STATUS_PATTERN),
    type: Optional[str] = Query(None, pattern=ACHIEVEMENT_TYPE_PATTERN),
    difficulty: Optional[str] = Query(None, pattern=DIFFICULTY_PATTERN),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Achievements of a user; own or admin only."""
    return _user_achievements_response(
        AchievementService(db), current_user, user_id, page, limit,
        status=status, template_type=type, difficulty=difficulty
    )


@router.post("/initialize")
def initialize_achievements(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Start tracking every available template for the caller."""
    created = AchievementService(db).initialize_user_achievements(current_user)
    return success_response(
        {
            "created_count": len(created),
            "achievements": [UserAchievementResponse.model_validate(item) for item in created],
        },
        f"Initialized {len(created)} achievements"
    )


@router.put("/progress/{achievement_id}")
def update_progress(
    achievement_id: int,
    payload: ProgressUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    achievement = AchievementService(db).update_progress(
        current_user, achievement_id, payload.current, payload.trigger
    )
    return success_response(UserAchievementResponse.model_validate(achievement), "Progress updated")


@router.post("/grant")
def grant_achievement(
    payload: GrantAchievementRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    achievement = AchievementService(db).grant_achievement(
        admin, payload.user_id, payload.template_id, payload.reason
    )
    return success_response(UserAchievementResponse.model_validate(achievement), "Achievement granted")


@router.get("/leaderboard")
def get_leaderboard(
    type: str = Query("total_points", pattern=r"^(total_points|achievement_count)$"),
    period: str = Query("all_time", pattern=r"^(week|month|year|all_time)$"),
    limit: int = Query(10, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    leaderboard = AchievementService(db).get_leaderboard(type, period, limit)
    return success_response({"type": type, "period": period, "leaderboard": leaderboard})
