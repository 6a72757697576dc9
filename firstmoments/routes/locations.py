"""
Location HTTP routes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from firstmoments.auth import get_current_user
from firstmoments.constants import DEFAULT_NEARBY_RADIUS_METERS
from firstmoments.database import get_db
from firstmoments.models import User
from firstmoments.schemas import (
    LocationCreate, LocationUpdate, LocationResponse, FavoritePlaceResponse,
    PLACE_TYPE_PATTERN, VISIT_TYPE_PATTERN, to_naive,
)
from firstmoments.services.location_service import LocationService
from firstmoments.shared.pagination import build_pagination, get_offset
from firstmoments.shared.responses import success_response

router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.get("")
def list_locations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    place_type: Optional[str] = Query(None, pattern=PLACE_TYPE_PATTERN),
    visit_type: Optional[str] = Query(None, pattern=VISIT_TYPE_PATTERN),
    city: Optional[str] = Query(None, max_length=100),
    is_favorite: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    locations, total = LocationService(db).list_locations(
        current_user,
        skip=get_offset(page, limit),
        limit=limit,
        place_type=place_type,
        visit_type=visit_type,
        city=city,
        is_favorite=is_favorite,
        start_date=to_naive(start_date),
        end_date=to_naive(end_date),
    )
    return success_response({
        "locations": [LocationResponse.model_validate(location) for location in locations],
        "pagination": build_pagination(page, limit, total),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def check_in(
    payload: LocationCreate,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Check in; a repeat check-in nearby within the hour counts as a visit."""
    location, created = LocationService(db).check_in(current_user, payload)
    if not created:
        response.status_code = status.HTTP_200_OK
    return success_response(
        LocationResponse.model_validate(location),
        "Checked in" if created else "Visit recorded"
    )


@router.get("/nearby")
def get_nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    max_distance: float = Query(DEFAULT_NEARBY_RADIUS_METERS, gt=0, le=50000),
    include_others: bool = False,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Check-ins within max_distance meters, nearest first."""
    locations = LocationService(db).get_nearby(
        current_user, latitude, longitude, max_distance, include_others, limit
    )
    return success_response({
        "locations": [LocationResponse.model_validate(location) for location in locations],
        "count": len(locations),
    })


@router.get("/search")
def search_locations(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    locations = LocationService(db).search(current_user, q, limit)
    return success_response({
        "locations": [LocationResponse.model_validate(location) for location in locations],
        "count": len(locations),
    })


@router.get("/favorites")
def get_favorites(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    places = LocationService(db).get_favorites(current_user)
    return success_response({"favorites": [FavoritePlaceResponse.model_validate(place) for place in places]})


@router.get("/stats")
def get_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return success_response(LocationService(db).get_stats(current_user))


@router.get("/{location_id}")
def get_location(
    location_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    location = LocationService(db).get_location(current_user, location_id)
    return success_response(LocationResponse.model_validate(location))


@router.put("/{location_id}")
def update_location(
    location_id: int,
    payload: LocationUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    location = LocationService(db).update_location(current_user, location_id, payload)
    return success_response(LocationResponse.model_validate(location), "Location updated")


@router.delete("/{location_id}")
def delete_location(
    location_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    LocationService(db).delete_location(current_user, location_id)
    return success_response(None, "Location deleted")
