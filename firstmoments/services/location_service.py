"""
Location service.
Check-ins with short-window deduplication, favorite places, nearby search
and per-user location statistics.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from firstmoments.models import Location, FavoritePlace, User
from firstmoments.schemas import LocationCreate, LocationUpdate
from firstmoments.repositories.location_repository import LocationRepository, FavoritePlaceRepository
from firstmoments.services.achievement_service import AchievementService
from firstmoments.shared.geo import haversine_distance
from firstmoments.exceptions import NotFoundException, PermissionDeniedException
from firstmoments.constants import (
    CHECKIN_MERGE_RADIUS_METERS, CHECKIN_MERGE_WINDOW_MINUTES, FAVORITE_MERGE_RADIUS_METERS,
)

logger = logging.getLogger("first_moments.locations")


class LocationService:
    """Service for location check-ins"""

    def __init__(self, db: Session):
        self.db = db
        self.location_repo = LocationRepository()
        self.favorite_repo = FavoritePlaceRepository()
        self.achievement_service = AchievementService(db)

    def list_locations(self, user: User, skip: int = 0, limit: int = 20, **filters) -> Tuple[List[Location], int]:
        return self.location_repo.list_for_user(self.db, user.id, skip=skip, limit=limit, **filters)

    def check_in(self, user: User, data: LocationCreate, now: Optional[datetime] = None) -> Tuple[Location, bool]:
        """
        Record a check-in.

        A check-in within CHECKIN_MERGE_RADIUS_METERS of one the user made in
        the last CHECKIN_MERGE_WINDOW_MINUTES counts as another visit to it.

        Returns:
            (location, created) where created is False for a merged visit
        """
        now = now or datetime.now()
        visited_at = data.visited_at or now

        duplicate = self._find_recent_duplicate(user, data.latitude, data.longitude, now)
        if duplicate is not None:
            duplicate.visit_count = (duplicate.visit_count or 1) + 1
            duplicate.last_visit_at = visited_at
            if data.is_favorite:
                duplicate.is_favorite = True
            self._upsert_favorite(user, data, visited_at)
            location = self.location_repo.update(self.db, duplicate)
            logger.info(f"User {user.id} revisited location {location.id} (visit {location.visit_count})")
            return location, False

        location = Location(
            **data.model_dump(exclude={"visited_at"}),
            user_id=user.id,
            visited_at=visited_at,
            last_visit_at=visited_at,
            visit_count=1,
        )
        self._upsert_favorite(user, data, visited_at)
        location = self.location_repo.create(self.db, location)
        logger.info(f"User {user.id} checked in at location {location.id}")

        self.achievement_service.record_progress(user, "count", "exploration", "location_visit")
        self.db.refresh(location)
        return location, True

    def get_nearby(self, user: User, latitude: float, longitude: float, max_distance: float,
                   include_others: bool = False, limit: int = 20) -> List[Location]:
        """Check-ins within max_distance meters, nearest first"""
        candidates = self.location_repo.get_in_box(
            self.db, latitude, longitude, max_distance, user.id, include_others
        )
        nearby = []
        for location in candidates:
            distance = haversine_distance(latitude, longitude, location.latitude, location.longitude)
            if distance <= max_distance:
                location.distance = round(distance, 1)
                nearby.append(location)
        nearby.sort(key=lambda location: location.distance)
        return nearby[:limit]

    def search(self, user: User, text: str, limit: int = 20) -> List[Location]:
        return self.location_repo.search(self.db, user.id, text.strip(), limit)

    def get_favorites(self, user: User) -> List[FavoritePlace]:
        return self.favorite_repo.get_for_user(self.db, user.id)

    def get_stats(self, user: User) -> dict:
        return self.location_repo.get_stats(self.db, user.id)

    def get_location(self, user: User, location_id: int) -> Location:
        location = self.location_repo.get_by_id(self.db, location_id)
        if not location:
            raise NotFoundException("Location", location_id)
        if location.user_id != user.id:
            raise PermissionDeniedException("You do not have access to this location")
        return location

    def update_location(self, user: User, location_id: int, data: LocationUpdate) -> Location:
        location = self.get_location(user, location_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(location, key, value)
        return self.location_repo.update(self.db, location)

    def delete_location(self, user: User, location_id: int) -> None:
        location = self.get_location(user, location_id)
        location.is_deleted = True
        location.deleted_at = datetime.now()
        self.location_repo.update(self.db, location)
        logger.info(f"User {user.id} deleted location {location_id}")

    def _find_recent_duplicate(self, user: User, latitude: float, longitude: float,
                               now: datetime) -> Optional[Location]:
        since = now - timedelta(minutes=CHECKIN_MERGE_WINDOW_MINUTES)
        closest = None
        closest_distance = None
        for location in self.location_repo.get_recent_for_user(self.db, user.id, since):
            distance = haversine_distance(latitude, longitude, location.latitude, location.longitude)
            if distance <= CHECKIN_MERGE_RADIUS_METERS and (closest is None or distance < closest_distance):
                closest, closest_distance = location, distance
        return closest

    def _upsert_favorite(self, user: User, data: LocationCreate, visited_at: datetime) -> None:
        """Named and typed check-ins feed the user's favorite places"""
        if not data.place_name or data.place_type == "other":
            return

        for place in self.favorite_repo.get_in_box(
            self.db, user.id, data.latitude, data.longitude, FAVORITE_MERGE_RADIUS_METERS
        ):
            distance = haversine_distance(data.latitude, data.longitude, place.latitude, place.longitude)
            if distance <= FAVORITE_MERGE_RADIUS_METERS:
                place.visit_count = (place.visit_count or 0) + 1
                place.last_visit_at = visited_at
                return

        self.favorite_repo.add(self.db, FavoritePlace(
            user_id=user.id,
            name=data.place_name,
            latitude=data.latitude,
            longitude=data.longitude,
            address=data.address,
            type=data.place_type,
            visit_count=1,
            last_visit_at=visited_at,
        ))
