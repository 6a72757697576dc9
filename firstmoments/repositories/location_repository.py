"""
Location repository - Data access layer for check-ins and favorite places.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func, or_, and_

from firstmoments.models import Location, FavoritePlace
from firstmoments.constants import PRIVACY_PUBLIC
from firstmoments.shared.geo import bounding_box, longitude_ranges


def within_box(model, latitude: float, longitude: float, radius_meters: float):
    """Filter clause for rows of model inside the bounding box of the radius"""
    min_lat, max_lat, min_lng, max_lng = bounding_box(latitude, longitude, radius_meters)
    return and_(
        model.latitude.between(min_lat, max_lat),
        or_(*[model.longitude.between(low, high) for low, high in longitude_ranges(min_lng, max_lng)])
    )


class LocationRepository:
    """Repository for Location data access"""

    @staticmethod
    def get_by_id(db: Session, location_id: int) -> Optional[Location]:
        return db.query(Location).filter(
            Location.id == location_id,
            Location.is_deleted == False
        ).first()

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: int,
        place_type: Optional[str] = None,
        visit_type: Optional[str] = None,
        city: Optional[str] = None,
        is_favorite: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Location], int]:
        """List the user's check-ins, latest visit first"""
        query = db.query(Location).filter(Location.user_id == user_id, Location.is_deleted == False)
        if place_type:
            query = query.filter(Location.place_type == place_type)
        if visit_type:
            query = query.filter(Location.visit_type == visit_type)
        if city:
            query = query.filter(Location.city.ilike(f"%{city}%"))
        if is_favorite is not None:
            query = query.filter(Location.is_favorite == is_favorite)
        if start_date:
            query = query.filter(Location.visited_at >= start_date)
        if end_date:
            query = query.filter(Location.visited_at <= end_date)

        total = query.count()
        locations = query.order_by(
            Location.visited_at.desc(), Location.id.desc()
        ).offset(skip).limit(limit).all()
        return locations, total

    @staticmethod
    def get_recent_for_user(db: Session, user_id: int, since: datetime) -> List[Location]:
        """Check-ins of the user visited or revisited since the given time"""
        return db.query(Location).filter(
            Location.user_id == user_id,
            Location.is_deleted == False,
            or_(Location.visited_at >= since, Location.last_visit_at >= since)
        ).order_by(Location.last_visit_at.desc()).all()

    @staticmethod
    def get_in_box(
        db: Session,
        latitude: float,
        longitude: float,
        radius_meters: float,
        user_id: int,
        include_others: bool = False
    ) -> List[Location]:
        """Candidate check-ins inside the bounding box of the radius"""
        query = db.query(Location).filter(
            Location.is_deleted == False,
            within_box(Location, latitude, longitude, radius_meters)
        )
        if include_others:
            query = query.filter(or_(Location.user_id == user_id, Location.privacy == PRIVACY_PUBLIC))
        else:
            query = query.filter(Location.user_id == user_id)
        return query.all()

    @staticmethod
    def search(db: Session, user_id: int, text: str, limit: int = 20) -> List[Location]:
        pattern = f"%{text}%"
        return db.query(Location).filter(
            Location.user_id == user_id,
            Location.is_deleted == False,
            or_(
                Location.place_name.ilike(pattern),
                Location.address.ilike(pattern),
                Location.city.ilike(pattern),
                Location.country.ilike(pattern),
                Location.notes.ilike(pattern)
            )
        ).order_by(Location.visit_count.desc(), Location.visited_at.desc()).limit(limit).all()

    @staticmethod
    def get_stats(db: Session, user_id: int) -> dict:
        """Totals, distinct places and per-type breakdown of a user's check-ins"""
        base = db.query(Location).filter(Location.user_id == user_id, Location.is_deleted == False)

        total_locations = base.count()
        total_visits = base.with_entities(func.coalesce(func.sum(Location.visit_count), 0)).scalar()
        cities = base.with_entities(func.count(func.distinct(Location.city))).filter(
            Location.city.isnot(None)
        ).scalar()
        countries = base.with_entities(func.count(func.distinct(Location.country))).filter(
            Location.country.isnot(None)
        ).scalar()
        favorites = base.filter(Location.is_favorite == True).count()

        by_type = {
            place_type: count
            for place_type, count in base.with_entities(
                Location.place_type, func.count(Location.id)
            ).group_by(Location.place_type).all()
        }

        return {
            "total_locations": total_locations,
            "total_visits": int(total_visits or 0),
            "unique_cities": cities,
            "unique_countries": countries,
            "favorite_count": favorites,
            "by_place_type": by_type,
        }

    @staticmethod
    def create(db: Session, location: Location) -> Location:
        db.add(location)
        db.commit()
        db.refresh(location)
        return location

    @staticmethod
    def update(db: Session, location: Location) -> Location:
        db.commit()
        db.refresh(location)
        return location


class FavoritePlaceRepository:
    """Repository for FavoritePlace data access"""

    @staticmethod
    def get_for_user(db: Session, user_id: int) -> List[FavoritePlace]:
        return db.query(FavoritePlace).filter(
            FavoritePlace.user_id == user_id
        ).order_by(FavoritePlace.visit_count.desc(), FavoritePlace.last_visit_at.desc()).all()

    @staticmethod
    def get_in_box(db: Session, user_id: int, latitude: float, longitude: float,
                   radius_meters: float) -> List[FavoritePlace]:
        return db.query(FavoritePlace).filter(
            FavoritePlace.user_id == user_id,
            within_box(FavoritePlace, latitude, longitude, radius_meters)
        ).all()

    @staticmethod
    def add(db: Session, place: FavoritePlace) -> FavoritePlace:
        """Stage a favorite place; the caller commits"""
        db.add(place)
        return place
