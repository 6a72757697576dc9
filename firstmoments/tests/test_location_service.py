"""
Tests for LocationService.

Tests cover:
1. Check-ins within 100 m and one hour merge into one location
2. Check-ins outside the radius or window create new locations
3. Favorite places from named check-ins
4. Nearby search ordering and stats
"""
import pytest
from datetime import datetime, timedelta

from firstmoments.models import Location, FavoritePlace
from firstmoments.schemas import LocationCreate, LocationUpdate
from firstmoments.services.location_service import LocationService
from firstmoments.exceptions import PermissionDeniedException, NotFoundException

# Roughly 0.0001 degree of latitude is 11 m
BASE_LAT = 55.7558
BASE_LNG = 37.6173


def _checkin(latitude=BASE_LAT, longitude=BASE_LNG, **fields):
    values = {"latitude": latitude, "longitude": longitude, "address": "Red Square, Moscow"}
    values.update(fields)
    return LocationCreate(**values)


class TestCheckInMerge:
    """Short-window deduplication"""

    def test_nearby_recent_checkin_merges(self, db_session, user):
        service = LocationService(db_session)
        now = datetime.now()

        first, created = service.check_in(user, _checkin(), now=now)
        assert created is True

        second, created = service.check_in(user, _checkin(BASE_LAT + 0.0005), now=now + timedelta(minutes=30))

        assert created is False
        assert second.id == first.id
        assert second.visit_count == 2
        assert db_session.query(Location).count() == 1

    def test_far_checkin_creates_new(self, db_session, user):
        service = LocationService(db_session)
        now = datetime.now()
        service.check_in(user, _checkin(), now=now)

        # ~220 m north
        _, created = service.check_in(user, _checkin(BASE_LAT + 0.002), now=now + timedelta(minutes=5))

        assert created is True
        assert db_session.query(Location).count() == 2

    def test_old_checkin_is_not_merged(self, db_session, user):
        service = LocationService(db_session)
        earlier = datetime.now() - timedelta(hours=2)
        service.check_in(user, _checkin(visited_at=earlier), now=earlier)

        _, created = service.check_in(user, _checkin())

        assert created is True

    def test_other_users_checkins_never_merge(self, db_session, user, other_user):
        service = LocationService(db_session)
        service.check_in(user, _checkin())

        _, created = service.check_in(other_user, _checkin())

        assert created is True


class TestFavorites:

    def test_named_checkin_creates_favorite(self, db_session, user):
        service = LocationService(db_session)
        service.check_in(user, _checkin(place_name="Coffee Bean", place_type="cafe"))

        favorites = service.get_favorites(user)

        assert len(favorites) == 1
        assert favorites[0].name == "Coffee Bean"
        assert favorites[0].visit_count == 1

    def test_repeat_visit_increments_favorite(self, db_session, user):
        service = LocationService(db_session)
        now = datetime.now()
        service.check_in(user, _checkin(place_name="Coffee Bean", place_type="cafe"), now=now - timedelta(hours=3))
        service.check_in(user, _checkin(BASE_LAT + 0.0001, place_name="Coffee Bean", place_type="cafe"), now=now)

        favorites = service.get_favorites(user)

        assert len(favorites) == 1
        assert favorites[0].visit_count == 2

    def test_untyped_checkin_skips_favorites(self, db_session, user):
        LocationService(db_session).check_in(user, _checkin(place_name="Somewhere"))
        assert db_session.query(FavoritePlace).count() == 0


class TestQueries:

    def test_nearby_sorted_by_distance(self, db_session, user):
        service = LocationService(db_session)
        earlier = datetime.now() - timedelta(days=1)
        far, _ = service.check_in(user, _checkin(BASE_LAT + 0.004, visited_at=earlier), now=earlier)
        near, _ = service.check_in(user, _checkin(BASE_LAT + 0.002))

        results = service.get_nearby(user, BASE_LAT, BASE_LNG, 1000)

        assert [location.id for location in results] == [near.id, far.id]
        assert results[0].distance < results[1].distance

    def test_nearby_across_antimeridian(self, db_session, user):
        service = LocationService(db_session)
        location, _ = service.check_in(user, _checkin(-16.5, -179.9995, address="Taveuni, Fiji"))

        results = service.get_nearby(user, -16.5, 179.9995, 1000)

        assert [result.id for result in results] == [location.id]
        assert results[0].distance < 200

    def test_nearby_excludes_out_of_range(self, db_session, user):
        service = LocationService(db_session)
        service.check_in(user, _checkin(BASE_LAT + 0.05))

        assert service.get_nearby(user, BASE_LAT, BASE_LNG, 1000) == []

    def test_stats(self, db_session, user):
        service = LocationService(db_session)
        earlier = datetime.now() - timedelta(days=1)
        service.check_in(user, _checkin(city="Moscow", country="Russia", visited_at=earlier), now=earlier)
        service.check_in(user, _checkin(BASE_LAT + 1, city="Tver", country="Russia", place_type="park"))

        stats = service.get_stats(user)

        assert stats["total_locations"] == 2
        assert stats["total_visits"] == 2
        assert stats["unique_cities"] == 2
        assert stats["unique_countries"] == 1
        assert stats["by_place_type"] == {"other": 1, "park": 1}

    def test_owner_only_access(self, db_session, user, other_user):
        service = LocationService(db_session)
        location, _ = service.check_in(user, _checkin())

        with pytest.raises(PermissionDeniedException):
            service.get_location(other_user, location.id)
        with pytest.raises(PermissionDeniedException):
            service.update_location(other_user, location.id, LocationUpdate(notes="mine"))

    def test_soft_delete(self, db_session, user):
        service = LocationService(db_session)
        location, _ = service.check_in(user, _checkin())

        service.delete_location(user, location.id)

        with pytest.raises(NotFoundException):
            service.get_location(user, location.id)
