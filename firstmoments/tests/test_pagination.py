"""
Tests for pagination and geo helpers.
"""
import pytest

from firstmoments.shared.pagination import build_pagination, normalize_page, get_offset
from firstmoments.shared.geo import haversine_distance, bounding_box, longitude_ranges


class TestBuildPagination:
    """Tests for the pagination block"""

    def test_total_pages_rounds_up(self):
        """45 items at 20 per page is 3 pages"""
        pagination = build_pagination(page=1, limit=20, total=45)
        assert pagination["total_pages"] == 3
        assert pagination["has_next"] is True
        assert pagination["has_prev"] is False

    def test_last_page(self):
        pagination = build_pagination(page=3, limit=20, total=45)
        assert pagination["has_next"] is False
        assert pagination["has_prev"] is True

    def test_exact_multiple(self):
        assert build_pagination(page=2, limit=10, total=20)["total_pages"] == 2

    def test_empty_result(self):
        """No items means zero pages and no navigation"""
        pagination = build_pagination(page=1, limit=20, total=0)
        assert pagination["total_pages"] == 0
        assert pagination["has_next"] is False
        assert pagination["has_prev"] is False


class TestNormalizePage:

    def test_clamps_values(self):
        assert normalize_page(0, 500) == (1, 100)
        assert normalize_page(-3, 0) == (1, 20)

    def test_offset(self):
        assert get_offset(1, 20) == 0
        assert get_offset(3, 20) == 40


class TestHaversine:

    def test_same_point_is_zero(self):
        assert haversine_distance(55.75, 37.61, 55.75, 37.61) == pytest.approx(0.0)

    def test_one_degree_of_latitude(self):
        """One degree of latitude is about 111 km"""
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)

    def test_distance_across_antimeridian(self):
        assert haversine_distance(0, 179.9995, 0, -179.9995) == pytest.approx(111.2, rel=1e-2)


class TestLongitudeRanges:

    def test_plain_range_unchanged(self):
        assert longitude_ranges(10.0, 20.0) == [(10.0, 20.0)]

    def test_wraps_past_east_edge(self):
        assert longitude_ranges(179.0, 181.0) == [(179.0, 180.0), (-180.0, pytest.approx(-179.0))]

    def test_wraps_past_west_edge(self):
        assert longitude_ranges(-181.0, -179.0) == [(pytest.approx(179.0), 180.0), (-180.0, -179.0)]

    def test_box_near_antimeridian_covers_both_sides(self):
        _, _, min_lng, max_lng = bounding_box(0, 179.999, 1000)
        ranges = longitude_ranges(min_lng, max_lng)

        assert len(ranges) == 2
        assert any(low <= -179.999 <= high for low, high in ranges)
