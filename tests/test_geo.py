import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from core.geo import (
    MISSING_DISTANCE_KM,
    annotate_distances,
    distance_km,
    is_valid_coordinate,
    within_bounds,
)
from db.models import Coordinate, Listing, MapBounds

ROME = Coordinate(41.9028, 12.4964)
MILAN = Coordinate(45.4642, 9.19)

BOX = MapBounds(north_east=Coordinate(46.0, 12.0), south_west=Coordinate(44.0, 8.0))


def make_listing(listing_id: str, lat: float | None, lng: float | None) -> Listing:
    return Listing(
        id=listing_id,
        title="Test",
        description="",
        address="",
        city="",
        price=500.0,
        latitude=lat,
        longitude=lng,
    )


class TestDistance:
    def test_rome_to_milan(self):
        assert distance_km(ROME, MILAN) == pytest.approx(477, abs=2)

    def test_symmetry(self):
        points = [ROME, MILAN, Coordinate(-33.86, 151.2), Coordinate(0.0, -179.9), Coordinate(89.9, 0.0)]
        for a in points:
            for b in points:
                assert distance_km(a, b) == distance_km(b, a)

    def test_same_point_is_zero(self):
        assert distance_km(ROME, ROME) == 0.0

    def test_rounded_to_one_decimal(self):
        value = distance_km(ROME, Coordinate(41.95, 12.55))
        assert round(value, 1) == value

    def test_missing_coordinate_returns_sentinel(self):
        assert distance_km(None, MILAN) == MISSING_DISTANCE_KM
        assert distance_km(ROME, None) == MISSING_DISTANCE_KM
        assert distance_km(ROME, MILAN) < MISSING_DISTANCE_KM


class TestBounds:
    def test_inside_and_edges_are_inclusive(self):
        assert within_bounds(Coordinate(45.0, 10.0), BOX) is True
        assert within_bounds(Coordinate(46.0, 12.0), BOX) is True
        assert within_bounds(Coordinate(44.0, 8.0), BOX) is True

    def test_perturbing_past_any_edge_flips_result(self):
        inside = Coordinate(45.0, 10.0)
        assert within_bounds(inside, BOX)

        outside = [
            Coordinate(46.0001, inside.longitude),
            Coordinate(43.9999, inside.longitude),
            Coordinate(inside.latitude, 12.0001),
            Coordinate(inside.latitude, 7.9999),
        ]
        for point in outside:
            assert within_bounds(point, BOX) is False

    def test_valid_coordinate_ranges(self):
        assert is_valid_coordinate(90, 180)
        assert is_valid_coordinate(-90, -180)
        assert not is_valid_coordinate(90.1, 0)
        assert not is_valid_coordinate(0, -180.5)
        assert not is_valid_coordinate(None, 10)
        assert not is_valid_coordinate(float("nan"), 10)


class TestAnnotate:
    def test_annotate_returns_copies(self):
        base = [make_listing("a", MILAN.latitude, MILAN.longitude), make_listing("b", 123.0, 9.0)]
        annotated = annotate_distances(base, ROME)

        assert annotated[0].distance == pytest.approx(477, abs=2)
        assert annotated[1].distance is None
        assert base[0].distance is None
        assert annotated[0] is not base[0]
