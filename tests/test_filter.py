import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.filter import (
    filter_listings,
    matches_min_months,
    matches_min_size,
    matches_price_filter,
    matches_radius,
    matches_recent,
    matches_text,
    matches_types,
)
from core.sorting import sort_listings
from db.models import Coordinate, FilterCriteria, Listing, MapBounds

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_listing(listing_id: str, price: float = 500.0, days_old: int = 0, **kwargs) -> Listing:
    values = dict(
        id=listing_id,
        title="Bright room",
        description="Close to the station",
        address="Via Roma 1",
        city="Milano",
        price=price,
        latitude=45.46,
        longitude=9.19,
        type="stanza",
        created_at=NOW - timedelta(days=days_old),
    )
    values.update(kwargs)
    return Listing(**values)


class TestPredicates:
    def test_text_matches_any_field_case_insensitive(self):
        listing = make_listing("1", city="Bologna", description="Vicino UNIVERSITÀ")
        assert matches_text(listing, FilterCriteria(query="bologna"))
        assert matches_text(listing, FilterCriteria(query="università"))
        assert matches_text(listing, FilterCriteria(query="via roma"))
        assert not matches_text(listing, FilterCriteria(query="torino"))
        assert matches_text(listing, FilterCriteria(query=""))

    def test_types(self):
        listing = make_listing("1", type="monolocale")
        assert matches_types(listing, FilterCriteria())
        assert matches_types(listing, FilterCriteria(types={"monolocale", "bilocale"}))
        assert not matches_types(listing, FilterCriteria(types={"stanza"}))

    def test_price_range(self):
        listing = make_listing("1", price=700)
        assert matches_price_filter(listing, FilterCriteria(price_min=500, price_max=900))
        assert not matches_price_filter(listing, FilterCriteria(price_max=600))
        assert not matches_price_filter(listing, FilterCriteria(price_min=800))

    def test_zero_bounds_are_unset(self):
        listing = make_listing("1", price=700)
        assert matches_price_filter(listing, FilterCriteria(price_min=0, price_max=0))

    def test_missing_size_and_months_fail_minimums(self):
        listing = make_listing("1", size=None, months=None)
        assert not matches_min_size(listing, FilterCriteria(min_size=20))
        assert not matches_min_months(listing, FilterCriteria(min_months=3))
        assert matches_min_size(listing, FilterCriteria())
        assert matches_min_months(listing, FilterCriteria(min_months=0))

    def test_missing_size_does_not_fail_price_cap(self):
        listing = make_listing("1", price=400, size=None)
        assert filter_listings([listing], FilterCriteria(price_max=500), now=NOW) == [listing]

    def test_recent_only(self):
        criteria = FilterCriteria(recent_only=True)
        assert matches_recent(make_listing("1", days_old=6), criteria, NOW)
        assert not matches_recent(make_listing("2", days_old=8), criteria, NOW)
        assert matches_recent(make_listing("3", days_old=30), FilterCriteria(), NOW)

    def test_radius_requires_distance(self):
        criteria = FilterCriteria(nearby_radius=10)
        assert matches_radius(make_listing("1", distance=5.0), criteria)
        assert not matches_radius(make_listing("2", distance=12.0), criteria)
        assert not matches_radius(make_listing("3", distance=None), criteria)

    def test_radius_skipped_without_reference(self):
        listings = [make_listing("1", distance=None), make_listing("2", distance=3.0)]
        criteria = FilterCriteria(nearby_radius=10)
        assert filter_listings(listings, criteria, now=NOW, has_reference=False) == listings
        assert filter_listings(listings, criteria, now=NOW) == [listings[1]]

    def test_query_is_matched_as_given(self):
        listing = make_listing("1")
        assert matches_text(listing, FilterCriteria(query=" roma"))
        assert not matches_text(listing, FilterCriteria(query="milano "))


class TestFilterListings:
    def test_price_range_keeps_relative_order(self):
        listings = [
            make_listing("a", price=550, days_old=1),
            make_listing("b", price=850, days_old=2),
            make_listing("c", price=1800, days_old=3),
        ]
        criteria = FilterCriteria(price_min=500, price_max=900)

        result = sort_listings(filter_listings(listings, criteria, now=NOW), criteria)
        assert [item.id for item in result] == ["a", "b"]

    def test_bounds_exclude_invalid_coordinates_only_there(self):
        good = make_listing("good")
        broken = make_listing("broken", latitude=None, longitude=None)
        box = MapBounds(north_east=Coordinate(46, 10), south_west=Coordinate(45, 9))

        assert filter_listings([good, broken], FilterCriteria(), now=NOW) == [good, broken]
        assert filter_listings([good, broken], FilterCriteria(), bounds=box, now=NOW) == [good]

    def test_drawn_zone_wins_over_viewport(self):
        milan = make_listing("milan")
        rome = make_listing("rome", latitude=41.9, longitude=12.5)
        viewport = MapBounds(north_east=Coordinate(46, 10), south_west=Coordinate(45, 9))
        zone = MapBounds(north_east=Coordinate(42, 13), south_west=Coordinate(41, 12))

        result = filter_listings([milan, rome], FilterCriteria(map_bounds=zone), bounds=viewport, now=NOW)
        assert result == [rome]

    def test_idempotent_and_non_mutating(self):
        listings = [make_listing(str(i), price=300 + i * 100) for i in range(10)]
        before = list(listings)
        criteria = FilterCriteria(price_min=500, query="bright")

        first = filter_listings(listings, criteria, now=NOW)
        second = filter_listings(listings, criteria, now=NOW)
        assert first == second
        assert listings == before

    def test_adding_a_constraint_never_grows_result(self):
        listings = [
            make_listing(str(i), price=300 + i * 100, size=20 + i * 5, months=i, days_old=i, type="stanza" if i % 2 else "studio")
            for i in range(12)
        ]
        base = FilterCriteria(price_min=400)
        extras = [
            dict(price_max=1000),
            dict(types={"studio"}),
            dict(min_size=40),
            dict(min_months=4),
            dict(recent_only=True),
            dict(query="bright"),
            dict(map_bounds=MapBounds(north_east=Coordinate(46, 10), south_west=Coordinate(45, 9))),
        ]
        baseline = len(filter_listings(listings, base, now=NOW))
        for extra in extras:
            narrower = FilterCriteria(price_min=400, **extra)
            assert len(filter_listings(listings, narrower, now=NOW)) <= baseline
