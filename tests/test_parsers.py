import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from core.errors import InvalidCoordinateWarning, MalformedRecordError
from core.fallback import fallback_listings
from core.parser import (
    DEFAULT_TITLE,
    normalize_record,
    normalize_records,
    parse_number,
    parse_timestamp,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestNumbers:
    def test_parse_number(self):
        assert parse_number(850) == 850.0
        assert parse_number("850") == 850.0
        assert parse_number("1.200,50") == 1200.5
        assert parse_number("650 €") == 650.0
        assert parse_number("abc") is None
        assert parse_number(None) is None
        assert parse_number(True) is None

    def test_parse_timestamp_variants(self):
        expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp({"seconds": 1704067200, "nanoseconds": 0}) == expected
        assert parse_timestamp({"_seconds": 1704067200}) == expected
        assert parse_timestamp(1704067200000) == expected
        assert parse_timestamp(1704067200) == expected
        assert parse_timestamp("2024-01-01T00:00:00Z") == expected
        assert parse_timestamp(datetime(2024, 1, 1)) == expected
        assert parse_timestamp("not a date") is None


class TestNormalize:
    def test_italian_field_names(self):
        listing = normalize_record(
            {
                "id": "abc",
                "titolo": "Stanza singola",
                "descrizione": "Luminosa",
                "prezzo": "450",
                "indirizzo": "Via Po 3",
                "città": "Torino",
                "latitudine": "45.07",
                "longitudine": 7.68,
                "immagini": ["https://img/1.jpg"],
                "stanze": 1,
                "m2": "18",
                "tipo": "stanza",
                "mesi": 6,
                "ownerUid": "u1",
            },
            NOW,
        )

        assert listing.id == "abc"
        assert listing.title == "Stanza singola"
        assert listing.price == 450.0
        assert listing.city == "Torino"
        assert listing.latitude == 45.07
        assert listing.images == ("https://img/1.jpg",)
        assert listing.size == 18.0
        assert listing.months == 6
        assert listing.owner_id == "u1"
        assert listing.available is True

    def test_defaults_for_missing_fields(self):
        listing = normalize_record({"id": 7, "latitude": 45.0, "longitude": 9.0}, NOW)
        assert listing.id == "7"
        assert listing.title == DEFAULT_TITLE
        assert listing.price == 0.0
        assert listing.images == ()
        assert listing.size is None
        assert listing.created_at == NOW
        assert listing.updated_at == NOW

    def test_geo_point_field(self):
        listing = normalize_record({"id": "g", "location": {"latitude": 41.9, "longitude": 12.5}}, NOW)
        assert (listing.latitude, listing.longitude) == (41.9, 12.5)

    def test_unavailable_only_when_explicitly_false(self):
        assert normalize_record({"id": "a", "lat": 1, "lng": 1, "available": False}, NOW).available is False
        assert normalize_record({"id": "b", "lat": 1, "lng": 1, "available": None}, NOW).available is True

    def test_missing_id_is_malformed(self):
        with pytest.raises(MalformedRecordError):
            normalize_record({"title": "No id"}, NOW)
        with pytest.raises(MalformedRecordError):
            normalize_record(["not", "a", "dict"], NOW)

    def test_invalid_coordinates_are_kept_with_warning(self):
        with pytest.warns(InvalidCoordinateWarning):
            listing = normalize_record({"id": "x", "latitude": 123.0, "longitude": 9.0}, NOW)
        assert listing.id == "x"
        assert listing.has_valid_coordinates is False

    def test_normalize_records_drops_malformed_and_duplicates(self):
        records = [
            {"id": "1", "lat": 45, "lng": 9},
            {"title": "no id"},
            {"id": "1", "lat": 46, "lng": 9},
            {"id": "2", "lat": 44, "lng": 9},
        ]
        listings = normalize_records(records, NOW)
        assert [item.id for item in listings] == ["1", "2"]
        assert listings[0].latitude == 45


class TestFallback:
    def test_fallback_seed(self):
        listings = fallback_listings(NOW)
        assert len(listings) == 5
        assert len({item.id for item in listings}) == 5
        assert all(item.has_valid_coordinates for item in listings)
        assert listings[0].created_at == NOW


class TestTimestampOutOfRange:
    def test_unparseable_epochs_are_none(self):
        assert parse_timestamp(1e20) is None
        assert parse_timestamp(float("nan")) is None
        assert parse_timestamp({"seconds": "abc"}) is None
        assert parse_timestamp({"seconds": 1e20}) is None

    def test_record_with_huge_epoch_keeps_listing(self):
        listing = normalize_record({"id": "c", "lat": 45, "lng": 9, "createdAt": 1e20}, NOW)
        assert listing.created_at == NOW

    def test_bad_timestamp_does_not_drop_neighbours(self):
        records = [
            {"id": "a", "lat": 45, "lng": 9},
            {"id": "b", "lat": 44, "lng": 9, "createdAt": {"seconds": "abc"}},
            {"id": "c", "lat": 43, "lng": 9, "createdAt": 1e20},
        ]
        assert [item.id for item in normalize_records(records, NOW)] == ["a", "b", "c"]

    def test_record_failing_normalization_is_dropped(self):
        class Unprintable:
            def __str__(self):
                raise RuntimeError("no text")

        records = [{"id": "a", "lat": 45, "lng": 9}, {"id": "b", "lat": 45, "lng": 9, "title": Unprintable()}]
        assert [item.id for item in normalize_records(records, NOW)] == ["a"]
