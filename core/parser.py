"""Normalization of raw store records into ``Listing`` entities.

Records come from a loosely typed document collection whose field names were
written by several clients over time, some in Italian and some in English, so
every attribute is looked up under each known alias in turn.
"""

import logging
import math
import warnings
from datetime import datetime, timezone
from typing import Any, Iterable

from core.errors import InvalidCoordinateWarning, MalformedRecordError
from core.geo import is_valid_coordinate
from db.models import Listing

log = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled listing"
DEFAULT_DESCRIPTION = "No description available"
DEFAULT_ADDRESS = "Address not available"
DEFAULT_CITY = "City not specified"
DEFAULT_TYPE = "unspecified"

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title", "titolo"),
    "description": ("description", "descrizione"),
    "price": ("price", "prezzo"),
    "address": ("address", "indirizzo"),
    "city": ("city", "città", "citta"),
    "latitude": ("latitude", "latitudine", "lat"),
    "longitude": ("longitude", "longitudine", "lng"),
    "owner_id": ("ownerUid", "ownerId", "userId"),
    "rooms": ("rooms", "stanze"),
    "bathrooms": ("bathrooms", "bagni"),
    "size": ("size", "dimensione", "m2"),
    "type": ("type", "tipo"),
    "months": ("months", "mesi"),
    "created_at": ("createdAt", "timestamp"),
    "updated_at": ("updatedAt", "timestamp"),
}

GEO_POINT_FIELDS = ("coordinates", "location", "geo")


def _pick(record: dict[str, Any], name: str) -> Any:
    for key in FIELD_ALIASES[name]:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_number(value: Any) -> float | None:
    """Parse ints, floats and numeric strings such as ``"1.200,50 €"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).replace("€", "").replace(" ", "").strip()
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _non_negative(value: Any) -> float | None:
    number = parse_number(value)
    if number is None or number < 0:
        return None
    return number


def _non_negative_int(value: Any) -> int | None:
    number = _non_negative(value)
    return int(number) if number is not None else None


def _from_epoch(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict):
        seconds = parse_number(value.get("seconds", value.get("_seconds")))
        if seconds is None:
            return None
        nanos = parse_number(value.get("nanoseconds", value.get("_nanoseconds"))) or 0
        return _from_epoch(seconds + nanos / 1e9)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Values past 1e11 can only be epoch milliseconds.
        return _from_epoch(value / 1000 if value > 1e11 else value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _parse_images(record: dict[str, Any]) -> tuple[str, ...]:
    images = record.get("images")
    if isinstance(images, list):
        return tuple(str(url) for url in images if url)
    images = record.get("immagini")
    if isinstance(images, list):
        return tuple(str(url) for url in images if url)
    single = record.get("immagine") or record.get("imageUrl")
    return (str(single),) if single else ()


def _parse_coordinates(record: dict[str, Any]) -> tuple[float | None, float | None]:
    latitude = parse_number(_pick(record, "latitude"))
    longitude = parse_number(_pick(record, "longitude"))
    if latitude is None or longitude is None:
        for key in GEO_POINT_FIELDS:
            point = record.get(key)
            if isinstance(point, dict):
                latitude = parse_number(point.get("latitude", point.get("lat")))
                longitude = parse_number(point.get("longitude", point.get("lng")))
                break
    return latitude, longitude


def _parse_available(value: Any) -> bool:
    # Only an explicit false marks a listing unavailable.
    return value is not False


def normalize_record(record: Any, now: datetime | None = None) -> Listing:
    if not isinstance(record, dict):
        raise MalformedRecordError(f"Expected a mapping, got {type(record).__name__}")

    listing_id = record.get("id")
    if listing_id in (None, ""):
        raise MalformedRecordError("Record has no id")

    now = now or datetime.now(timezone.utc)
    latitude, longitude = _parse_coordinates(record)
    if not is_valid_coordinate(latitude, longitude):
        warnings.warn(
            f"Listing {listing_id} has invalid coordinates ({latitude}, {longitude}), "
            "it will not appear on the map",
            InvalidCoordinateWarning,
            stacklevel=2,
        )

    created_at = parse_timestamp(_pick(record, "created_at")) or now
    updated_at = parse_timestamp(_pick(record, "updated_at")) or created_at

    return Listing(
        id=str(listing_id),
        title=str(_pick(record, "title") or DEFAULT_TITLE).strip(),
        description=str(_pick(record, "description") or DEFAULT_DESCRIPTION),
        address=str(_pick(record, "address") or DEFAULT_ADDRESS),
        city=str(_pick(record, "city") or DEFAULT_CITY),
        price=_non_negative(_pick(record, "price")) or 0.0,
        latitude=latitude,
        longitude=longitude,
        images=_parse_images(record),
        owner_id=str(_pick(record, "owner_id") or ""),
        type=str(_pick(record, "type") or DEFAULT_TYPE),
        size=_non_negative(_pick(record, "size")),
        rooms=_non_negative_int(_pick(record, "rooms")),
        bathrooms=_non_negative_int(_pick(record, "bathrooms")),
        months=_non_negative_int(_pick(record, "months")),
        created_at=created_at,
        updated_at=updated_at,
        available=_parse_available(record.get("available")),
    )


def normalize_records(records: Iterable[Any], now: datetime | None = None) -> list[Listing]:
    """Normalize raw records, dropping malformed ones and duplicate ids."""
    now = now or datetime.now(timezone.utc)
    listings: list[Listing] = []
    seen: set[str] = set()

    for record in records:
        try:
            listing = normalize_record(record, now)
        except MalformedRecordError as e:
            log.debug(f"Dropping malformed record: {e}")
            continue
        except Exception as e:
            log.warning(f"Dropping record that failed to normalize: {e!r}")
            continue
        if listing.id in seen:
            log.debug(f"Dropping duplicate record {listing.id}")
            continue
        seen.add(listing.id)
        listings.append(listing)

    return listings
