"""Geodesic helpers: haversine distance and bounding-box containment."""

import math
from dataclasses import replace
from typing import Iterable

from db.models import Coordinate, Listing, MapBounds

EARTH_RADIUS_KM = 6371.0
# Sorts after any real distance and fails every radius filter.
MISSING_DISTANCE_KM = float(2**53 - 1)


def is_valid_coordinate(latitude: float | None, longitude: float | None) -> bool:
    if latitude is None or longitude is None:
        return False
    if math.isnan(latitude) or math.isnan(longitude):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def distance_km(a: Coordinate | None, b: Coordinate | None) -> float:
    """Great-circle distance in kilometers, rounded to one decimal."""
    if a is None or b is None:
        return MISSING_DISTANCE_KM

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lng = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_KM * c, 1)


def within_bounds(point: Coordinate, bounds: MapBounds) -> bool:
    return (
        bounds.south_west.latitude <= point.latitude <= bounds.north_east.latitude
        and bounds.south_west.longitude <= point.longitude <= bounds.north_east.longitude
    )


def listing_within_bounds(listing: Listing, bounds: MapBounds) -> bool:
    if not listing.has_valid_coordinates:
        return False
    return within_bounds(listing.coordinate, bounds)  # type: ignore[arg-type]


def annotate_distances(listings: Iterable[Listing], reference: Coordinate) -> list[Listing]:
    """Return copies of ``listings`` carrying their distance from ``reference``."""
    annotated = []
    for listing in listings:
        if listing.has_valid_coordinates:
            annotated.append(replace(listing, distance=distance_km(reference, listing.coordinate)))
        else:
            annotated.append(replace(listing, distance=None))
    return annotated
