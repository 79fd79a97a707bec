from datetime import datetime, timedelta, timezone

from config import settings
from core.geo import listing_within_bounds
from db.models import FilterCriteria, Listing, MapBounds


def _active(bound: float | None) -> bool:
    return bound is not None and bound > 0


def matches_text(listing: Listing, criteria: FilterCriteria) -> bool:
    if not criteria.query:
        return True
    needle = criteria.query.lower()
    haystacks = (listing.title, listing.description, listing.address, listing.city)
    return any(needle in text.lower() for text in haystacks)


def matches_types(listing: Listing, criteria: FilterCriteria) -> bool:
    if not criteria.types:
        return True
    return listing.type in criteria.types


def matches_price_filter(listing: Listing, criteria: FilterCriteria) -> bool:
    if _active(criteria.price_min) and listing.price < criteria.price_min:
        return False
    if _active(criteria.price_max) and listing.price > criteria.price_max:
        return False
    return True


def matches_min_size(listing: Listing, criteria: FilterCriteria) -> bool:
    if not _active(criteria.min_size):
        return True
    return (listing.size or 0) >= criteria.min_size


def matches_min_months(listing: Listing, criteria: FilterCriteria) -> bool:
    if not _active(criteria.min_months):
        return True
    return (listing.months or 0) >= criteria.min_months


def matches_rooms(listing: Listing, criteria: FilterCriteria) -> bool:
    if not _active(criteria.rooms):
        return True
    return listing.rooms == criteria.rooms


def matches_recent(listing: Listing, criteria: FilterCriteria, now: datetime | None = None) -> bool:
    if not criteria.recent_only:
        return True
    now = now or datetime.now(timezone.utc)
    return listing.created_at >= now - timedelta(days=settings.recent_days)


def matches_bounds(listing: Listing, bounds: MapBounds | None) -> bool:
    if bounds is None:
        return True
    return listing_within_bounds(listing, bounds)


def matches_radius(listing: Listing, criteria: FilterCriteria) -> bool:
    if not _active(criteria.nearby_radius):
        return True
    return listing.distance is not None and listing.distance <= criteria.nearby_radius


def apply_filters(
    listing: Listing,
    criteria: FilterCriteria,
    bounds: MapBounds | None = None,
    now: datetime | None = None,
    has_reference: bool = True,
) -> bool:
    # Without a reference point the radius cannot be measured and is ignored.
    return (
        matches_text(listing, criteria)
        and matches_types(listing, criteria)
        and matches_price_filter(listing, criteria)
        and matches_min_size(listing, criteria)
        and matches_min_months(listing, criteria)
        and matches_rooms(listing, criteria)
        and matches_recent(listing, criteria, now)
        and matches_bounds(listing, criteria.map_bounds or bounds)
        and (not has_reference or matches_radius(listing, criteria))
    )


def filter_listings(
    listings: list[Listing],
    criteria: FilterCriteria,
    bounds: MapBounds | None = None,
    now: datetime | None = None,
    has_reference: bool = True,
) -> list[Listing]:
    now = now or datetime.now(timezone.utc)
    return [item for item in listings if apply_filters(item, criteria, bounds, now, has_reference)]
