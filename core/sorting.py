import logging

from db.models import Coordinate, FilterCriteria, Listing, SortKey

log = logging.getLogger(__name__)


def resolve_sort_key(criteria: FilterCriteria) -> SortKey:
    if criteria.sort_by_distance:
        return SortKey.DISTANCE
    return criteria.sort_by or SortKey.DATE_DESC


def _distance_key(listing: Listing) -> tuple[bool, float]:
    return (listing.distance is None, listing.distance or 0.0)


def sort_listings(
    listings: list[Listing],
    criteria: FilterCriteria,
    reference: Coordinate | None = None,
) -> list[Listing]:
    """Return a new, stably sorted list. Ties keep their incoming order."""
    key = resolve_sort_key(criteria)

    if key is SortKey.DISTANCE and reference is None:
        log.debug("Distance sort requested without a reference coordinate, using date order")
        key = SortKey.DATE_DESC

    if key is SortKey.PRICE_ASC:
        return sorted(listings, key=lambda item: item.price)
    if key is SortKey.PRICE_DESC:
        return sorted(listings, key=lambda item: -item.price)
    if key is SortKey.DISTANCE:
        return sorted(listings, key=_distance_key)
    return sorted(listings, key=lambda item: item.created_at.timestamp(), reverse=True)
