import logging
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence

from config import settings
from core.fallback import fallback_listings
from core.filter import filter_listings
from core.geo import annotate_distances
from core.pagination import Paginator
from core.parser import normalize_records
from core.retry import FetchResult, RetryGuard
from core.sorting import sort_listings
from db.models import Coordinate, FilterCriteria, Listing, ListingsSnapshot, MapBounds
from db.store import ListingStore

log = logging.getLogger(__name__)


class LocationService(Protocol):
    def get_current_coordinate(self) -> Coordinate | None:
        ...


class StaticLocation:
    def __init__(self, coordinate: Coordinate | None = None):
        self.coordinate = coordinate

    def get_current_coordinate(self) -> Coordinate | None:
        return self.coordinate


class ListingRepository:
    """Owns the base listing set and every view derived from it.

    The base set is replaced wholesale on each fetch. Filtering, sorting and
    pagination never touch it, they produce new collections.
    """

    def __init__(
        self,
        store: ListingStore,
        location: LocationService | None = None,
        fallback: Callable[[], Sequence[Listing]] = fallback_listings,
        page_size: int | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
        retry_delay: float | None = None,
    ):
        self.store = store
        self.location = location
        self._guard: RetryGuard[Listing] = RetryGuard(
            fetch=self._fetch_normalized,
            fallback=fallback,
            max_attempts=max_attempts,
            timeout=timeout,
            retry_delay=retry_delay,
        )
        self._paginator = Paginator(page_size=page_size or settings.page_size)
        self._base: tuple[Listing, ...] = ()
        self._criteria = FilterCriteria()
        self._bounds: MapBounds | None = None
        self._reference: Coordinate | None = None
        self.loading = False
        self.loading_more = False
        self.error: str | None = None
        self.from_fallback = False

    @property
    def listings(self) -> list[Listing]:
        return list(self._paginator.visible)

    @property
    def results(self) -> list[Listing]:
        return list(self._paginator.items)

    @property
    def base_listings(self) -> tuple[Listing, ...]:
        return self._base

    @property
    def has_more(self) -> bool:
        return self._paginator.has_more

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def bounds(self) -> MapBounds | None:
        return self._bounds

    @property
    def fetching(self) -> bool:
        return self._guard.in_flight

    def snapshot(self) -> ListingsSnapshot:
        return ListingsSnapshot(
            listings=self._paginator.visible,
            loading=self.loading,
            loading_more=self.loading_more,
            has_more=self.has_more,
            error=self.error,
            total=self._paginator.total,
            from_fallback=self.from_fallback,
        )

    async def _fetch_normalized(self) -> list[Listing]:
        records = await self.store.fetch_all()
        log.debug(f"Normalizing {len(records)} raw records")
        return normalize_records(records)

    async def fetch_all(self) -> FetchResult[Listing] | None:
        self.loading = True
        try:
            result = await self._guard.run()
        finally:
            self.loading = self._guard.in_flight

        if result is None:
            return None
        if not self._guard.is_current(result.generation):
            log.info(f"Dropping stale fetch result of generation {result.generation}")
            return None

        self._base = tuple(result.items)
        self.error = result.error
        self.from_fallback = result.from_fallback
        log.info(
            f"Base set replaced with {len(self._base)} listings"
            f"{' (fallback)' if result.from_fallback else ''}"
        )
        self._reapply()
        return result

    async def refetch(self) -> None:
        await self.fetch_all()

    def apply_criteria(
        self,
        criteria: FilterCriteria | None = None,
        bounds: MapBounds | None = None,
        reference: Coordinate | None = None,
        now: datetime | None = None,
    ) -> list[Listing]:
        self._criteria = criteria or FilterCriteria()
        self._bounds = bounds
        self._reference = reference
        return self._reapply(now)

    def set_bounds(self, bounds: MapBounds | None) -> list[Listing]:
        self._bounds = bounds
        return self._reapply()

    def _reference_coordinate(self) -> Coordinate | None:
        if self._reference is not None:
            return self._reference
        if self.location is not None:
            return self.location.get_current_coordinate()
        return None

    def _reapply(self, now: datetime | None = None) -> list[Listing]:
        now = now or datetime.now(timezone.utc)
        reference = self._reference_coordinate()

        listings = list(self._base)
        if reference is not None:
            listings = annotate_distances(listings, reference)

        filtered = filter_listings(
            listings, self._criteria, self._bounds, now, has_reference=reference is not None
        )
        ordered = sort_listings(filtered, self._criteria, reference)
        self._paginator.reset(ordered)
        log.debug(f"{len(ordered)}/{len(self._base)} listings match the current criteria")
        return self.listings

    def fetch_more(self) -> list[Listing]:
        if not self.has_more or self.loading_more:
            return []
        self.loading_more = True
        try:
            return self._paginator.load_more()
        finally:
            self.loading_more = False

    async def close(self) -> None:
        self._guard.invalidate()
        await self.store.close()
