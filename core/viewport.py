"""Map viewport synchronization.

``ViewportController`` is an explicit state machine::

    IDLE -> PENDING_DEBOUNCE -> FETCHING -> IDLE | FALLBACK

Bounds events inside the debounce window collapse into one refresh cycle that
uses the last bounds received. Events arriving while a cycle is running never
interrupt it; they are replayed once it settles.
"""

import asyncio
import logging
import math
from collections import deque
from typing import Any, Callable, Iterable, Protocol

from config import settings
from core.geo import within_bounds
from core.repository import ListingRepository
from db.models import Coordinate, Listing, MapBounds, Region, ViewportEvent, ViewportState

log = logging.getLogger(__name__)

MARKER_PADDING = 0.1
REGION_SCALE = 1.1
MIN_REGION_DELTA = 0.01

MAX_CLUSTER_ZOOM = 20
CLUSTER_ZOOM_SCALE = 16
CLUSTER_ZOOM_BASE = 380

_TRANSITIONS: dict[tuple[ViewportState, ViewportEvent], ViewportState] = {
    (ViewportState.IDLE, ViewportEvent.BOUNDS_CHANGED): ViewportState.PENDING_DEBOUNCE,
    (ViewportState.FALLBACK, ViewportEvent.BOUNDS_CHANGED): ViewportState.PENDING_DEBOUNCE,
    (ViewportState.PENDING_DEBOUNCE, ViewportEvent.BOUNDS_CHANGED): ViewportState.PENDING_DEBOUNCE,
    (ViewportState.PENDING_DEBOUNCE, ViewportEvent.DEBOUNCE_ELAPSED): ViewportState.FETCHING,
    (ViewportState.FETCHING, ViewportEvent.BOUNDS_CHANGED): ViewportState.FETCHING,
    (ViewportState.FETCHING, ViewportEvent.FETCH_SUCCEEDED): ViewportState.IDLE,
    (ViewportState.FETCHING, ViewportEvent.FETCH_FELL_BACK): ViewportState.FALLBACK,
}


class MapHost(Protocol):
    async def get_map_boundaries(self) -> MapBounds | dict[str, Any]:
        ...

    def animate_to_region(self, region: Region) -> None:
        ...


class DebounceTimer:
    """Cancellable one-shot timer on the running event loop."""

    def __init__(self, delay: float):
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        """(Re)start the timer. A pending callback is dropped."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()


def _as_bounds(value: MapBounds | dict[str, Any]) -> MapBounds:
    """Accept bounds as a model or as the map's ``{northEast, southWest}`` payload."""
    return value if isinstance(value, MapBounds) else MapBounds.from_dict(value)


def _mappable(listings: Iterable[Listing]) -> list[Listing]:
    return [item for item in listings if item.has_valid_coordinates]


def markers_bounds(listings: Iterable[Listing], padding: float = MARKER_PADDING) -> MapBounds | None:
    """Smallest box around every mappable listing, widened by ``padding`` per axis."""
    points = _mappable(listings)
    if not points:
        return None

    lats = [item.latitude for item in points]
    lngs = [item.longitude for item in points]
    min_lat, max_lat = min(lats), max(lats)
    min_lng, max_lng = min(lngs), max(lngs)
    lat_pad = (max_lat - min_lat) * padding
    lng_pad = (max_lng - min_lng) * padding

    return MapBounds(
        north_east=Coordinate(max_lat + lat_pad, max_lng + lng_pad),
        south_west=Coordinate(min_lat - lat_pad, min_lng - lng_pad),
    )


def region_for_markers(listings: Iterable[Listing]) -> Region | None:
    """Region centered on the listings, deltas at 1.1x their span."""
    bounds = markers_bounds(listings, padding=0.0)
    if bounds is None:
        return None

    center = bounds.center
    lat_span = bounds.north_east.latitude - bounds.south_west.latitude
    lng_span = bounds.north_east.longitude - bounds.south_west.longitude
    return Region(
        latitude=center.latitude,
        longitude=center.longitude,
        latitude_delta=max(lat_span * REGION_SCALE, MIN_REGION_DELTA),
        longitude_delta=max(lng_span * REGION_SCALE, MIN_REGION_DELTA),
    )


def are_all_visible(listings: Iterable[Listing], current_bounds: MapBounds) -> bool:
    return all(within_bounds(item.coordinate, current_bounds) for item in _mappable(listings))  # type: ignore[arg-type]


def cluster_zoom_for(point_count: int) -> int:
    """Divisor applied to the region deltas when a cluster is tapped.

    Grows with the number of points, so denser clusters zoom in further,
    and never exceeds ``MAX_CLUSTER_ZOOM``.
    """
    if point_count <= 1:
        return 1
    level = 1 + math.floor(CLUSTER_ZOOM_SCALE * math.log(point_count) / math.log(CLUSTER_ZOOM_BASE))
    return min(MAX_CLUSTER_ZOOM, level)


def cluster_press_region(coordinate: Coordinate, point_count: int, current: Region) -> Region:
    divisor = cluster_zoom_for(point_count)
    return Region(
        latitude=coordinate.latitude,
        longitude=coordinate.longitude,
        latitude_delta=current.latitude_delta / divisor,
        longitude_delta=current.longitude_delta / divisor,
    )


class ViewportController:
    def __init__(
        self,
        repository: ListingRepository,
        host: MapHost | None = None,
        debounce_seconds: float | None = None,
        clustering_enabled: bool | None = None,
        cluster_threshold: int | None = None,
        refetch_on_viewport: bool | None = None,
    ):
        self.repository = repository
        self.host = host
        self.timer = DebounceTimer(
            debounce_seconds if debounce_seconds is not None else settings.debounce_seconds
        )
        self.clustering_enabled = (
            clustering_enabled if clustering_enabled is not None else settings.clustering_enabled
        )
        self.cluster_threshold = (
            cluster_threshold if cluster_threshold is not None else settings.cluster_threshold
        )
        self.refetch_on_viewport = (
            refetch_on_viewport if refetch_on_viewport is not None else settings.refetch_on_viewport
        )
        self.state = ViewportState.IDLE
        self.cycles = 0
        self._events: deque[ViewportEvent] = deque()
        self._dispatching = False
        self._latest_bounds: MapBounds | None = None
        self._replay = False
        self._cycle: asyncio.Task | None = None

    @property
    def latest_bounds(self) -> MapBounds | None:
        return self._latest_bounds

    # === Events ===

    def on_bounds_changed(self, bounds: MapBounds | dict[str, Any]) -> None:
        self._latest_bounds = _as_bounds(bounds)
        self._dispatch(ViewportEvent.BOUNDS_CHANGED)

    def on_region_changed(self, region: Region) -> None:
        self.on_bounds_changed(MapBounds.from_region(region))

    def _dispatch(self, event: ViewportEvent) -> None:
        self._events.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._events:
                self._transition(self._events.popleft())
        finally:
            self._dispatching = False

    def _transition(self, event: ViewportEvent) -> None:
        target = _TRANSITIONS.get((self.state, event))
        if target is None:
            log.debug(f"Ignoring {event.value} in state {self.state.value}")
            return

        source, self.state = self.state, target
        log.debug(f"Viewport {source.value} --{event.value}--> {target.value}")

        if event is ViewportEvent.BOUNDS_CHANGED:
            if target is ViewportState.FETCHING:
                self._replay = True
            else:
                self.timer.schedule(self._debounce_elapsed)
        elif event is ViewportEvent.DEBOUNCE_ELAPSED:
            self.cycles += 1
            self._cycle = asyncio.get_running_loop().create_task(self._run_cycle(self._latest_bounds))
        elif self._replay:
            self._replay = False
            self._events.append(ViewportEvent.BOUNDS_CHANGED)

    def _debounce_elapsed(self) -> None:
        self._dispatch(ViewportEvent.DEBOUNCE_ELAPSED)

    async def _run_cycle(self, bounds: MapBounds | None) -> None:
        try:
            if self.refetch_on_viewport or not self.repository.base_listings:
                await self.repository.refetch()
            self.repository.set_bounds(bounds)
        except Exception as e:
            log.error(f"Viewport refresh failed: {e}", exc_info=True)
        finally:
            if self.repository.from_fallback:
                self._dispatch(ViewportEvent.FETCH_FELL_BACK)
            else:
                self._dispatch(ViewportEvent.FETCH_SUCCEEDED)

    async def wait_idle(self) -> None:
        """Wait until no debounce is pending and no cycle is running."""
        while self.timer.pending or (self._cycle and not self._cycle.done()):
            if self._cycle and not self._cycle.done():
                await self._cycle
            else:
                await asyncio.sleep(self.timer.delay / 2 or 0.001)

    def cancel(self) -> None:
        self.timer.cancel()
        if self.state is ViewportState.PENDING_DEBOUNCE:
            self.state = ViewportState.IDLE

    # === Map helpers ===

    def fit_to_markers(self, listings: Iterable[Listing] | None = None) -> Region | None:
        region = region_for_markers(self.repository.listings if listings is None else listings)
        if region is None:
            return None
        if self.host is not None:
            self.host.animate_to_region(region)
        log.debug(f"Fitting map to markers: {region}")
        return region

    def clustering_active(self, count: int, threshold: int | None = None) -> bool:
        limit = threshold if threshold is not None else self.cluster_threshold
        return self.clustering_enabled and count > limit

    def are_all_visible(self, listings: Iterable[Listing], current_bounds: MapBounds) -> bool:
        return are_all_visible(listings, current_bounds)

    async def are_all_listings_visible(self) -> bool:
        listings = self.repository.listings
        if self.host is None or not listings:
            return True
        try:
            current_bounds = _as_bounds(await self.host.get_map_boundaries())
        except Exception as e:
            log.error(f"Could not read map boundaries: {e}")
            return False
        return are_all_visible(listings, current_bounds)

    def cluster_zoom_for(self, point_count: int) -> int:
        return cluster_zoom_for(point_count)

    def on_cluster_press(self, coordinate: Coordinate, point_count: int, current: Region) -> Region:
        region = cluster_press_region(coordinate, point_count, current)
        if self.host is not None:
            self.host.animate_to_region(region)
        return region
