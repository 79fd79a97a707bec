from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SortKey(Enum):
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DATE_DESC = "date_desc"
    DISTANCE = "distance"


class ViewportState(Enum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    FETCHING = "fetching"
    FALLBACK = "fallback"


class ViewportEvent(Enum):
    BOUNDS_CHANGED = "bounds_changed"
    DEBOUNCE_ELAPSED = "debounce_elapsed"
    FETCH_SUCCEEDED = "fetch_succeeded"
    FETCH_FELL_BACK = "fetch_fell_back"


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coordinate":
        """Accept both ``latitude/longitude`` and ``lat/lng`` keys."""
        lat = data["latitude"] if "latitude" in data else data["lat"]
        lng = data["longitude"] if "longitude" in data else data["lng"]
        return cls(latitude=float(lat), longitude=float(lng))


@dataclass(frozen=True)
class Region:
    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float

    def to_dict(self) -> dict[str, float]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "latitudeDelta": self.latitude_delta,
            "longitudeDelta": self.longitude_delta,
        }


@dataclass(frozen=True)
class MapBounds:
    """Rectangle between a north-east and a south-west corner.

    Callers must not pass an inverted box, nothing here corrects it.
    """

    north_east: Coordinate
    south_west: Coordinate

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MapBounds":
        return cls(
            north_east=Coordinate.from_dict(data["northEast"]),
            south_west=Coordinate.from_dict(data["southWest"]),
        )

    @classmethod
    def from_region(cls, region: Region) -> "MapBounds":
        half_lat = region.latitude_delta / 2
        half_lng = region.longitude_delta / 2
        return cls(
            north_east=Coordinate(region.latitude + half_lat, region.longitude + half_lng),
            south_west=Coordinate(region.latitude - half_lat, region.longitude - half_lng),
        )

    @property
    def center(self) -> Coordinate:
        return Coordinate(
            latitude=(self.north_east.latitude + self.south_west.latitude) / 2,
            longitude=(self.north_east.longitude + self.south_west.longitude) / 2,
        )


def _epoch() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Listing:
    id: str
    title: str
    description: str
    address: str
    city: str
    price: float
    latitude: float | None
    longitude: float | None
    images: tuple[str, ...] = ()
    owner_id: str = ""
    type: str = ""
    size: float | None = None
    rooms: int | None = None
    bathrooms: int | None = None
    months: int | None = None
    created_at: datetime = field(default_factory=_epoch)
    updated_at: datetime = field(default_factory=_epoch)
    available: bool = True
    distance: float | None = None

    @property
    def has_valid_coordinates(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180

    @property
    def coordinate(self) -> Coordinate | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)


@dataclass
class FilterCriteria:
    query: str = ""
    types: set[str] = field(default_factory=set)
    price_min: float | None = None
    price_max: float | None = None
    min_months: int | None = None
    min_size: float | None = None
    rooms: int | None = None
    recent_only: bool = False
    map_bounds: MapBounds | None = None
    sort_by: SortKey | None = None
    sort_by_distance: bool = False
    nearby_radius: float | None = None


@dataclass(frozen=True)
class ListingsSnapshot:
    listings: tuple[Listing, ...]
    loading: bool
    loading_more: bool
    has_more: bool
    error: str | None
    total: int
    from_fallback: bool
