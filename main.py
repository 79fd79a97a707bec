import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from core.repository import ListingRepository, StaticLocation
from db.models import Coordinate, FilterCriteria, Listing, MapBounds, SortKey
from db.store import build_store

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    log_level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper())
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.log_dir / "listings.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(log_level)
    logging.getLogger().addHandler(file_handler)
    # Coordinate warnings raised during normalization end up in the log files too.
    logging.captureWarnings(True)


def _coordinate(value: str) -> Coordinate:
    try:
        lat, lng = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected LAT,LNG, got {value!r}") from None
    return Coordinate(lat, lng)


def _bounds(value: str) -> MapBounds:
    try:
        south, west, north, east = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected SOUTH,WEST,NORTH,EAST, got {value!r}") from None
    if south > north or west > east:
        raise argparse.ArgumentTypeError("bounds are inverted")
    return MapBounds(north_east=Coordinate(north, east), south_west=Coordinate(south, west))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search rental listings")
    parser.add_argument("--query", default="", help="free text matched on title, description, address, city")
    parser.add_argument("--type", dest="types", action="append", default=[], help="listing type, repeatable")
    parser.add_argument("--price-min", type=float)
    parser.add_argument("--price-max", type=float)
    parser.add_argument("--min-size", type=float, help="minimum size in m²")
    parser.add_argument("--min-months", type=int, help="minimum stay in months")
    parser.add_argument("--rooms", type=int)
    parser.add_argument("--recent", action="store_true", help="only listings from the last days")
    parser.add_argument("--sort", choices=[key.value for key in SortKey])
    parser.add_argument("--near", type=_coordinate, help="reference point LAT,LNG")
    parser.add_argument("--radius", type=float, help="max distance in km from --near")
    parser.add_argument("--bounds", type=_bounds, help="area SOUTH,WEST,NORTH,EAST")
    parser.add_argument("--pages", type=int, default=1, help="number of pages to show")
    parser.add_argument("--watch", action="store_true", help="keep refetching on an interval")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def criteria_from_args(args: argparse.Namespace) -> FilterCriteria:
    sort_by = SortKey(args.sort) if args.sort else None
    return FilterCriteria(
        query=args.query,
        types=set(args.types),
        price_min=args.price_min,
        price_max=args.price_max,
        min_months=args.min_months,
        min_size=args.min_size,
        rooms=args.rooms,
        recent_only=args.recent,
        map_bounds=args.bounds,
        sort_by=sort_by,
        nearby_radius=args.radius,
    )


def format_listing(listing: Listing) -> str:
    line = f"{listing.id:<20} €{listing.price:>8,.0f}  {listing.type:<12} {listing.title} ({listing.city})"
    if listing.distance is not None:
        line += f"  {listing.distance:.1f} km"
    return line


def print_results(repository: ListingRepository, pages: int) -> None:
    for _ in range(pages - 1):
        repository.fetch_more()

    snapshot = repository.snapshot()
    if snapshot.error:
        print(f"! {snapshot.error}")
    for listing in snapshot.listings:
        print(format_listing(listing))
    more = " (more available)" if snapshot.has_more else ""
    print(f"Showing {len(snapshot.listings)} of {snapshot.total}{more}")


async def run(args: argparse.Namespace) -> int:
    repository = ListingRepository(
        store=build_store(),
        location=StaticLocation(args.near),
    )
    repository.apply_criteria(criteria_from_args(args))

    try:
        await repository.fetch_all()
        print_results(repository, args.pages)

        if not args.watch:
            return 0

        scheduler = AsyncIOScheduler()

        async def refresh() -> None:
            await repository.refetch()
            print_results(repository, args.pages)

        scheduler.add_job(
            refresh,
            IntervalTrigger(minutes=settings.watch_interval_minutes),
            id="refetch",
            replace_existing=True,
        )
        scheduler.start()
        log.info(f"Refetching every {settings.watch_interval_minutes}m, Ctrl+C to stop")
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)
        return 0
    finally:
        await repository.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
