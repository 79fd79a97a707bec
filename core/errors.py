class ListingError(Exception):
    """Base class for listing retrieval errors."""


class FetchError(ListingError):
    """The remote listing store failed or could not be reached."""


class FetchTimeoutError(FetchError):
    """A fetch did not settle within its wall-clock budget."""


class EmptyResultError(ListingError):
    """The store answered with zero usable records."""


class MalformedRecordError(ListingError):
    """A raw record lacks the structure needed to build a listing."""


class InvalidCoordinateWarning(UserWarning):
    """A listing has missing or out-of-range coordinates."""
