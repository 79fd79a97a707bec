from typing import Sequence

from db.models import Listing


class Paginator:
    """Growing window over an already filtered and sorted collection."""

    def __init__(self, items: Sequence[Listing] = (), page_size: int = 20):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self._items: tuple[Listing, ...] = tuple(items)
        self._pages = 1

    @property
    def total(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[Listing, ...]:
        return self._items

    @property
    def visible(self) -> tuple[Listing, ...]:
        return self._items[: min(self._pages * self.page_size, self.total)]

    @property
    def has_more(self) -> bool:
        return len(self.visible) < self.total

    def load_more(self) -> list[Listing]:
        """Extend the window by one page and return the newly exposed items."""
        if not self.has_more:
            return []
        start = len(self.visible)
        self._pages += 1
        return list(self._items[start : len(self.visible)])

    def reset(self, items: Sequence[Listing]) -> None:
        self._items = tuple(items)
        self._pages = 1
