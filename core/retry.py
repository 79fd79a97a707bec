import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from config import settings
from core.errors import EmptyResultError, FetchError, FetchTimeoutError

log = logging.getLogger(__name__)

T = TypeVar("T")

MSG_EMPTY = "No listings are available right now. Showing example listings."
MSG_TIMEOUT = "Loading is taking too long"
MSG_FAILED = "Could not load listings"


@dataclass
class FetchResult(Generic[T]):
    items: list[T]
    from_fallback: bool
    error: str | None
    generation: int
    attempts: int


class RetryGuard(Generic[T]):
    """Bounded-retry, timeout-guarded wrapper around one async fetch.

    Every attempt takes a new generation number. Only one run can be in
    flight; a second ``run()`` while the first is pending is dropped. An
    attempt that exceeds ``timeout`` is abandoned but not cancelled, and
    its late result is discarded once it arrives.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Sequence[T]]],
        fallback: Callable[[], Sequence[T]],
        max_attempts: int | None = None,
        timeout: float | None = None,
        retry_delay: float | None = None,
    ):
        self._fetch = fetch
        self._fallback = fallback
        self.max_attempts = max_attempts or settings.max_fetch_attempts
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.retry_delay = retry_delay if retry_delay is not None else settings.retry_delay_seconds
        self._attempts = 0
        self._generation = 0
        self._active: int | None = None

    @property
    def in_flight(self) -> bool:
        return self._active is not None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def invalidate(self) -> None:
        """Make any result still in flight stale."""
        self._generation += 1

    async def run(self) -> FetchResult[T] | None:
        if self.in_flight:
            log.info(f"Fetch already in progress (generation {self._active}), request ignored")
            return None

        self._active = self._generation
        try:
            return await self._run_attempts()
        finally:
            self._active = None

    async def _run_attempts(self) -> FetchResult[T]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type(FetchError),
            after=self._log_failure,
            reraise=True,
        )

        try:
            items = await retrying(self._attempt)
        except EmptyResultError as e:
            log.warning(f"Empty result, falling back without retry: {e}")
            return self._fall_back(self._active, MSG_EMPTY)
        except FetchError as e:
            last_error = MSG_TIMEOUT if isinstance(e, FetchTimeoutError) else MSG_FAILED
            log.warning(f"Reached {self.max_attempts} fetch attempts, using fallback data")
            message = f"{last_error}. Too many attempts ({self.max_attempts}), showing example listings."
            return self._fall_back(self._active, message)

        attempts = self._attempts
        self._attempts = 0
        log.info(f"Fetched {len(items)} items in {attempts} attempt(s)")
        return FetchResult(items, False, None, self._active, attempts)

    def _log_failure(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(f"Attempt {retry_state.attempt_number}/{self.max_attempts} failed: {error}")

    async def _attempt(self) -> list[T]:
        self._attempts += 1
        self._generation += 1
        generation = self._active = self._generation
        log.info(f"Fetch attempt {self._attempts}/{self.max_attempts} (generation {generation})")

        task = asyncio.ensure_future(self._fetch())
        done, _ = await asyncio.wait({task}, timeout=self.timeout)

        if not done:
            task.add_done_callback(partial(self._discard_late, generation))
            raise FetchTimeoutError(f"no answer within {self.timeout:g}s")

        try:
            items = task.result()
        except FetchError:
            raise
        except Exception as e:
            log.error(f"Unexpected fetch failure: {e}", exc_info=True)
            raise FetchError(str(e)) from e

        if not items:
            raise EmptyResultError("store returned no records")
        return list(items)

    def _discard_late(self, generation: int, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.debug(f"Late failure of timed-out generation {generation} ignored: {error}")
            return
        log.info(
            f"Discarding late result of generation {generation} "
            f"({len(task.result() or [])} items), current is {self._generation}"
        )

    def _fall_back(self, generation: int, message: str) -> FetchResult[T]:
        attempts = self._attempts
        items = list(self._fallback())
        self._attempts = 0
        log.warning(f"Using {len(items)} fallback items: {message}")
        return FetchResult(items, True, message, generation, attempts)
