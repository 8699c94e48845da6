"""
Async, client-facing cache of one division's monthly allotments.

Calendar views call fetch_allotments() on every month change. Calls are debounced and the
newest one wins: an older fetch that is still sleeping or loading is cancelled and its
result is never committed. Until activate() is called (the member's division is known)
fetches are parked, and only the most recent parked one is replayed.
"""
import asyncio
import logging
from datetime import date
from typing import Dict, Optional, Protocol, Tuple

from pld_scheduler.core.config import settings
from pld_scheduler.schemas.calendar import DayAllotment
from pld_scheduler.services.dates import DateLike, month_bounds, to_date, to_key
from pld_scheduler.services.retry import RetryPolicy, arun_with_retry

logger = logging.getLogger(__name__)


class AllotmentSource(Protocol):
    def load_month(self, division: str, month: date) -> Dict[str, DayAllotment]:
        ...

    def load_date(self, division: str, day: date) -> Optional[DayAllotment]:
        """None when the date has no configured allotment."""
        ...


class AllotmentStore:
    def __init__(
        self,
        source: AllotmentSource,
        debounce_seconds: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self._source = source
        self._debounce = (
            settings.scheduling.allotment_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._retry_policy = retry_policy or RetryPolicy.for_reads()

        self.allotments: Dict[str, DayAllotment] = {}
        self.division: Optional[str] = None
        self.month: Optional[date] = None
        self.is_loading = False
        self.error: Optional[BaseException] = None

        self._generation = 0
        self._inflight: Optional[asyncio.Task] = None
        self._deferred: Optional[Tuple[Optional[str], date]] = None
        self._ready = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closed

    async def activate(self, division: str) -> Optional[Dict[str, DayAllotment]]:
        """Marks the store ready for `division` and replays the latest parked fetch, if any."""
        if self._closed:
            return None
        self._ready = True
        self.division = division

        deferred, self._deferred = self._deferred, None
        if deferred is None:
            return None
        parked_division, month = deferred
        logger.debug(f"Replaying deferred allotment fetch for {parked_division or division} {to_key(month)}")
        return await self.fetch_allotments(parked_division or division, month)

    async def fetch_allotments(
        self,
        division: Optional[str],
        month: DateLike
    ) -> Optional[Dict[str, DayAllotment]]:
        """
        Returns the committed mapping, or None when this call was parked, superseded
        by a newer fetch, or failed (see `error`).
        """
        if self._closed:
            return None
        month = to_date(month_bounds(month)[0])

        if not self._ready or not division:
            # Only the latest request survives; earlier parked fetches are dropped
            self._deferred = (division, month)
            return None

        self._generation += 1
        generation = self._generation
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

        task = asyncio.ensure_future(self._run_fetch(generation, division, month))
        self._inflight = task
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def refresh_allotment_for_date(self, division: str, day: DateLike) -> Optional[DayAllotment]:
        """
        Reloads a single date after a submit or cancel. The entry is swapped into a new
        mapping; dates outside the loaded division and month are ignored. A date that is
        no longer configured is dropped, matching what a month fetch returns.
        """
        if self._closed:
            return None
        day = to_date(day)
        if division != self.division or self.month is None or (day.year, day.month) != (self.month.year, self.month.month):
            return None

        generation = self._generation
        outcome = await arun_with_retry(
            lambda: asyncio.to_thread(self._source.load_date, division, day),
            self._retry_policy,
        )
        if self._closed or generation != self._generation:
            return None
        if not outcome.succeeded:
            self.error = outcome.error
            logger.warning(f"Refreshing allotment for {division} {to_key(day)} failed: {outcome.error}")
            return None

        allotments = dict(self.allotments)
        if outcome.value is None:
            allotments.pop(to_key(day), None)
        else:
            allotments[to_key(day)] = outcome.value
        self.allotments = allotments
        return outcome.value

    def close(self) -> None:
        """Cancels any in-flight fetch and discards everything the store holds."""
        self._closed = True
        self._generation += 1
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._deferred = None
        self._ready = False
        self.allotments = {}
        self.division = None
        self.month = None
        self.is_loading = False
        self.error = None

    async def _run_fetch(self, generation: int, division: str, month: date) -> Optional[Dict[str, DayAllotment]]:
        if self._debounce:
            await asyncio.sleep(self._debounce)
        if generation != self._generation:
            return None

        self.is_loading = True
        self.error = None
        try:
            outcome = await arun_with_retry(
                lambda: asyncio.to_thread(self._source.load_month, division, month),
                self._retry_policy,
            )
        finally:
            if generation == self._generation:
                self.is_loading = False

        if generation != self._generation:
            logger.debug(f"Discarding superseded allotment fetch for {division} {to_key(month)}")
            return None
        if not outcome.succeeded:
            self.error = outcome.error
            logger.warning(
                f"Fetching allotments for {division} {to_key(month)} failed after {outcome.attempts} attempts"
            )
            return None

        self.allotments = dict(outcome.value)
        self.division = division
        self.month = month
        logger.info(f"Loaded {len(self.allotments)} allotments for {division} {to_key(month)[:7]}")
        return self.allotments
