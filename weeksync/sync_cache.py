"""Incremental synchronization of calendars and task lists into the durable cache.

A refresh cycle works on a deep copy of the current snapshot. Calendar and
task sub-refreshes run concurrently and mutate disjoint parts of that copy;
only when both succeed is ``synced_at`` stamped, the copy persisted, and the
in-memory snapshot swapped. Any failure leaves both the file and the snapshot
untouched.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Optional, Union

from .exceptions import CursorExpiredError
from .models import Cache, CalendarMeta
from .providers import CalendarProvider, EventPage, TaskProvider
from .store import load_durable, save_durable
from .timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_WATERMARK_SKEW = datetime.timedelta(seconds=60)
DEFAULT_FETCH_CONCURRENCY = 3


async def _gather_bounded(coros: Sequence, concurrency: int) -> None:
    """Run coroutines with bounded concurrency and re-raise the first failure."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _bounded(coro):  # type: ignore[no-untyped-def]
        async with semaphore:
            return await coro

    results = await asyncio.gather(*(_bounded(c) for c in coros), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result


async def refresh_calendar_list(cache: Cache, provider: CalendarProvider) -> None:
    """Replace calendar display metadata with the provider's calendar list."""
    entries = await provider.list_calendars()
    cache.calendar_meta = {
        entry.id: CalendarMeta(name=entry.name, is_primary=entry.is_primary) for entry in entries
    }
    logger.debug("Calendar list refreshed: %d calendars", len(entries))


async def _refresh_one_calendar(cache: Cache, calendar_id: str, provider: CalendarProvider) -> None:
    snapshot = cache.calendar(calendar_id)
    full_listing = not snapshot.sync_cursor
    page: EventPage

    if full_listing:
        logger.debug("Calendar %s: no cursor, listing all events", calendar_id)
        page = await provider.list_all_events(calendar_id)
    else:
        try:
            page = await provider.list_events_since(calendar_id, snapshot.sync_cursor)
        except CursorExpiredError as e:
            logger.warning(
                "Calendar %s: sync cursor expired (%s); falling back to full listing",
                calendar_id,
                e.message,
            )
            full_listing = True
            page = await provider.list_all_events(calendar_id)

    if full_listing:
        # A full listing is authoritative: anything it omits no longer exists.
        snapshot.events = {}

    removed = upserted = 0
    for event in page.events:
        if event.is_cancelled:
            if snapshot.events.pop(event.id, None) is not None:
                removed += 1
        else:
            snapshot.events[event.id] = event
            upserted += 1

    if full_listing or page.cursor:
        snapshot.sync_cursor = page.cursor

    logger.debug(
        "Calendar %s: %s sync, %d upserted, %d removed, %d cached",
        calendar_id,
        "full" if full_listing else "incremental",
        upserted,
        removed,
        len(snapshot.events),
    )


async def refresh_calendars(
    cache: Cache,
    calendar_ids: Iterable[str],
    provider: CalendarProvider,
    concurrency: int = DEFAULT_FETCH_CONCURRENCY,
) -> None:
    """Bring every calendar in calendar_ids up to date in cache.

    Calendars without a cursor are listed in full. Calendars with a cursor
    are synced incrementally; if the provider reports the cursor expired,
    that calendar alone falls back to a full listing. Cancelled events are
    removed, everything else is upserted (remote wins).

    Args:
        cache: Working cache, mutated in place
        calendar_ids: Calendars to refresh
        provider: Calendar provider
        concurrency: Maximum calendars fetched at once

    Raises:
        ProviderError: Any provider failure other than cursor expiry
    """
    ids = list(dict.fromkeys(calendar_ids))
    await _gather_bounded([_refresh_one_calendar(cache, cid, provider) for cid in ids], concurrency)


async def refresh_tasks(
    cache: Cache,
    list_ids: Iterable[str],
    provider: TaskProvider,
    now: datetime.datetime,
    skew: datetime.timedelta = DEFAULT_WATERMARK_SKEW,
    concurrency: int = DEFAULT_FETCH_CONCURRENCY,
) -> None:
    """Bring every task list in list_ids up to date in cache.

    Each list keeps its own watermark. Items updated since the watermark are
    fetched (everything when the list has none), deleted items are removed
    and the rest upserted. Once all lists succeed, each watermark advances
    to ``now - skew`` so edits racing the cycle start are fetched again.

    Raises:
        ProviderError: Any provider failure
    """
    ids = list(dict.fromkeys(list_ids))
    watermark = now - skew

    async def _refresh_one(list_id: str) -> None:
        snapshot = cache.task_list(list_id)
        items = await provider.list_tasks(list_id, snapshot.updated_watermark)
        removed = 0
        for item in items:
            if item.deleted:
                if snapshot.items.pop(item.id, None) is not None:
                    removed += 1
            else:
                snapshot.items[item.id] = item.to_entry()
        logger.debug(
            "Task list %s: %d changes since %s, %d removed, %d cached",
            list_id,
            len(items),
            snapshot.updated_watermark,
            removed,
            len(snapshot.items),
        )

    await _gather_bounded([_refresh_one(list_id) for list_id in ids], concurrency)

    for list_id in ids:
        cache.task_list(list_id).updated_watermark = watermark


class SyncCache:
    """Owns the durable cache file and runs refresh cycles against providers."""

    def __init__(
        self,
        path: Union[str, Path],
        calendar_provider: CalendarProvider,
        task_provider: TaskProvider,
        clock: Optional[Clock] = None,
        watermark_skew: datetime.timedelta = DEFAULT_WATERMARK_SKEW,
        fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY,
    ):
        """Create a SyncCache and load the durable snapshot.

        Args:
            path: Cache file location
            calendar_provider: Remote calendar access
            task_provider: Remote task-list access
            clock: Time source; defaults to the system clock
            watermark_skew: Safety margin for task watermarks
            fetch_concurrency: Maximum concurrent fetches per sub-refresh
        """
        self._path = Path(path)
        self._calendar_provider = calendar_provider
        self._task_provider = task_provider
        self._clock = clock or SystemClock()
        self._watermark_skew = watermark_skew
        self._fetch_concurrency = fetch_concurrency
        self._inflight: Optional[asyncio.Future[Cache]] = None
        self._current = load_durable(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def current(self) -> Cache:
        """The last successfully persisted (or loaded) snapshot."""
        return self._current

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def load(self) -> Cache:
        """Reload the snapshot from disk."""
        self._current = load_durable(self._path)
        return self._current

    async def refresh(self, calendar_ids: Iterable[str], list_ids: Iterable[str]) -> Cache:
        """Run one sync cycle, or join the cycle already in flight.

        Returns:
            The new snapshot

        Raises:
            ProviderError: If any sub-refresh failed; nothing was persisted
            CacheStoreError: If the durable write failed
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Refresh already in flight; joining it")
            return await asyncio.shield(self._inflight)

        task = asyncio.ensure_future(self._run_cycle(list(calendar_ids), list(list_ids)))
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Future[Cache]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _run_cycle(self, calendar_ids: list[str], list_ids: list[str]) -> Cache:
        started = self._clock.now()
        working = self._current.model_copy(deep=True)
        logger.info(
            "Starting sync cycle: %d calendars, %d task lists", len(calendar_ids), len(list_ids)
        )

        results = await asyncio.gather(
            self._refresh_calendar_side(working, calendar_ids),
            refresh_tasks(
                working,
                list_ids,
                self._task_provider,
                started,
                self._watermark_skew,
                self._fetch_concurrency,
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Sync cycle failed; cache left unchanged: %s", result)
                raise result

        working.synced_at = self._clock.now()
        save_durable(self._path, working)
        self._current = working
        logger.info("Sync cycle finished at %s", working.synced_at.isoformat())
        return working

    async def _refresh_calendar_side(self, working: Cache, calendar_ids: list[str]) -> None:
        await refresh_calendar_list(working, self._calendar_provider)
        await refresh_calendars(
            working, calendar_ids, self._calendar_provider, self._fetch_concurrency
        )
