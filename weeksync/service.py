"""Week service: cache-then-refresh access to week views."""

from __future__ import annotations

import datetime
import logging
from collections.abc import AsyncIterator
from typing import Optional

from .config import WeekSyncSettings
from .exceptions import WeekSyncError
from .models import WeekViewData
from .providers import CalendarProvider, TaskProvider
from .sync_cache import SyncCache
from .timezone_utils import Clock, SystemClock
from .week_view import Anchor, WeekViewBuilder, apply_task_toggle

logger = logging.getLogger(__name__)


class WeekService:
    """Entry point for renderers: cached views, refreshes and optimistic toggles."""

    def __init__(
        self,
        settings: WeekSyncSettings,
        calendar_provider: CalendarProvider,
        task_provider: TaskProvider,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.zone = settings.zone()
        self.builder = WeekViewBuilder(settings, self.zone)
        self.sync_cache = SyncCache(
            settings.cache_path,
            calendar_provider,
            task_provider,
            clock=self.clock,
            watermark_skew=datetime.timedelta(seconds=settings.watermark_skew_seconds),
        )

    def _list_ids(self) -> list[str]:
        if self.settings.lists:
            return list(self.settings.lists.values())
        return list(self.sync_cache.current.tasks)

    def build_from_cache(self, week_anchor: Optional[Anchor] = None) -> Optional[WeekViewData]:
        """Build a view from the durable snapshot without network access.

        Returns:
            The view, or None when nothing has been synced yet
        """
        anchor = week_anchor if week_anchor is not None else self.clock.now()
        # Pick up writes from other processes; an in-flight cycle owns the snapshot.
        if self.sync_cache.is_refreshing:
            snapshot = self.sync_cache.current
        else:
            snapshot = self.sync_cache.load()
        return self.builder.build(snapshot, anchor, from_cache=True)

    async def refresh(self, week_anchor: Optional[Anchor] = None) -> WeekViewData:
        """Run a full sync cycle and build a fresh view.

        Raises:
            ProviderError: If a provider failed; the cache is unchanged
            CacheStoreError: If the cache could not be persisted
        """
        anchor = week_anchor if week_anchor is not None else self.clock.now()
        cache = await self.sync_cache.refresh(self.settings.view_calendars, self._list_ids())
        view = self.builder.build(cache, anchor, from_cache=False)
        if view is None:
            raise WeekSyncError("Sync cycle finished without stamping synced_at")
        return view

    async def load_week(self, week_anchor: Optional[Anchor] = None) -> AsyncIterator[WeekViewData]:
        """Yield the cached view immediately (when available), then the refreshed one.

        A refresh failure is logged and re-raised after the cached view has
        been delivered, so callers can keep showing stale data.
        """
        anchor = week_anchor if week_anchor is not None else self.clock.now()
        cached = self.build_from_cache(anchor)
        if cached is not None:
            yield cached
        else:
            logger.info("No cached week available; waiting for refresh")

        try:
            fresh = await self.refresh(anchor)
        except Exception:
            logger.exception("Week refresh failed")
            raise
        yield fresh

    def toggle_completion(self, view: WeekViewData, task_id: str, completed: bool) -> WeekViewData:
        """Optimistically show a task as completed or reopened in a rendered view."""
        return apply_task_toggle(view, task_id, completed)
