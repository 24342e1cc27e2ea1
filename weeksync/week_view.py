"""Week view building: turns cached events and tasks into a 7-day grid."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import Optional, Union

from .config import WeekSyncSettings
from .lifecycle import completion_summary
from .models import (
    BacklogTask,
    Cache,
    DayView,
    EventRecord,
    TaskEntry,
    TaskStatus,
    WeekEvent,
    WeekViewData,
)
from .recurrence import describe
from .scheduler import Slot, assign_columns, busy_within, free_slots
from .timezone_utils import local_midnight

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
SLOTS_PER_DAY = 24
DEFAULT_SECTION = "General"

Anchor = Union[datetime.date, datetime.datetime]


def week_start_date(anchor: Anchor, zone: datetime.tzinfo) -> datetime.date:
    """Return the Monday of the week containing anchor (as seen in zone)."""
    if isinstance(anchor, datetime.datetime):
        day = anchor.astimezone(zone).date() if anchor.tzinfo is not None else anchor.date()
    else:
        day = anchor
    return day - datetime.timedelta(days=day.weekday())


def slot_range(start: datetime.datetime, end: datetime.datetime) -> tuple[int, int]:
    """Map a timed event to hour slots [start_slot, end_slot).

    The start hour is floored and the end hour ceiled, with a one-hour
    minimum. Events ending on a later day run to the end of the grid.
    """
    start_slot = start.hour
    if end.date() > start.date():
        end_slot = SLOTS_PER_DAY
    else:
        end_slot = end.hour
        if end.minute or end.second or end.microsecond:
            end_slot += 1
    if end_slot <= start_slot:
        end_slot = start_slot + 1
    return max(start_slot, 0), min(end_slot, SLOTS_PER_DAY)


def find_linked_event(
    cache: Cache, task: TaskEntry, calendar_ids: Optional[Iterable[str]] = None
) -> Optional[tuple[str, EventRecord]]:
    """Find the calendar block of a task.

    The event id stored in the task notes is tried first; otherwise events
    whose description points back at the task are searched.

    Args:
        cache: Cache to search
        task: Task whose event is wanted
        calendar_ids: Calendars to search; all cached calendars when None

    Returns:
        (calendar_id, event) or None
    """
    ids = list(calendar_ids) if calendar_ids is not None else list(cache.calendars)

    event_id = task.linked_event_id
    if event_id:
        for calendar_id in ids:
            snapshot = cache.calendars.get(calendar_id)
            if snapshot is not None and event_id in snapshot.events:
                return calendar_id, snapshot.events[event_id]

    for calendar_id in ids:
        snapshot = cache.calendars.get(calendar_id)
        if snapshot is None:
            continue
        for event in snapshot.events.values():
            if event.linked_task_id == task.id:
                return calendar_id, event
    return None


class _LinkIndex:
    """Event lookups by id and by back-referenced task id."""

    def __init__(self, cache: Cache):
        self.by_event_id: dict[str, tuple[str, EventRecord]] = {}
        self.by_task_id: dict[str, tuple[str, EventRecord]] = {}
        for calendar_id, snapshot in cache.calendars.items():
            for event in snapshot.events.values():
                self.by_event_id.setdefault(event.id, (calendar_id, event))
                task_id = event.linked_task_id
                if task_id:
                    self.by_task_id.setdefault(task_id, (calendar_id, event))

    def linked_event(self, task: TaskEntry) -> Optional[tuple[str, EventRecord]]:
        event_id = task.linked_event_id
        if event_id and event_id in self.by_event_id:
            return self.by_event_id[event_id]
        return self.by_task_id.get(task.id)


class WeekViewBuilder:
    """Builds WeekViewData from a cache snapshot."""

    def __init__(self, settings: WeekSyncSettings, zone: Optional[datetime.tzinfo] = None):
        """Initialize the builder.

        Args:
            settings: Calendars, task lists, workday and locale to use
            zone: Display timezone; defaults to the configured one
        """
        self.settings = settings
        self.zone = zone or settings.zone()

    def build(
        self, cache: Cache, week_anchor: Anchor, from_cache: bool = True
    ) -> Optional[WeekViewData]:
        """Build the view of the week containing week_anchor.

        Returns:
            The week view, or None when the cache has never been synced
            (unavailable, as opposed to an empty week)
        """
        if not cache.is_synced:
            logger.debug("Cache never synced; week view unavailable")
            return None

        week_start = week_start_date(week_anchor, self.zone)
        week_end = week_start + datetime.timedelta(days=DAYS_PER_WEEK)
        window_start = local_midnight(week_start, self.zone)
        window_end = local_midnight(week_end, self.zone)
        dates = [week_start + datetime.timedelta(days=i) for i in range(DAYS_PER_WEEK)]

        timed: dict[int, list[WeekEvent]] = {i: [] for i in range(DAYS_PER_WEEK)}
        all_day: dict[int, list[WeekEvent]] = {i: [] for i in range(DAYS_PER_WEEK)}
        links = _LinkIndex(cache)

        # Tasks first so linked events can borrow their recurrence rules.
        task_by_id, section_by_task, list_by_task = self._collect_tasks(cache)
        # Task notes name their event authoritatively; descriptions are the fallback.
        task_for_event = {
            task.linked_event_id: task_id
            for task_id, task in task_by_id.items()
            if task.linked_event_id
        }

        for calendar_id in self.settings.view_calendars:
            snapshot = cache.calendars.get(calendar_id)
            if snapshot is None:
                continue
            calendar_name = cache.calendar_name(calendar_id)
            for event in snapshot.events.values():
                if event.is_cancelled:
                    continue
                start, end = event.times(self.zone)
                if end <= window_start or start >= window_end:
                    continue

                task_id = task_for_event.get(event.id) or event.linked_task_id
                linked_task = task_by_id.get(task_id) if task_id else None
                rule = event.recurrence_rule or (linked_task.recurrence_rule if linked_task else None)
                week_event = WeekEvent(
                    id=event.id,
                    summary=event.summary,
                    calendar_id=calendar_id,
                    calendar_name=calendar_name,
                    linked_task_id=task_id,
                    start=start,
                    end=end,
                    all_day=event.is_all_day,
                    recurrence_label=describe(rule, self.settings.locale) if rule else None,
                )

                if event.is_all_day:
                    self._add_all_day(all_day, dates, event, week_event)
                    continue

                index = (start.date() - week_start).days
                if not 0 <= index < DAYS_PER_WEEK:
                    continue
                week_event.start_slot, week_event.end_slot = slot_range(start, end)
                timed[index].append(week_event)

        backlog: list[BacklogTask] = []
        for task in task_by_id.values():
            if task.is_completed or links.linked_event(task) is not None:
                continue
            list_id, list_name = list_by_task[task.id]
            rule = task.recurrence_rule
            label = describe(rule, self.settings.locale) if rule else None
            due_day = task.due_date(self.zone)
            if due_day is not None and week_start <= due_day < week_end:
                day_start = local_midnight(due_day, self.zone)
                all_day[(due_day - week_start).days].append(
                    WeekEvent(
                        id=f"task:{task.id}",
                        summary=task.title,
                        calendar_name=list_name,
                        linked_task_id=task.id,
                        start=day_start,
                        end=local_midnight(due_day + datetime.timedelta(days=1), self.zone),
                        all_day=True,
                        recurrence_label=label,
                        is_task=True,
                    )
                )
                continue
            backlog.append(
                BacklogTask(
                    id=task.id,
                    title=task.title,
                    list_id=list_id,
                    list_name=list_name,
                    section=section_by_task[task.id],
                    due=due_day,
                    recurrence_label=label,
                )
            )

        backlog.sort(key=lambda t: (not t.has_due, t.due or datetime.date.max, t.title))

        days = [
            self._build_day(dates[i], timed[i], all_day[i]) for i in range(DAYS_PER_WEEK)
        ]
        logger.debug(
            "Built week %s: %d timed, %d all-day, %d backlog",
            week_start,
            sum(len(d.timed) for d in days),
            sum(len(d.all_day) for d in days),
            len(backlog),
        )
        return WeekViewData(
            week_start=week_start,
            week_end=week_end,
            days=days,
            backlog=backlog,
            task_by_id=task_by_id,
            synced_at=cache.synced_at,
            from_cache=from_cache,
        )

    def _task_lists(self, cache: Cache) -> list[tuple[str, str]]:
        """Return (list_id, list_name) pairs to include.

        Configured lists are used when present; otherwise every cached list,
        named by its id.
        """
        if self.settings.lists:
            return [(list_id, name) for name, list_id in self.settings.lists.items()]
        return [(list_id, list_id) for list_id in cache.tasks]

    def _collect_tasks(
        self, cache: Cache
    ) -> tuple[dict[str, TaskEntry], dict[str, str], dict[str, tuple[str, str]]]:
        task_by_id: dict[str, TaskEntry] = {}
        section_by_task: dict[str, str] = {}
        list_by_task: dict[str, tuple[str, str]] = {}

        for list_id, list_name in self._task_lists(cache):
            snapshot = cache.tasks.get(list_id)
            if snapshot is None:
                continue
            sections = {
                task.id: task.title for task in snapshot.items.values() if task.is_section_marker
            }
            for task in snapshot.items.values():
                if task.is_section_marker:
                    continue
                task_by_id[task.id] = task
                section_by_task[task.id] = sections.get(task.parent_id or "", DEFAULT_SECTION)
                list_by_task[task.id] = (list_id, list_name)
        return task_by_id, section_by_task, list_by_task

    def _add_all_day(
        self,
        target: dict[int, list[WeekEvent]],
        dates: list[datetime.date],
        event: EventRecord,
        week_event: WeekEvent,
    ) -> None:
        first = event.start.local_date(self.zone)
        last = event.end.local_date(self.zone)
        if last <= first:
            last = first + datetime.timedelta(days=1)
        for index, day in enumerate(dates):
            if first <= day < last:
                target[index].append(week_event.model_copy())

    def _build_day(
        self, day: datetime.date, timed: list[WeekEvent], all_day: list[WeekEvent]
    ) -> DayView:
        column_count, columns = assign_columns([(e.start_slot, e.end_slot) for e in timed])
        for event, column in zip(timed, columns):
            event.column = column
        timed.sort(key=lambda e: (e.start, e.column, e.end, e.summary))
        all_day.sort(key=lambda e: (e.start, e.summary))

        window = self.settings.day_bounds(day)
        intervals = [Slot(e.start, e.end) for e in timed]
        return DayView(
            day=day,
            timed=timed,
            all_day=all_day,
            column_count=column_count,
            busy=busy_within(intervals, window.start, window.end),
            free=free_slots(intervals, window.start, window.end),
        )


def build_week_view(
    cache: Cache,
    week_anchor: Anchor,
    settings: WeekSyncSettings,
    zone: Optional[datetime.tzinfo] = None,
    from_cache: bool = True,
) -> Optional[WeekViewData]:
    """Build a week view in one call; see :meth:`WeekViewBuilder.build`."""
    return WeekViewBuilder(settings, zone).build(cache, week_anchor, from_cache)


def apply_task_toggle(view: WeekViewData, task_id: str, completed: bool) -> WeekViewData:
    """Return a copy of view with a task shown as completed (or reopened).

    Events linked to the task get the completion marker added or removed and
    the task's status is updated in ``task_by_id``. The cache is not touched;
    the next refresh supersedes the patch.
    """
    patched = view.model_copy(deep=True)
    for event in patched.events():
        if event.linked_task_id == task_id:
            event.summary = completion_summary(event.summary, completed)

    task = patched.task_by_id.get(task_id)
    if task is not None:
        status = TaskStatus.COMPLETED if completed else TaskStatus.NEEDS_ACTION
        patched.task_by_id[task_id] = task.model_copy(update={"status": status.value})
    return patched
