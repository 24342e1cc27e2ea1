"""Shared builders and fake providers for weeksync tests."""

from __future__ import annotations

import datetime
from typing import Optional

from weeksync.annotations import EVENT_ID_KEY, RRULE_KEY, SECTION_KEY, TASK_ID_KEY, annotate
from weeksync.exceptions import CursorExpiredError, ProviderError
from weeksync.models import EventRecord, EventTime, RemoteTask, TaskEntry
from weeksync.providers import CalendarListEntry, EventPage

UTC = datetime.timezone.utc


def dt(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime.datetime:
    """Aware UTC datetime shorthand."""
    return datetime.datetime(year, month, day, hour, minute, tzinfo=UTC)


def timed_event(
    event_id: str,
    start: datetime.datetime,
    end: datetime.datetime,
    summary: str = "",
    task_id: Optional[str] = None,
    status: str = "confirmed",
    recurrence: Optional[list[str]] = None,
) -> EventRecord:
    description = annotate("", TASK_ID_KEY, task_id) if task_id else ""
    return EventRecord(
        id=event_id,
        summary=summary or event_id,
        start=EventTime.at(start),
        end=EventTime.at(end),
        status=status,
        description=description,
        recurrence=recurrence or [],
    )


def all_day_event(
    event_id: str, first: datetime.date, end: datetime.date, summary: str = ""
) -> EventRecord:
    return EventRecord(
        id=event_id,
        summary=summary or event_id,
        start=EventTime.all_day(first),
        end=EventTime.all_day(end),
    )


def cancelled(event_id: str) -> EventRecord:
    return timed_event(event_id, dt(2026, 1, 1), dt(2026, 1, 1, 1), status="cancelled")


def task(
    task_id: str,
    title: str = "",
    due: Optional[datetime.date] = None,
    parent_id: Optional[str] = None,
    status: str = "needsAction",
    event_id: Optional[str] = None,
    rule: Optional[str] = None,
    section: bool = False,
    notes: str = "",
) -> TaskEntry:
    if event_id:
        notes = annotate(notes, EVENT_ID_KEY, event_id)
    if rule:
        notes = annotate(notes, RRULE_KEY, rule)
    if section:
        notes = annotate(notes, SECTION_KEY, "1")
    return TaskEntry(
        id=task_id,
        title=title or task_id,
        notes=notes,
        parent_id=parent_id,
        status=status,
        due=EventTime.all_day(due) if due else None,
    )


def remote(entry: TaskEntry, deleted: bool = False) -> RemoteTask:
    return RemoteTask.model_validate({**entry.model_dump(), "deleted": deleted})


class FakeCalendarProvider:
    """In-memory calendar provider with scripted pages and failures."""

    def __init__(self) -> None:
        self.full: dict[str, list[EventRecord]] = {}
        self.changes: dict[str, list[EventRecord]] = {}
        self.cursors: dict[str, str] = {}
        self.calendars: list[CalendarListEntry] = [
            CalendarListEntry(id="primary", name="Personal", is_primary=True)
        ]
        self.expired: set[str] = set()
        self.fail_with: Optional[Exception] = None
        self.fail_since: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    async def list_all_events(self, calendar_id: str) -> EventPage:
        self.calls.append(("all", calendar_id))
        if self.fail_with is not None:
            raise self.fail_with
        return EventPage(list(self.full.get(calendar_id, [])), self.cursors.get(calendar_id, ""))

    async def list_events_since(self, calendar_id: str, cursor: str) -> EventPage:
        self.calls.append(("since", calendar_id))
        if self.fail_with is not None:
            raise self.fail_with
        if calendar_id in self.fail_since:
            raise self.fail_since[calendar_id]
        if calendar_id in self.expired:
            raise CursorExpiredError("sync token expired", calendar_id)
        return EventPage(
            list(self.changes.get(calendar_id, [])), self.cursors.get(calendar_id, "")
        )

    async def list_calendars(self) -> list[CalendarListEntry]:
        self.calls.append(("calendars", ""))
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.calendars)


class FakeTaskProvider:
    """In-memory task provider recording the watermarks it was asked for."""

    def __init__(self) -> None:
        self.items: dict[str, list[RemoteTask]] = {}
        self.fail_with: Optional[Exception] = None
        self.requests: list[tuple[str, Optional[datetime.datetime]]] = []

    async def list_tasks(
        self, list_id: str, updated_since: Optional[datetime.datetime]
    ) -> list[RemoteTask]:
        self.requests.append((list_id, updated_since))
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.items.get(list_id, []))


def outage(source: str = "primary") -> ProviderError:
    return ProviderError("503 service unavailable", source)
