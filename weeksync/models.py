"""Data models for the durable cache and the derived week view."""

from datetime import date, datetime, time, timezone, tzinfo
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .annotations import EVENT_ID_KEY, RRULE_KEY, SECTION_KEY, TASK_ID_KEY, Annotations
from .scheduler import Slot

CACHE_VERSION = 1


class EventStatus(str, Enum):
    """Remote event status values."""

    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class TaskStatus(str, Enum):
    """Remote task status values."""

    NEEDS_ACTION = "needsAction"
    COMPLETED = "completed"


class EventTime(BaseModel):
    """Either an instant (timed) or a calendar date (all-day)."""

    date_time: Optional[datetime] = None
    day: Optional[date] = None

    @field_validator("date_time")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _require_one(self) -> "EventTime":
        if self.date_time is None and self.day is None:
            raise ValueError("EventTime needs either date_time or day")
        return self

    @classmethod
    def at(cls, instant: datetime) -> "EventTime":
        return cls(date_time=instant)

    @classmethod
    def all_day(cls, day: date) -> "EventTime":
        return cls(day=day)

    @property
    def is_all_day(self) -> bool:
        return self.date_time is None

    def resolve(self, zone: tzinfo) -> datetime:
        """Return the instant in zone; all-day values map to local midnight."""
        if self.date_time is not None:
            return self.date_time.astimezone(zone)
        return datetime.combine(self.local_date(zone), time.min, tzinfo=zone)

    def local_date(self, zone: tzinfo) -> date:
        if self.date_time is not None:
            return self.date_time.astimezone(zone).date()
        if self.day is None:
            raise ValueError("EventTime needs either date_time or day")
        return self.day


class EventRecord(BaseModel):
    """Cached calendar event as last seen from the provider."""

    id: str
    summary: str = ""
    start: EventTime
    end: EventTime
    status: EventStatus = EventStatus.CONFIRMED
    description: str = ""
    recurrence: list[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_cancelled(self) -> bool:
        return self.status == EventStatus.CANCELLED

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day

    @property
    def annotations(self) -> Annotations:
        return Annotations.parse(self.description)

    @property
    def linked_task_id(self) -> Optional[str]:
        return self.annotations.get(TASK_ID_KEY)

    @property
    def recurrence_rule(self) -> Optional[str]:
        """Return the first RRULE line of a recurring event, if any."""
        for line in self.recurrence:
            if line.upper().startswith("RRULE:"):
                return line
        return None

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence)

    def times(self, zone: tzinfo) -> tuple[datetime, datetime]:
        return self.start.resolve(zone), self.end.resolve(zone)


class TaskEntry(BaseModel):
    """Cached task-list item."""

    id: str
    title: str = ""
    notes: str = ""
    parent_id: Optional[str] = None
    status: TaskStatus = TaskStatus.NEEDS_ACTION
    due: Optional[EventTime] = None
    updated: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def annotations(self) -> Annotations:
        return Annotations.parse(self.notes)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_section_marker(self) -> bool:
        return SECTION_KEY in self.annotations

    @property
    def linked_event_id(self) -> Optional[str]:
        return self.annotations.get(EVENT_ID_KEY)

    @property
    def recurrence_rule(self) -> Optional[str]:
        return self.annotations.get(RRULE_KEY)

    def due_date(self, zone: tzinfo) -> Optional[date]:
        return self.due.local_date(zone) if self.due is not None else None


class RemoteTask(TaskEntry):
    """Task as returned by a provider; deleted items carry a tombstone flag."""

    deleted: bool = False

    def to_entry(self) -> TaskEntry:
        return TaskEntry.model_validate(self.model_dump(exclude={"deleted"}))


class CalendarMeta(BaseModel):
    """Display metadata for a calendar."""

    name: str = ""
    is_primary: bool = False


class CalendarSnapshot(BaseModel):
    """Events of one calendar plus its incremental-sync cursor.

    An empty cursor means the next refresh must list everything.
    """

    sync_cursor: str = ""
    events: dict[str, EventRecord] = Field(default_factory=dict)

    @field_validator("sync_cursor", mode="before")
    @classmethod
    def _none_cursor(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("events", mode="before")
    @classmethod
    def _none_events(cls, value: Any) -> Any:
        return {} if value is None else value


class TaskListSnapshot(BaseModel):
    """Items of one task list plus its "updated since" watermark."""

    updated_watermark: Optional[datetime] = None
    items: dict[str, TaskEntry] = Field(default_factory=dict)

    @field_validator("items", mode="before")
    @classmethod
    def _none_items(cls, value: Any) -> Any:
        return {} if value is None else value


class Cache(BaseModel):
    """Durable snapshot of every synced calendar and task list."""

    version: int = CACHE_VERSION
    calendar_meta: dict[str, CalendarMeta] = Field(default_factory=dict)
    calendars: dict[str, CalendarSnapshot] = Field(default_factory=dict)
    tasks: dict[str, TaskListSnapshot] = Field(default_factory=dict)
    synced_at: Optional[datetime] = None

    @field_validator("calendar_meta", "calendars", "tasks", mode="before")
    @classmethod
    def _none_maps(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_serializer("synced_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat() if dt is not None else None

    @property
    def is_synced(self) -> bool:
        return self.synced_at is not None

    def calendar(self, calendar_id: str) -> CalendarSnapshot:
        """Return the snapshot for calendar_id, creating an empty one if needed."""
        return self.calendars.setdefault(calendar_id, CalendarSnapshot())

    def task_list(self, list_id: str) -> TaskListSnapshot:
        """Return the snapshot for list_id, creating an empty one if needed."""
        return self.tasks.setdefault(list_id, TaskListSnapshot())

    def calendar_name(self, calendar_id: str) -> str:
        meta = self.calendar_meta.get(calendar_id)
        return meta.name if meta and meta.name else calendar_id

    def find_task(self, task_id: str) -> Optional[tuple[str, TaskEntry]]:
        """Return (list_id, task) for task_id across all cached lists."""
        for list_id, snapshot in self.tasks.items():
            task = snapshot.items.get(task_id)
            if task is not None:
                return list_id, task
        return None


class WeekEvent(BaseModel):
    """Event placed on the week grid."""

    id: str
    summary: str
    calendar_id: str = ""
    calendar_name: str = ""
    linked_task_id: Optional[str] = None
    start: datetime
    end: datetime
    start_slot: int = 0
    end_slot: int = 0
    all_day: bool = False
    column: int = 0
    recurrence_label: Optional[str] = None
    is_task: bool = False


class BacklogTask(BaseModel):
    """Open task with no slot in the visible week."""

    id: str
    title: str
    list_id: str
    list_name: str
    section: str
    due: Optional[date] = None
    recurrence_label: Optional[str] = None

    @property
    def has_due(self) -> bool:
        return self.due is not None


class DayView(BaseModel):
    """One column of the week view."""

    day: date
    timed: list[WeekEvent] = Field(default_factory=list)
    all_day: list[WeekEvent] = Field(default_factory=list)
    column_count: int = 0
    busy: list[Slot] = Field(default_factory=list)
    free: list[Slot] = Field(default_factory=list)


class WeekViewData(BaseModel):
    """Derived, never persisted, view of one week."""

    week_start: date
    week_end: date
    days: list[DayView]
    backlog: list[BacklogTask] = Field(default_factory=list)
    task_by_id: dict[str, TaskEntry] = Field(default_factory=dict)
    synced_at: Optional[datetime] = None
    from_cache: bool = True

    def events(self) -> list[WeekEvent]:
        """Return every placed event, all-day lanes first, day by day."""
        placed: list[WeekEvent] = []
        for day in self.days:
            placed.extend(day.all_day)
            placed.extend(day.timed)
        return placed
