"""Protocol definitions for remote calendar and task providers.

Concrete API clients live outside this package; the sync cache only depends
on these interface contracts.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .models import EventRecord, RemoteTask


@dataclass
class EventPage:
    """Result of an event listing: changed events plus the next cursor.

    An empty cursor means the provider issued none; the previous cursor is
    kept in that case.
    """

    events: list[EventRecord] = field(default_factory=list)
    cursor: str = ""


@dataclass
class CalendarListEntry:
    """Calendar visible to the account."""

    id: str
    name: str = ""
    is_primary: bool = False


class CalendarProvider(Protocol):
    """Protocol for remote calendar access."""

    async def list_all_events(self, calendar_id: str) -> EventPage:
        """List every event of a calendar and issue a fresh sync cursor.

        Args:
            calendar_id: Calendar identifier

        Returns:
            Full event listing and cursor
        """
        ...

    async def list_events_since(self, calendar_id: str, cursor: str) -> EventPage:
        """List events changed since cursor, including cancelled tombstones.

        Args:
            calendar_id: Calendar identifier
            cursor: Cursor from the previous listing

        Returns:
            Changed events and the next cursor

        Raises:
            CursorExpiredError: If the provider no longer accepts cursor
            ProviderError: For any other remote failure
        """
        ...

    async def list_calendars(self) -> list[CalendarListEntry]:
        """List calendars visible to the account."""
        ...


class TaskProvider(Protocol):
    """Protocol for remote task-list access."""

    async def list_tasks(
        self, list_id: str, updated_since: Optional[datetime.datetime]
    ) -> list[RemoteTask]:
        """List tasks updated since a watermark (all tasks when None).

        Deleted tasks are returned with ``deleted=True``.

        Raises:
            ProviderError: For any remote failure
        """
        ...
