"""Clock and timezone helpers for weeksync.

Every component that needs "now" receives a clock instead of reading the wall
clock directly, so sync cycles and week views can be driven deterministically
in tests.
"""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from typing import Optional, Protocol

from dateutil import parser as date_parser
from dateutil import tz

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

LOCAL_ZONE_NAME = "local"


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime.datetime:
        """Return the current time as an aware datetime."""
        ...


class SystemClock:
    """Wall clock with test time override support.

    Can be overridden via the WEEKSYNC_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2026-01-05T10:00:00+01:00").
    """

    def now(self) -> datetime.datetime:
        test_time = os.environ.get("WEEKSYNC_TEST_TIME")
        if test_time:
            try:
                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                # Assume naive datetime is already UTC
                return dt.replace(tzinfo=datetime.timezone.utc)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse WEEKSYNC_TEST_TIME=%r: %s", test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


class FixedClock:
    """Clock pinned to a settable instant."""

    def __init__(self, instant: datetime.datetime):
        self._instant = ensure_aware(instant)

    def now(self) -> datetime.datetime:
        return self._instant

    def set(self, instant: datetime.datetime) -> None:
        self._instant = ensure_aware(instant)

    def advance(self, delta: datetime.timedelta) -> None:
        self._instant = self._instant + delta


def ensure_aware(dt: datetime.datetime) -> datetime.datetime:
    """Return dt as an aware datetime, treating naive values as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def resolve_zone(name: Optional[str]) -> datetime.tzinfo:
    """Resolve a configured timezone name to a tzinfo.

    Args:
        name: IANA timezone name, or "local"/empty for the host zone

    Returns:
        tzinfo usable for datetime arithmetic

    Raises:
        ConfigError: If the name is not a known IANA zone
    """
    if not name or name.strip().lower() == LOCAL_ZONE_NAME:
        return tz.tzlocal()

    try:
        return zoneinfo.ZoneInfo(name.strip())
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone {name!r}") from e


def local_midnight(day: datetime.date, zone: datetime.tzinfo) -> datetime.datetime:
    """Return the aware start of day in zone."""
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=zone)
