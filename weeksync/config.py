"""Settings management using Pydantic for type validation and configuration.

Values come from (highest priority first) explicit keyword arguments or the
YAML config file, WEEKSYNC_* environment variables, then the defaults below.
"""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import Field, ValidationError, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import paths
from .exceptions import ConfigError
from .scheduler import Slot, day_bounds, parse_clock
from .timezone_utils import resolve_zone

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_ID = "primary"
DEFAULT_LIST_NAME = "Inbox"
DEFAULT_WORKDAY_START = "09:00"
DEFAULT_WORKDAY_END = "18:00"
SUPPORTED_LOCALES = ("en", "es")


class WeekSyncSettings(BaseSettings):
    """Runtime configuration for sync and week view building."""

    calendar_id: str = Field(
        default=DEFAULT_CALENDAR_ID, description="Calendar that receives linked events"
    )
    default_list: str = Field(default=DEFAULT_LIST_NAME, description="Default task list name")
    view_calendars: list[str] = Field(
        default_factory=list, description="Calendars synced and shown in the week view"
    )
    workday_start: str = Field(default=DEFAULT_WORKDAY_START, description="Workday start (HH:MM)")
    workday_end: str = Field(default=DEFAULT_WORKDAY_END, description="Workday end (HH:MM)")
    timezone: str = Field(default="local", description="IANA timezone name or 'local'")
    lists: dict[str, str] = Field(default_factory=dict, description="Task list name -> list id")
    cache_path: Path = Field(
        default_factory=paths.default_cache_path, description="Durable cache file"
    )
    watermark_skew_seconds: int = Field(
        default=60, ge=0, description="Skew subtracted from now when advancing task watermarks"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    locale: str = Field(default="en", description="Recurrence description language")

    model_config = SettingsConfigDict(
        env_prefix="WEEKSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("calendar_id", "default_list", "timezone", mode="before")
    @classmethod
    def _blank_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return {
                "calendar_id": DEFAULT_CALENDAR_ID,
                "default_list": DEFAULT_LIST_NAME,
                "timezone": "local",
            }[info.field_name]
        return value.strip() if isinstance(value, str) else value

    @field_validator("workday_start", "workday_end", mode="before")
    @classmethod
    def _validate_clock(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_WORKDAY_START if info.field_name == "workday_start" else DEFAULT_WORKDAY_END
        try:
            parse_clock(str(value))
        except ConfigError as e:
            raise ValueError(e.message) from e
        return str(value).strip()

    @field_validator("lists", mode="before")
    @classmethod
    def _none_lists(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("view_calendars", mode="before")
    @classmethod
    def _none_view_calendars(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            resolve_zone(value)
        except ConfigError as e:
            raise ValueError(e.message) from e
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return str(value).upper() if value else "INFO"

    @field_validator("locale", mode="before")
    @classmethod
    def _validate_locale(cls, value: Any) -> Any:
        locale = str(value or "en").strip().lower()
        if locale not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale {value!r}; expected one of {SUPPORTED_LOCALES}")
        return locale

    @model_validator(mode="after")
    def _normalize(self) -> WeekSyncSettings:
        seen: set[str] = set()
        filtered: list[str] = []
        for calendar_id in self.view_calendars:
            calendar_id = calendar_id.strip()
            if not calendar_id or calendar_id in seen:
                continue
            seen.add(calendar_id)
            filtered.append(calendar_id)
        self.view_calendars = filtered or [self.calendar_id]

        if parse_clock(self.workday_end) <= parse_clock(self.workday_start):
            raise ValueError(
                f"workday_end {self.workday_end!r} must be after workday_start {self.workday_start!r}"
            )
        return self

    def zone(self) -> datetime.tzinfo:
        """Return the configured timezone as a tzinfo."""
        return resolve_zone(self.timezone)

    def list_id(self, name: str) -> Optional[str]:
        """Look up a task list id by its configured name."""
        return self.lists.get(name)

    def list_names_by_id(self) -> dict[str, str]:
        return {list_id: name for name, list_id in self.lists.items()}

    def day_bounds(self, day: datetime.date) -> Slot:
        """Return the workday window for a date in the configured zone."""
        return day_bounds(day, self.workday_start, self.workday_end, self.zone())


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> WeekSyncSettings:
    """Load settings from a YAML (or JSON) file plus environment.

    Args:
        path: Config file path. Defaults to the user config location; a
            missing default file means defaults and environment only.
        **overrides: Explicit values that win over the file

    Returns:
        Validated settings

    Raises:
        ConfigError: If the file cannot be read or values are invalid
    """
    explicit = path is not None
    config_file = Path(path) if explicit else paths.config_path()

    data: dict[str, Any] = {}
    if config_file.exists():
        data = _read_config_file(config_file)
        logger.debug("Loaded config from %s", config_file)
    elif explicit:
        raise ConfigError(f"Config file not found: {config_file}")
    else:
        logger.debug("No config file at %s; using defaults and environment", config_file)

    data.update(overrides)

    try:
        return WeekSyncSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


# Global settings management
_settings_instance: Optional[WeekSyncSettings] = None


def get_settings() -> WeekSyncSettings:
    """Get the global settings instance, loading it lazily if needed."""
    if globals()["_settings_instance"] is None:
        globals()["_settings_instance"] = load_settings()
    return globals()["_settings_instance"]


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    globals()["_settings_instance"] = None
