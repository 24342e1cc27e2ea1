"""Exceptions raised by weeksync."""

from typing import Optional


class WeekSyncError(Exception):
    """Base exception for weeksync errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProviderError(WeekSyncError):
    """Exception raised when a remote calendar or task provider fails."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class CursorExpiredError(ProviderError):
    """Exception raised when an incremental sync cursor is no longer accepted."""


class CacheStoreError(WeekSyncError):
    """Exception raised when the durable cache cannot be written."""


class ConfigError(WeekSyncError):
    """Exception raised when configuration values are invalid."""
