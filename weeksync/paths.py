"""Filesystem locations for weeksync configuration and cache files."""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "weeksync"
CONFIG_FILE_NAME = "config.yaml"
CACHE_FILE_NAME = "cache.json"


def _platform_config_root() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata)
    return Path.home() / ".config"


def config_dir() -> Path:
    """Return the configuration directory.

    XDG_CONFIG_HOME wins when set; an existing ~/.config/weeksync is honored
    on every platform; otherwise the platform's user config root is used.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME

    legacy = Path.home() / ".config" / APP_DIR_NAME
    if legacy.is_dir():
        return legacy

    return _platform_config_root() / APP_DIR_NAME


def cache_dir() -> Path:
    """Return the cache directory (XDG_CACHE_HOME aware)."""
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / APP_DIR_NAME
    return Path.home() / ".cache" / APP_DIR_NAME


def config_path() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def default_cache_path() -> Path:
    return cache_dir() / CACHE_FILE_NAME
