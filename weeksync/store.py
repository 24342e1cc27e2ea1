"""JSON-backed durable cache with atomic writes."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from .exceptions import CacheStoreError
from .models import CACHE_VERSION, Cache

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_durable(path: PathLike) -> Cache:
    """Load the cache file, recovering from absence or corruption.

    A missing file yields an empty cache. A file that cannot be decoded, does
    not validate, or was written by a newer format version is logged and
    replaced by an empty cache rather than raising.

    Args:
        path: Cache file location

    Returns:
        Cache loaded from disk, or a fresh empty cache
    """
    cache_path = Path(path)
    if not cache_path.exists():
        logger.debug("Cache file not found; starting empty: %s", cache_path)
        return Cache()

    try:
        raw = cache_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        logger.warning("Cache file %s is not valid UTF-8 (%s); starting empty", cache_path, e.reason)
        return Cache()
    except OSError as e:
        logger.warning("Failed to read cache %s: %s", cache_path, e)
        return Cache()

    if not raw.strip():
        logger.warning("Cache file %s is empty; starting empty", cache_path)
        return Cache()

    try:
        cache = Cache.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "Cache file %s is corrupt (%d errors); starting empty", cache_path, e.error_count()
        )
        return Cache()

    if cache.version > CACHE_VERSION:
        logger.warning(
            "Cache file %s has unsupported version %d; starting empty", cache_path, cache.version
        )
        return Cache()

    logger.debug(
        "Loaded cache %s (%d calendars, %d task lists, synced_at=%s)",
        cache_path,
        len(cache.calendars),
        len(cache.tasks),
        cache.synced_at,
    )
    return cache


def save_durable(path: PathLike, cache: Cache) -> None:
    """Persist the cache atomically.

    Writes to a temporary file in the same directory, fsyncs it, then
    os.replace()s it into place so readers see either the old or the new
    content, never a partial file.

    Raises:
        CacheStoreError: If the file cannot be written
    """
    cache_path = Path(path)
    payload = cache.model_dump_json(indent=2)

    tmp_path = None
    try:
        cache_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            dir=cache_path.parent,
            prefix=f".{cache_path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as tf:
            tmp_path = Path(tf.name)
            tf.write(payload)
            tf.write("\n")
            tf.flush()
            os.fsync(tf.fileno())

        os.replace(tmp_path, cache_path)
    except OSError as exc:
        logger.error("Failed to persist cache to %s: %s", cache_path, exc)
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
        raise CacheStoreError(f"Failed to write cache {cache_path}: {exc}") from exc

    logger.debug("Persisted cache to %s (%d bytes)", cache_path, len(payload))
