"""Structured key/value annotations embedded in event descriptions and task notes.

Remote calendars and task lists only offer a free-text field, so links between
a task and its calendar block (and the recurrence rule of a task) are stored as
trailing ``key=value`` lines. This module is the only place that knows about
that line format; everything else works with :class:`Annotations`.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Optional

ANNOTATION_PREFIX = "weeksync_"

TASK_ID_KEY = "weeksync_task_id"
EVENT_ID_KEY = "weeksync_event_id"
RRULE_KEY = "weeksync_rrule"
SECTION_KEY = "weeksync_section"

_LINE_RE = re.compile(r"^(" + re.escape(ANNOTATION_PREFIX) + r"[a-z0-9_]+)=(.*)$")


class Annotations:
    """Free text plus an ordered set of annotation values."""

    def __init__(self, free_text: str = "", values: Optional[dict[str, str]] = None):
        self.free_text = free_text.strip()
        self._values: dict[str, str] = dict(values or {})

    @classmethod
    def parse(cls, text: Optional[str]) -> Annotations:
        """Split text into free-text lines and annotation lines.

        The first occurrence of a key wins.
        """
        free_lines: list[str] = []
        values: dict[str, str] = {}
        for line in (text or "").splitlines():
            match = _LINE_RE.match(line.strip())
            if match:
                values.setdefault(match.group(1), match.group(2).strip())
            else:
                free_lines.append(line)
        return cls("\n".join(free_lines), values)

    def get(self, key: str) -> Optional[str]:
        value = self._values.get(key)
        return value if value else None

    def set(self, key: str, value: str) -> Annotations:
        if not key.startswith(ANNOTATION_PREFIX):
            raise ValueError(f"Annotation keys must start with {ANNOTATION_PREFIX!r}: {key!r}")
        self._values[key] = value.strip()
        return self

    def remove(self, key: str) -> Annotations:
        self._values.pop(key, None)
        return self

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._values.items())

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Annotations):
            return NotImplemented
        return self.free_text == other.free_text and self._values == other._values

    def __repr__(self) -> str:
        return f"Annotations(free_text={self.free_text!r}, values={self._values!r})"

    def encode(self) -> str:
        """Render free text followed by one ``key=value`` line per annotation."""
        lines = [f"{key}={value}" for key, value in self._values.items()]
        if self.free_text:
            lines.insert(0, self.free_text)
        return "\n".join(lines)


def strip_annotations(text: Optional[str]) -> str:
    """Return text with every annotation line removed."""
    return Annotations.parse(text).free_text


def annotate(text: Optional[str], key: str, value: str) -> str:
    """Return text with key set to value."""
    return Annotations.parse(text).set(key, value).encode()
