"""Task completion helpers: next-instance planning and completion markers.

Creating the next task and patching remote events is left to the caller;
these functions only decide what should be created.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from .annotations import RRULE_KEY, Annotations
from .models import EventRecord, TaskEntry
from .recurrence import RecurrenceRule, next_occurrence, parse_expression
from .timezone_utils import ensure_aware

logger = logging.getLogger(__name__)

DONE_PREFIX = "✅"
RECURRING_PREFIX = "🔁"
END_OF_DAY = datetime.time(23, 59)


@dataclass(frozen=True)
class NextTaskPlan:
    """What the follow-up instance of a completed recurring task looks like."""

    title: str
    notes: str
    rule: RecurrenceRule
    due: datetime.datetime
    parent_id: Optional[str] = None
    start: Optional[datetime.datetime] = None
    end: Optional[datetime.datetime] = None

    @property
    def has_time_block(self) -> bool:
        return self.start is not None and self.end is not None


def completion_summary(summary: str, completed: bool) -> str:
    """Add or remove the completion marker at the start of an event summary."""
    marked = f"{DONE_PREFIX} "
    if completed:
        if summary.startswith(marked):
            return summary
        return marked + summary.strip()
    if summary.startswith(marked):
        return summary[len(marked) :]
    if summary.startswith(DONE_PREFIX):
        return summary[len(DONE_PREFIX) :].strip()
    return summary


def recurring_title(title: str, rule: Optional[RecurrenceRule]) -> str:
    """Prefix a title with the recurring marker once when a rule is present."""
    if rule is None or title.startswith(RECURRING_PREFIX):
        return title
    return f"{RECURRING_PREFIX} {title.strip()}"


def task_timing(
    task: TaskEntry, linked_event: Optional[EventRecord], zone: datetime.tzinfo
) -> tuple[Optional[datetime.datetime], datetime.timedelta]:
    """Return the series anchor and time-block length for a task.

    A timed linked event with positive length wins; otherwise the task's due
    value anchors the series with no time block.
    """
    if linked_event is not None and not linked_event.is_all_day:
        start, end = linked_event.times(zone)
        if end > start:
            return start, end - start
    if task.due is not None:
        return task.due.resolve(zone), datetime.timedelta(0)
    return None, datetime.timedelta(0)


def plan_next_instance(
    task: TaskEntry,
    linked_event: Optional[EventRecord],
    now: datetime.datetime,
    zone: datetime.tzinfo,
) -> Optional[NextTaskPlan]:
    """Decide the next instance of a recurring task that was just completed.

    Args:
        task: The completed task
        linked_event: Its calendar block, if any
        now: Completion instant; the next occurrence is strictly later
        zone: Zone the series is evaluated in

    Returns:
        Plan for the follow-up task, or None when the task does not recur
        or its rule cannot be understood
    """
    rule_text = task.recurrence_rule
    if not rule_text:
        return None
    rule = parse_expression(rule_text)
    if rule is None:
        logger.warning("Task %s has an unusable recurrence rule %r", task.id, rule_text)
        return None

    anchor, duration = task_timing(task, linked_event, zone)
    next_start = next_occurrence(rule, anchor, ensure_aware(now), zone)
    if next_start is None:
        logger.debug("Task %s: recurrence %s has no further occurrences", task.id, rule)
        return None

    start: Optional[datetime.datetime] = None
    end: Optional[datetime.datetime] = None
    if duration > datetime.timedelta(0):
        start = next_start
        end = next_start + duration
        due = end
    else:
        due = datetime.datetime.combine(next_start.date(), END_OF_DAY, tzinfo=zone)

    # A recurring calendar series already covers the next block.
    if linked_event is not None and linked_event.is_recurring:
        start = end = None

    notes = Annotations(Annotations.parse(task.notes).free_text).set(RRULE_KEY, rule.to_rrule())
    logger.debug("Task %s: next instance due %s", task.id, due.isoformat())
    return NextTaskPlan(
        title=task.title,
        notes=notes.encode(),
        rule=rule,
        due=due,
        parent_id=task.parent_id,
        start=start,
        end=end,
    )
