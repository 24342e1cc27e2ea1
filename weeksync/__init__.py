"""weeksync - offline week planner core.

Keeps a local snapshot of remote calendars and task lists in sync, builds
week views (free/busy slots, column layout, backlog) from it, and evaluates
recurrence rules for recurring tasks. Imports stay light here; use the
submodules directly.
"""

__version__ = "0.1.0"
