"""Recurrence rules: parsing, description and next-occurrence evaluation.

Rules are limited to FREQ DAILY/WEEKLY/MONTHLY/YEARLY with optional INTERVAL,
BYDAY (plain weekday codes) and BYMONTHDAY. They can be written as RRULE
text or as short English/Spanish phrases ("every 2 weeks on mon, wed",
"cada mes el dia 15"). Evaluation is delegated to dateutil's rrule and only
ever produces one occurrence per call.
"""

from __future__ import annotations

import datetime
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from dateutil import tz
from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, YEARLY, rrule

from .exceptions import WeekSyncError
from .timezone_utils import ensure_aware

logger = logging.getLogger(__name__)


class RecurrenceParseError(WeekSyncError):
    """Error parsing an RRULE string."""


class Frequency(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
WORKWEEK = ("MO", "TU", "WE", "TH", "FR")

_DATEUTIL_FREQ = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
    Frequency.YEARLY: YEARLY,
}
_DATEUTIL_WEEKDAY = {"MO": MO, "TU": TU, "WE": WE, "TH": TH, "FR": FR, "SA": SA, "SU": SU}

# Ignored when present; everything else outside the supported subset is rejected.
_IGNORED_RRULE_KEYS = {"WKST"}


@dataclass(frozen=True)
class RecurrenceRule:
    """Normalized recurrence rule."""

    frequency: Frequency
    interval: int = 1
    by_weekday: tuple[str, ...] = field(default=())
    by_month_day: tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "frequency", Frequency(self.frequency))
        if self.interval < 1:
            raise ValueError(f"interval must be >= 1, got {self.interval}")

        weekdays = {code.upper() for code in self.by_weekday}
        unknown = weekdays.difference(WEEKDAY_CODES)
        if unknown:
            raise ValueError(f"Unknown weekday codes: {sorted(unknown)}")
        object.__setattr__(
            self, "by_weekday", tuple(code for code in WEEKDAY_CODES if code in weekdays)
        )

        month_days = sorted(set(self.by_month_day))
        for day in month_days:
            if day == 0 or not -31 <= day <= 31:
                raise ValueError(f"Month day out of range: {day}")
        object.__setattr__(self, "by_month_day", tuple(month_days))

    def to_rrule(self) -> str:
        """Render as ``RRULE:FREQ=...`` text."""
        parts = [f"FREQ={self.frequency.value}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_weekday:
            parts.append("BYDAY=" + ",".join(self.by_weekday))
        if self.by_month_day:
            parts.append("BYMONTHDAY=" + ",".join(str(day) for day in self.by_month_day))
        return "RRULE:" + ";".join(parts)

    def __str__(self) -> str:
        return self.to_rrule()


RuleLike = Union[RecurrenceRule, str, None]


def is_structured(text: str) -> bool:
    upper = text.strip().upper()
    return upper.startswith("RRULE:") or upper.startswith("FREQ=")


def parse_rrule_string(rrule_string: str) -> RecurrenceRule:
    """Parse RRULE text (with or without the ``RRULE:`` prefix).

    Args:
        rrule_string: e.g. "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE"

    Returns:
        Normalized rule

    Raises:
        RecurrenceParseError: If the text is malformed or uses unsupported parts
    """
    body = rrule_string.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:") :]
    if not body:
        raise RecurrenceParseError("Empty RRULE string")

    params: dict[str, str] = {}
    for part in body.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise RecurrenceParseError(f"Malformed RRULE part {part!r}")
        key, value = part.split("=", 1)
        key = key.strip().upper()
        if key in params:
            raise RecurrenceParseError(f"Duplicate RRULE part {key}")
        params[key] = value.strip().upper()

    if "FREQ" not in params:
        raise RecurrenceParseError("RRULE missing required FREQ parameter")
    try:
        frequency = Frequency(params.pop("FREQ"))
    except ValueError as e:
        raise RecurrenceParseError(f"Unsupported frequency in {rrule_string!r}") from e

    interval = 1
    by_weekday: tuple[str, ...] = ()
    by_month_day: tuple[int, ...] = ()
    try:
        if "INTERVAL" in params:
            interval = int(params.pop("INTERVAL"))
        if "BYDAY" in params:
            by_weekday = tuple(code.strip() for code in params.pop("BYDAY").split(","))
        if "BYMONTHDAY" in params:
            by_month_day = tuple(int(day) for day in params.pop("BYMONTHDAY").split(","))
    except ValueError as e:
        raise RecurrenceParseError(f"Invalid RRULE value in {rrule_string!r}") from e

    unsupported = set(params).difference(_IGNORED_RRULE_KEYS)
    if unsupported:
        raise RecurrenceParseError(f"Unsupported RRULE parts: {', '.join(sorted(unsupported))}")

    try:
        return RecurrenceRule(frequency, interval, by_weekday, by_month_day)
    except ValueError as e:
        raise RecurrenceParseError(str(e)) from e


# Free-text phrases. Matching runs on lowercased, accent-stripped text.

_DAY_WORDS = {
    "monday": "MO", "mondays": "MO", "mon": "MO",
    "lunes": "MO", "lun": "MO",
    "tuesday": "TU", "tuesdays": "TU", "tue": "TU", "tues": "TU",
    "martes": "TU", "mar": "TU",
    "wednesday": "WE", "wednesdays": "WE", "wed": "WE",
    "miercoles": "WE", "mie": "WE",
    "thursday": "TH", "thursdays": "TH", "thu": "TH", "thur": "TH", "thurs": "TH",
    "jueves": "TH", "jue": "TH",
    "friday": "FR", "fridays": "FR", "fri": "FR",
    "viernes": "FR", "vie": "FR",
    "saturday": "SA", "saturdays": "SA", "sat": "SA",
    "sabado": "SA", "sabados": "SA", "sab": "SA",
    "sunday": "SU", "sundays": "SU", "sun": "SU",
    "domingo": "SU", "domingos": "SU", "dom": "SU",
}  # fmt: skip

_PLURAL_DAY_WORDS = {
    "mondays", "tuesdays", "wednesdays", "thursdays", "fridays", "saturdays", "sundays",
    "sabados", "domingos",
}  # fmt: skip

# Abbreviations double as ordinary words ("mar", "sun"), so titles only
# recognise full weekday names.
_SHORT_DAY_WORDS = {
    "mon", "lun", "tue", "tues", "mar", "wed", "mie", "thu", "thur", "thurs",
    "jue", "fri", "vie", "sat", "sab", "sun", "dom",
}  # fmt: skip

_CUE_WORDS = {"every", "each", "cada", "todos", "todas"}
_ARTICLE_CUES = {"los", "las"}
_LEADING_CONNECTORS = {"on", "los", "las", "el", "the"}
_JOINING_CONNECTORS = {"and", "y", "e"}

_UNIT_FREQUENCY = {
    "day": Frequency.DAILY, "days": Frequency.DAILY,
    "dia": Frequency.DAILY, "dias": Frequency.DAILY,
    "week": Frequency.WEEKLY, "weeks": Frequency.WEEKLY,
    "semana": Frequency.WEEKLY, "semanas": Frequency.WEEKLY,
    "month": Frequency.MONTHLY, "months": Frequency.MONTHLY,
    "mes": Frequency.MONTHLY, "meses": Frequency.MONTHLY,
    "year": Frequency.YEARLY, "years": Frequency.YEARLY,
    "ano": Frequency.YEARLY, "anos": Frequency.YEARLY,
}  # fmt: skip

_INTERVAL_RE = re.compile(
    r"\b(?:every|each|cada)\s+(\d+|other|otro|otra)\s+"
    r"(days?|weeks?|months?|years?|dias?|semanas?|mes(?:es)?|anos?)\b"
)

_MONTH_DAY_RE = re.compile(
    r"\b(?:on\s+(?:the\s+)?days?|el\s+dia|los\s+dias)\s+"
    r"(-?\d{1,2}(?:\s*(?:,|and|y)\s*-?\d{1,2})*)\b"
)

_WORKWEEK_PATTERNS = [
    re.compile(r"\bweekdays?\b"),
    re.compile(r"\b(?:dias\s+)?laborables?\b"),
    re.compile(r"\bentre\s+semana\b"),
]

_KEYWORD_PATTERNS: list[tuple[Frequency, list[re.Pattern[str]]]] = [
    (
        Frequency.DAILY,
        [
            re.compile(r"\bdaily\b"),
            re.compile(r"\b(?:every|each)\s+day\b"),
            re.compile(r"\bcada\s+dia\b"),
            re.compile(r"\bdiari[oa]s?\b"),
            re.compile(r"\btodos\s+los\s+dias\b"),
        ],
    ),
    (
        Frequency.WEEKLY,
        [
            re.compile(r"\bweekly\b"),
            re.compile(r"\b(?:every|each)\s+week\b"),
            re.compile(r"\bcada\s+semana\b"),
            re.compile(r"\bsemanal(?:es|mente)?\b"),
            re.compile(r"\btodas\s+las\s+semanas\b"),
        ],
    ),
    (
        Frequency.MONTHLY,
        [
            re.compile(r"\bmonthly\b"),
            re.compile(r"\b(?:every|each)\s+month\b"),
            re.compile(r"\bcada\s+mes\b"),
            re.compile(r"\bmensual(?:es|mente)?\b"),
            re.compile(r"\btodos\s+los\s+meses\b"),
        ],
    ),
    (
        Frequency.YEARLY,
        [
            re.compile(r"\b(?:yearly|annually)\b"),
            re.compile(r"\b(?:every|each)\s+year\b"),
            re.compile(r"\bcada\s+ano\b"),
            re.compile(r"\banual(?:es|mente)?\b"),
            re.compile(r"\btodos\s+los\s+anos\b"),
        ],
    ),
]

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _fold(text: str) -> tuple[str, list[int]]:
    """Lowercase and strip accents, keeping a map back to original indexes."""
    chars: list[str] = []
    origin: list[int] = []
    for index, ch in enumerate(text):
        for part in unicodedata.normalize("NFKD", ch.lower()):
            if unicodedata.combining(part):
                continue
            chars.append(part)
            origin.append(index)
    return "".join(chars), origin


@dataclass
class _PhraseMatch:
    rule: Optional[RecurrenceRule]
    has_cue: bool
    spans: list[tuple[int, int]]


def _match_phrase(folded: str, short_days: bool = True) -> _PhraseMatch:
    spans: list[tuple[int, int]] = []
    frequency: Optional[Frequency] = None
    interval = 1
    weekdays: set[str] = set()
    month_days: list[int] = []
    has_cue = False

    interval_match = _INTERVAL_RE.search(folded)
    if interval_match:
        count = interval_match.group(1)
        interval = 2 if count in ("other", "otro", "otra") else int(count)
        frequency = _UNIT_FREQUENCY[interval_match.group(2)]
        spans.append(interval_match.span())
        has_cue = True

    for pattern in _WORKWEEK_PATTERNS:
        workweek_match = pattern.search(folded)
        if workweek_match:
            spans.append(workweek_match.span())
            weekdays.update(WORKWEEK)
            frequency = frequency or Frequency.WEEKLY
            has_cue = True

    for keyword_frequency, patterns in _KEYWORD_PATTERNS:
        for pattern in patterns:
            keyword_match = pattern.search(folded)
            if keyword_match:
                spans.append(keyword_match.span())
                has_cue = True
                if frequency is None:
                    frequency = keyword_frequency

    month_day_match = _MONTH_DAY_RE.search(folded)
    if month_day_match:
        spans.append(month_day_match.span())
        month_days = [int(n) for n in re.findall(r"-?\d+", month_day_match.group(1))]
        frequency = frequency or Frequency.MONTHLY

    tokens = list(_TOKEN_RE.finditer(folded))
    for position, token in enumerate(tokens):
        word = token.group()
        if word in _CUE_WORDS:
            has_cue = True
            spans.append(token.span())
        elif word in _DAY_WORDS and (short_days or word not in _SHORT_DAY_WORDS):
            weekdays.add(_DAY_WORDS[word])
            spans.append(token.span())
            if word in _PLURAL_DAY_WORDS:
                has_cue = True
            if position > 0 and tokens[position - 1].group() in _ARTICLE_CUES:
                has_cue = True

    if weekdays and frequency is None:
        frequency = Frequency.WEEKLY

    if frequency is None:
        return _PhraseMatch(None, has_cue, spans)

    try:
        rule = RecurrenceRule(frequency, interval, tuple(weekdays), tuple(month_days))
    except ValueError:
        logger.debug("Recurrence phrase produced invalid rule: %r", folded)
        return _PhraseMatch(None, has_cue, spans)
    return _PhraseMatch(rule, has_cue, spans)


def parse_expression(text: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse structured RRULE text or a free-text phrase.

    Bare weekday names ("mon, wed") are accepted here since the whole input
    is known to be a recurrence expression.

    Args:
        text: Expression such as "RRULE:FREQ=DAILY", "every 2 weeks" or
            "cada lunes y jueves"

    Returns:
        Normalized rule, or None if the text is empty or not understood
    """
    if not text or not text.strip():
        return None

    if is_structured(text):
        try:
            return parse_rrule_string(text)
        except RecurrenceParseError as e:
            logger.debug("Rejected recurrence rule %r: %s", text, e)
            return None

    folded, _ = _fold(text.strip())
    return _match_phrase(folded).rule


def extract_from_text(title: str) -> tuple[str, Optional[RecurrenceRule]]:
    """Find a recurrence phrase inside a title and strip it.

    Unlike :func:`parse_expression`, an explicit recurrence cue ("every",
    "cada", "weekly", "los lunes", ...) is required, so titles that merely
    mention a weekday are left alone.

    Returns:
        (cleaned title, rule); the title is returned unchanged with None when
        no recurrence phrase is found
    """
    if not title or not title.strip():
        return title, None

    folded, origin = _fold(title)
    match = _match_phrase(folded, short_days=False)
    if match.rule is None or not match.has_cue:
        return title, None

    removed = [False] * len(folded)
    for start, end in match.spans:
        for i in range(start, end):
            removed[i] = True

    # Drop connectors that only glue removed words together.
    tokens = list(_TOKEN_RE.finditer(folded))

    def _is_removed(token: re.Match[str]) -> bool:
        return removed[token.start()]

    for position, token in enumerate(tokens):
        word = token.group()
        if _is_removed(token):
            continue
        following = tokens[position + 1] if position + 1 < len(tokens) else None
        preceding = tokens[position - 1] if position > 0 else None
        next_removed = following is not None and _is_removed(following)
        prev_removed = preceding is not None and _is_removed(preceding)
        if (word in _LEADING_CONNECTORS and next_removed) or (
            word in _JOINING_CONNECTORS and next_removed and prev_removed
        ):
            for i in range(token.start(), token.end()):
                removed[i] = True

    # Separators between two removed words go too.
    removed_tokens = [t for t in tokens if removed[t.start()]]
    for left, right in zip(removed_tokens, removed_tokens[1:]):
        gap = folded[left.end() : right.start()]
        if not gap.strip(" ,;/&"):
            for i in range(left.end(), right.start()):
                removed[i] = True

    dropped = {origin[i] for i, flag in enumerate(removed) if flag}
    cleaned = "".join(ch for i, ch in enumerate(title) if i not in dropped)
    cleaned = re.sub(r"\(\s*\)|\[\s*\]", "", cleaned)
    cleaned = " ".join(cleaned.split()).strip(" ,;:-")
    return cleaned, match.rule


_LABELS = {
    "en": {
        "weekday": {
            "MO": "Mon", "TU": "Tue", "WE": "Wed", "TH": "Thu",
            "FR": "Fri", "SA": "Sat", "SU": "Sun",
        },
        "unit": {
            Frequency.DAILY: ("day", "days"),
            Frequency.WEEKLY: ("week", "weeks"),
            Frequency.MONTHLY: ("month", "months"),
            Frequency.YEARLY: ("year", "years"),
        },
        "every": "every",
        "month_day": "on day",
    },
    "es": {
        "weekday": {
            "MO": "lun", "TU": "mar", "WE": "mie", "TH": "jue",
            "FR": "vie", "SA": "sab", "SU": "dom",
        },
        "unit": {
            Frequency.DAILY: ("dia", "dias"),
            Frequency.WEEKLY: ("semana", "semanas"),
            Frequency.MONTHLY: ("mes", "meses"),
            Frequency.YEARLY: ("ano", "anos"),
        },
        "every": "cada",
        "month_day": "el dia",
    },
}  # fmt: skip


def _coerce_rule(rule: RuleLike) -> Optional[RecurrenceRule]:
    if isinstance(rule, RecurrenceRule):
        return rule
    return parse_expression(rule)


def describe(rule: RuleLike, locale: str = "en") -> Optional[str]:
    """Render a rule as a short phrase, e.g. "every 2 weeks (Mon, Wed)".

    The phrase parses back to the same rule with :func:`parse_expression`.

    Args:
        rule: Rule or rule text
        locale: "en" or "es"; unknown locales fall back to English

    Returns:
        Description, or None when the rule is empty or not understood
    """
    parsed = _coerce_rule(rule)
    if parsed is None:
        return None

    labels = _LABELS.get(locale, _LABELS["en"])
    singular, plural = labels["unit"][parsed.frequency]
    if parsed.interval == 1:
        text = f"{labels['every']} {singular}"
    else:
        text = f"{labels['every']} {parsed.interval} {plural}"

    if parsed.by_month_day:
        text += f" {labels['month_day']} " + ", ".join(str(d) for d in parsed.by_month_day)
    if parsed.by_weekday:
        text += " (" + ", ".join(labels["weekday"][code] for code in parsed.by_weekday) + ")"
    return text


def next_occurrence(
    rule: RuleLike,
    anchor: Optional[datetime.datetime],
    after: datetime.datetime,
    zone: Optional[datetime.tzinfo] = None,
) -> Optional[datetime.datetime]:
    """Return the first occurrence strictly after ``after``.

    The series starts at ``anchor``, or at ``after`` itself when no anchor is
    known. Wall-clock times are kept in ``zone`` across DST changes.

    Args:
        rule: Rule or rule text
        anchor: Series start (first occurrence candidate)
        after: Reference instant; the result is strictly later
        zone: Evaluation timezone; defaults to the host zone

    Returns:
        Next occurrence in zone, or None for an empty/unparseable rule
    """
    parsed = _coerce_rule(rule)
    if parsed is None:
        return None

    zone = zone or tz.tzlocal()
    after_local = ensure_aware(after).astimezone(zone)
    dtstart = ensure_aware(anchor).astimezone(zone) if anchor is not None else after_local

    series = rrule(
        _DATEUTIL_FREQ[parsed.frequency],
        dtstart=dtstart,
        interval=parsed.interval,
        byweekday=[_DATEUTIL_WEEKDAY[code] for code in parsed.by_weekday] or None,
        bymonthday=list(parsed.by_month_day) or None,
    )
    return series.after(after_local, inc=False)
