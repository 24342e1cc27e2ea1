"""Unit tests for weeksync.recurrence."""

import datetime
import zoneinfo

import pytest

from tests.helpers import dt
from weeksync.recurrence import (
    Frequency,
    RecurrenceRule,
    describe,
    extract_from_text,
    next_occurrence,
    parse_expression,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]

UTC = datetime.timezone.utc
WORKWEEK = ("MO", "TU", "WE", "TH", "FR")


class TestRecurrenceRule:
    def test_normalizes_weekdays_and_month_days(self):
        rule = RecurrenceRule("WEEKLY", by_weekday=("we", "MO", "WE"), by_month_day=(15, 1, 15))
        assert rule.frequency is Frequency.WEEKLY
        assert rule.by_weekday == ("MO", "WE")
        assert rule.by_month_day == (1, 15)

    def test_to_rrule(self):
        rule = RecurrenceRule(Frequency.WEEKLY, 2, ("WE", "MO"))
        assert rule.to_rrule() == "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE"
        assert str(RecurrenceRule(Frequency.DAILY)) == "RRULE:FREQ=DAILY"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"interval": 0},
            {"by_weekday": ("1MO",)},
            {"by_month_day": (0,)},
            {"by_month_day": (32,)},
        ],
    )
    def test_rejects_invalid_parts(self, kwargs):
        with pytest.raises(ValueError):
            RecurrenceRule(Frequency.MONTHLY, **kwargs)


class TestParseStructured:
    def test_rrule_prefix(self):
        assert parse_expression("RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR") == RecurrenceRule(
            Frequency.WEEKLY, 1, ("MO", "WE", "FR")
        )

    def test_bare_freq_is_case_insensitive(self):
        assert parse_expression("freq=monthly;interval=2;bymonthday=15,1") == RecurrenceRule(
            Frequency.MONTHLY, 2, (), (1, 15)
        )

    def test_wkst_is_ignored(self):
        assert parse_expression("RRULE:FREQ=WEEKLY;WKST=MO;BYDAY=TU") == RecurrenceRule(
            Frequency.WEEKLY, 1, ("TU",)
        )

    @pytest.mark.parametrize(
        "text",
        [
            "RRULE:FREQ=HOURLY",
            "RRULE:FREQ=WEEKLY;COUNT=3",
            "RRULE:FREQ=DAILY;UNTIL=20260101T000000Z",
            "RRULE:FREQ=MONTHLY;BYDAY=1MO",
            "RRULE:INTERVAL=2",
            "RRULE:FREQ=DAILY;INTERVAL=0",
            "RRULE:FREQ=DAILY;INTERVAL=x",
            "RRULE:FREQ=MONTHLY;BYMONTHDAY=32",
            "RRULE:FREQ=DAILY;FREQ=WEEKLY",
            "RRULE:FREQ",
            "RRULE:",
        ],
    )
    def test_unsupported_rules_are_not_recurrences(self, text):
        assert parse_expression(text) is None


class TestParseFreeText:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("every day", RecurrenceRule(Frequency.DAILY)),
            ("Daily", RecurrenceRule(Frequency.DAILY)),
            ("cada día", RecurrenceRule(Frequency.DAILY)),
            ("weekly", RecurrenceRule(Frequency.WEEKLY)),
            ("cada semana", RecurrenceRule(Frequency.WEEKLY)),
            ("every 2 weeks", RecurrenceRule(Frequency.WEEKLY, 2)),
            ("cada 3 días", RecurrenceRule(Frequency.DAILY, 3)),
            ("every other month", RecurrenceRule(Frequency.MONTHLY, 2)),
            ("mensual", RecurrenceRule(Frequency.MONTHLY)),
            ("yearly", RecurrenceRule(Frequency.YEARLY)),
            ("cada año", RecurrenceRule(Frequency.YEARLY)),
            ("weekdays", RecurrenceRule(Frequency.WEEKLY, 1, WORKWEEK)),
            ("laborables", RecurrenceRule(Frequency.WEEKLY, 1, WORKWEEK)),
            ("mon, wed", RecurrenceRule(Frequency.WEEKLY, 1, ("MO", "WE"))),
            ("Miércoles y Viernes", RecurrenceRule(Frequency.WEEKLY, 1, ("WE", "FR"))),
            (
                "every 2 weeks on tuesday and thursday",
                RecurrenceRule(Frequency.WEEKLY, 2, ("TU", "TH")),
            ),
            ("every month on day 1, 15", RecurrenceRule(Frequency.MONTHLY, 1, (), (1, 15))),
            ("cada mes el día 15", RecurrenceRule(Frequency.MONTHLY, 1, (), (15,))),
        ],
    )
    def test_phrases(self, text, expected):
        assert parse_expression(text) == expected

    @pytest.mark.parametrize("text", [None, "", "   ", "buy milk", "every 0 days"])
    def test_unrecognized_text_is_none(self, text):
        assert parse_expression(text) is None


class TestDescribe:
    def test_english(self):
        rule = parse_expression("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=WE,MO")
        assert describe(rule) == "every 2 weeks (Mon, Wed)"

    def test_spanish(self):
        assert describe("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE", "es") == "cada 2 semanas (lun, mie)"
        assert describe("RRULE:FREQ=DAILY", "es") == "cada dia"
        assert describe("RRULE:FREQ=YEARLY;INTERVAL=2", "es") == "cada 2 anos"

    def test_month_days_are_sorted(self):
        assert describe("RRULE:FREQ=MONTHLY;BYMONTHDAY=15,1") == "every month on day 1, 15"
        assert describe("RRULE:FREQ=MONTHLY;BYMONTHDAY=15,1", "es") == "cada mes el dia 1, 15"

    def test_unknown_locale_falls_back_to_english(self):
        assert describe("RRULE:FREQ=DAILY;INTERVAL=3", "fr") == "every 3 days"

    def test_unparseable_rule_has_no_description(self):
        assert describe("RRULE:FREQ=SECONDLY") is None
        assert describe(None) is None

    @pytest.mark.parametrize("locale", ["en", "es"])
    @pytest.mark.parametrize(
        "rule",
        [
            RecurrenceRule(Frequency.DAILY),
            RecurrenceRule(Frequency.DAILY, 3),
            RecurrenceRule(Frequency.DAILY, 1, ("SA", "SU")),
            RecurrenceRule(Frequency.WEEKLY),
            RecurrenceRule(Frequency.WEEKLY, 2, ("MO", "WE")),
            RecurrenceRule(Frequency.WEEKLY, 1, WORKWEEK),
            RecurrenceRule(Frequency.MONTHLY),
            RecurrenceRule(Frequency.MONTHLY, 3),
            RecurrenceRule(Frequency.MONTHLY, 1, (), (1, 15)),
            RecurrenceRule(Frequency.MONTHLY, 1, (), (-1,)),
            RecurrenceRule(Frequency.MONTHLY, 1, ("FR",), (13,)),
            RecurrenceRule(Frequency.YEARLY),
            RecurrenceRule(Frequency.YEARLY, 2),
        ],
    )
    def test_description_parses_back_to_same_rule(self, rule, locale):
        assert parse_expression(describe(rule, locale)) == rule


class TestNextOccurrence:
    RULE = "RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR"

    def test_after_monday_morning_is_wednesday(self):
        result = next_occurrence(self.RULE, dt(2026, 1, 5), dt(2026, 1, 5, 10), UTC)
        assert result.date() == datetime.date(2026, 1, 7)

    def test_after_friday_night_is_next_monday(self):
        result = next_occurrence(self.RULE, dt(2026, 1, 5), dt(2026, 1, 9, 23, 59), UTC)
        assert result.date() == datetime.date(2026, 1, 12)

    def test_strictly_after_reference(self):
        result = next_occurrence(self.RULE, dt(2026, 1, 5, 9), dt(2026, 1, 7, 9), UTC)
        assert result == dt(2026, 1, 9, 9)

    def test_without_anchor_series_starts_at_reference(self):
        result = next_occurrence("every day", None, dt(2026, 1, 5, 10), UTC)
        assert result == dt(2026, 1, 6, 10)

    def test_interval_counts_from_anchor(self):
        result = next_occurrence("every 2 weeks", dt(2026, 1, 5, 9), dt(2026, 1, 6), UTC)
        assert result == dt(2026, 1, 19, 9)

    def test_month_day_skips_short_months(self):
        result = next_occurrence(
            "RRULE:FREQ=MONTHLY;BYMONTHDAY=31", dt(2026, 1, 31, 8), dt(2026, 2, 1), UTC
        )
        assert result == dt(2026, 3, 31, 8)

    def test_keeps_wall_clock_across_dst(self):
        madrid = zoneinfo.ZoneInfo("Europe/Madrid")
        anchor = datetime.datetime(2026, 3, 23, 9, 0, tzinfo=madrid)
        result = next_occurrence("RRULE:FREQ=WEEKLY", anchor, anchor + datetime.timedelta(hours=3), madrid)
        assert result.date() == datetime.date(2026, 3, 30)
        assert (result.hour, result.minute) == (9, 0)
        assert result.utcoffset() == datetime.timedelta(hours=2)

    @pytest.mark.parametrize("rule", [None, "", "RRULE:FREQ=HOURLY", "nonsense"])
    def test_no_rule_means_no_occurrence(self, rule):
        assert next_occurrence(rule, dt(2026, 1, 5), dt(2026, 1, 5, 10), UTC) is None


class TestExtractFromText:
    @pytest.mark.parametrize(
        ("title", "clean", "expected"),
        [
            (
                "Gym every Monday and Wednesday",
                "Gym",
                RecurrenceRule(Frequency.WEEKLY, 1, ("MO", "WE")),
            ),
            (
                "Pay rent every month on day 1",
                "Pay rent",
                RecurrenceRule(Frequency.MONTHLY, 1, (), (1,)),
            ),
            ("Regar plantas cada 3 días", "Regar plantas", RecurrenceRule(Frequency.DAILY, 3)),
            (
                "Reunión los lunes y miércoles",
                "Reunión",
                RecurrenceRule(Frequency.WEEKLY, 1, ("MO", "WE")),
            ),
            ("Standup on Mondays", "Standup", RecurrenceRule(Frequency.WEEKLY, 1, ("MO",))),
            ("Daily standup", "standup", RecurrenceRule(Frequency.DAILY)),
            ("Review (every 2 weeks)", "Review", RecurrenceRule(Frequency.WEEKLY, 2)),
            ("Ir al mar cada semana", "Ir al mar", RecurrenceRule(Frequency.WEEKLY)),
            ("Walk in the sun every day", "Walk in the sun", RecurrenceRule(Frequency.DAILY)),
        ],
    )
    def test_phrase_is_stripped(self, title, clean, expected):
        assert extract_from_text(title) == (clean, expected)

    @pytest.mark.parametrize("title", ["Call Sam on Monday", "Buy milk", ""])
    def test_titles_without_recurrence_cue_are_unchanged(self, title):
        assert extract_from_text(title) == (title, None)
