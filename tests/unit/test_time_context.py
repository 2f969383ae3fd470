from datetime import date

import pytest

from task_query.parsing.time_context import TimeContextResolver, normalize_due_value
from task_query.types import DateRange

# A Wednesday.
TODAY = date(2025, 3, 12)


def test_today_is_exact_for_specific_queries() -> None:
    resolution = TimeContextResolver().resolve("today", is_vague=False, today=TODAY)
    assert resolution.due_date == "today"
    assert resolution.due_date_range is None


def test_today_becomes_inclusive_range_for_vague_queries() -> None:
    resolution = TimeContextResolver().resolve("today", is_vague=True, today=TODAY)
    assert resolution.due_date is None
    assert resolution.due_date_range == DateRange("<=", TODAY)


def test_resolution_is_deterministic_for_fixed_today() -> None:
    resolver = TimeContextResolver()
    first = resolver.resolve("this week", is_vague=True, today=TODAY)
    second = resolver.resolve("this-week", is_vague=True, today=TODAY)
    assert first == second
    assert first.due_date_range == DateRange("<=", date(2025, 3, 16))


def test_next_week_window_is_seven_days_from_next_week_start() -> None:
    window = TimeContextResolver().window("next-week", TODAY)
    assert window == DateRange("between", date(2025, 3, 17), date(2025, 3, 23))
    assert window.end is not None
    assert (window.end - window.date).days == 6


def test_week_start_is_configurable() -> None:
    window = TimeContextResolver(week_start=6).window("this-week", TODAY)
    assert window == DateRange("between", date(2025, 3, 9), date(2025, 3, 15))


def test_last_month_is_a_closed_range_even_when_vague() -> None:
    resolution = TimeContextResolver().resolve("last-month", is_vague=True, today=TODAY)
    assert resolution.due_date_range == DateRange("between", date(2025, 2, 1), date(2025, 2, 28))


def test_overdue_and_future_stay_keywords_when_vague() -> None:
    resolver = TimeContextResolver()
    assert resolver.resolve("overdue", is_vague=True, today=TODAY).due_date == "overdue"
    assert resolver.resolve("future", is_vague=True, today=TODAY).due_date == "future"


def test_matches_handles_relative_offsets_and_special_values() -> None:
    resolver = TimeContextResolver()
    assert resolver.matches("+3d", date(2025, 3, 15), TODAY)
    assert resolver.matches("-1m", date(2025, 2, 12), TODAY)
    assert resolver.matches("overdue", date(2025, 3, 1), TODAY)
    assert not resolver.matches("overdue", TODAY, TODAY)
    assert resolver.matches("any", TODAY, TODAY)
    assert resolver.matches("none", None, TODAY)
    assert not resolver.matches("today", None, TODAY)


def test_normalize_due_value() -> None:
    assert normalize_due_value("Next Week") == "next-week"
    assert normalize_due_value("od") == "overdue"
    assert normalize_due_value("3d") == "+3d"
    assert normalize_due_value("2025-02-30") is None
    assert normalize_due_value("someday") is None


def test_unknown_term_raises() -> None:
    with pytest.raises(ValueError):
        TimeContextResolver().resolve("someday", is_vague=False, today=TODAY)
