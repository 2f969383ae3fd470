"""Deterministic conversion of time-context terms into due-date predicates."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta

from task_query.types import DateRange

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_RELATIVE = re.compile(r"^([+-]?)(\d+)([dwmy])$")

# Aliases accepted from `due:` syntax and from the semantic parser.
_TERM_ALIASES: dict[str, str] = {
    "all": "any",
    "any": "any",
    "none": "none",
    "today": "today",
    "tomorrow": "tomorrow",
    "yesterday": "yesterday",
    "overdue": "overdue",
    "od": "overdue",
    "future": "future",
    "week": "this-week",
    "this-week": "this-week",
    "thisweek": "this-week",
    "last-week": "last-week",
    "lastweek": "last-week",
    "next-week": "next-week",
    "nextweek": "next-week",
    "month": "this-month",
    "this-month": "this-month",
    "thismonth": "this-month",
    "last-month": "last-month",
    "lastmonth": "last-month",
    "next-month": "next-month",
    "nextmonth": "next-month",
    "year": "this-year",
    "this-year": "this-year",
    "thisyear": "this-year",
    "last-year": "last-year",
    "lastyear": "last-year",
    "next-year": "next-year",
    "nextyear": "next-year",
}

TIME_CONTEXT_TERMS: frozenset[str] = frozenset(
    value for value in _TERM_ALIASES.values() if value not in {"any", "none"}
)

_VAGUE_DESCRIPTIONS: dict[str, str] = {
    "today": "Tasks due today + overdue",
    "tomorrow": "Tasks due tomorrow or earlier",
    "yesterday": "Tasks due yesterday",
    "this-week": "Tasks due by the end of this week + overdue",
    "next-week": "Tasks due by the end of next week + overdue",
    "last-week": "Tasks due during last week",
    "this-month": "Tasks due by the end of this month + overdue",
    "next-month": "Tasks due by the end of next month + overdue",
    "last-month": "Tasks due during last month",
    "this-year": "Tasks due by the end of this year + overdue",
    "next-year": "Tasks due by the end of next year + overdue",
    "last-year": "Tasks due during last year",
}


@dataclass(frozen=True, slots=True)
class TimeResolution:
    """Result of resolving one term: either a due keyword or a date range."""

    term: str
    due_date: str | None
    due_date_range: DateRange | None
    description: str


def normalize_due_value(value: str) -> str | None:
    """Canonical form of a due keyword, ISO date or relative offset."""
    lowered = value.strip().lower().replace("_", "-").replace(" ", "-")
    if not lowered:
        return None
    if lowered in _TERM_ALIASES:
        return _TERM_ALIASES[lowered]
    if _ISO_DATE.match(lowered):
        try:
            date.fromisoformat(lowered)
        except ValueError:
            return None
        return lowered
    relative = _RELATIVE.match(lowered)
    if relative:
        sign = relative.group(1) or "+"
        return f"{sign}{relative.group(2)}{relative.group(3)}"
    return None


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class TimeContextResolver:
    """Turns named time terms into exact predicates.

    The semantic parser only names a term ("today", "next-week"); this class is
    the single place that converts names into dates, so a fixed `today` always
    yields the same filter.
    """

    def __init__(self, *, week_start: int = 0) -> None:
        self.week_start = week_start

    def resolve(self, term: str, *, is_vague: bool, today: date | None = None) -> TimeResolution:
        today = today or date.today()
        canonical = normalize_due_value(term)
        if canonical is None:
            raise ValueError(f"Unknown time term: {term}")

        if is_vague and canonical in _VAGUE_DESCRIPTIONS:
            return TimeResolution(
                term=canonical,
                due_date=None,
                due_date_range=self._vague_range(canonical, today),
                description=_VAGUE_DESCRIPTIONS[canonical],
            )

        return TimeResolution(
            term=canonical,
            due_date=canonical,
            due_date_range=None,
            description=self.describe(canonical, today),
        )

    def window(self, keyword: str, today: date | None = None) -> DateRange | None:
        """Date window matched by a due keyword; None for `any` and `none`."""
        today = today or date.today()
        canonical = normalize_due_value(keyword)
        if canonical is None or canonical in {"any", "none"}:
            return None
        if canonical == "today":
            return DateRange("=", today)
        if canonical == "tomorrow":
            return DateRange("=", today + timedelta(days=1))
        if canonical == "yesterday":
            return DateRange("=", today - timedelta(days=1))
        if canonical == "overdue":
            return DateRange("<", today)
        if canonical == "future":
            return DateRange(">", today)
        if canonical.endswith(("-week", "-month", "-year")):
            start, end = self._calendar_bounds(canonical, today)
            return DateRange("between", start, end)
        if _ISO_DATE.match(canonical):
            return DateRange("=", date.fromisoformat(canonical))
        return DateRange("=", self._shift(canonical, today))

    def matches(self, keyword: str, due: date | None, today: date | None = None) -> bool:
        canonical = normalize_due_value(keyword)
        if canonical == "any":
            return due is not None
        if canonical == "none":
            return due is None
        window = self.window(keyword, today)
        return window is not None and window.contains(due)

    def describe(self, keyword: str, today: date | None = None) -> str:
        canonical = normalize_due_value(keyword) or keyword
        if canonical == "any":
            return "Tasks with a due date"
        if canonical == "none":
            return "Tasks without a due date"
        window = self.window(canonical, today)
        if window is None:
            return canonical
        if window.operator == "between" and window.end is not None:
            return f"Tasks due {window.date.isoformat()} to {window.end.isoformat()}"
        return f"Tasks due {window.operator} {window.date.isoformat()}"

    def week_bounds(self, today: date) -> tuple[date, date]:
        offset = (today.weekday() - self.week_start) % 7
        start = today - timedelta(days=offset)
        return start, start + timedelta(days=6)

    def _vague_range(self, canonical: str, today: date) -> DateRange:
        if canonical == "today":
            return DateRange("<=", today)
        if canonical == "tomorrow":
            return DateRange("<=", today + timedelta(days=1))
        if canonical == "yesterday":
            return DateRange("=", today - timedelta(days=1))
        start, end = self._calendar_bounds(canonical, today)
        if canonical.startswith("last-"):
            return DateRange("between", start, end)
        return DateRange("<=", end)

    def _calendar_bounds(self, canonical: str, today: date) -> tuple[date, date]:
        period = canonical.split("-", 1)[1]
        shift = {"this": 0, "next": 1, "last": -1}[canonical.split("-", 1)[0]]
        if period == "week":
            start, end = self.week_bounds(today)
            delta = timedelta(days=7 * shift)
            return start + delta, end + delta
        if period == "month":
            first = add_months(today.replace(day=1), shift)
            last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
            return first, last
        year = today.year + shift
        return date(year, 1, 1), date(year, 12, 31)

    @staticmethod
    def _shift(canonical: str, today: date) -> date:
        match = _RELATIVE.match(canonical)
        if match is None:
            raise ValueError(f"Not a relative offset: {canonical}")
        amount = int(match.group(2)) * (-1 if match.group(1) == "-" else 1)
        unit = match.group(3)
        if unit == "d":
            return today + timedelta(days=amount)
        if unit == "w":
            return today + timedelta(weeks=amount)
        if unit == "m":
            return add_months(today, amount)
        return add_months(today, amount * 12)
