"""Multi-stage task filter pipeline."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from task_query.config import FilterRules, FilterSet, QueryConfig
from task_query.parsing.time_context import TimeContextResolver
from task_query.types import FilterOutcome, ParsedQuery, Task

logger = logging.getLogger(__name__)


class FilterPipeline:
    """Applies exclusions, inclusions, property predicates and keyword matching.

    Stage order is fixed:
    1. Global exclusions (folders, tags, notes) always win.
    2. Session inclusions, OR'd across folders, tags and notes, when any are set.
    3. Structured properties, AND'd together; each one ORs over its own values.
    4. Keyword relevance: any keyword is a substring of the task text.

    Every stage returns a new list; tasks are never modified.
    """

    def __init__(
        self,
        config: QueryConfig | None = None,
        *,
        resolver: TimeContextResolver | None = None,
    ) -> None:
        self.config = config or QueryConfig()
        self.resolver = resolver or TimeContextResolver(week_start=self.config.parser.week_start)

    def run(
        self,
        tasks: Sequence[Task],
        query: ParsedQuery,
        *,
        today: date | None = None,
        filters: FilterSet | None = None,
    ) -> FilterOutcome:
        today = today or date.today()
        filters = filters or self.config.filters
        counts: dict[str, int] = {"total": len(tasks)}
        warnings = find_rule_conflicts(filters)

        current = [task for task in tasks if not _matches_rules(task, filters.exclusions)]
        counts["after_exclusions"] = len(current)

        if not filters.inclusions.is_empty:
            current = [task for task in current if _matches_rules(task, filters.inclusions)]
        counts["after_inclusions"] = len(current)

        current = [task for task in current if self.matches_properties(task, query, today)]
        counts["after_properties"] = len(current)

        keywords = [keyword.lower() for keyword in query.keywords]
        if keywords:
            current = [task for task in current if _matches_keywords(task, keywords)]
        counts["after_keywords"] = len(current)

        for warning in warnings:
            logger.warning(warning)
        logger.debug(f"Filter stage counts: {counts}")
        return FilterOutcome(tasks=current, stage_counts=counts, warnings=warnings)

    def matches_properties(self, task: Task, query: ParsedQuery, today: date) -> bool:
        if query.priority and not _matches_priority(task, query.priority):
            return False
        if query.status and task.status_category not in query.status:
            return False
        if query.due_date_range is not None:
            if not query.due_date_range.contains(task.due_date):
                return False
        elif query.due_date:
            if not any(
                self.resolver.matches(keyword, task.due_date, today) for keyword in query.due_date
            ):
                return False
        if query.tags and not any(tag in task.tags for tag in query.tags):
            return False
        if query.folder and not _in_folder(task, query.folder):
            return False
        return True


def find_rule_conflicts(filters: FilterSet) -> list[str]:
    """Inclusion targets that an exclusion removes entirely."""
    exclusions, inclusions = filters.exclusions, filters.inclusions
    warnings: list[str] = []
    for folder in inclusions.folders:
        blocking = next(
            (excluded for excluded in exclusions.folders if _folder_contains(excluded, folder)),
            None,
        )
        if blocking is not None:
            warnings.append(
                f"Included folder '{folder}' is hidden by excluded folder '{blocking}'"
            )
    for tag in inclusions.tags:
        if tag in exclusions.tags:
            warnings.append(f"Included tag '#{tag}' is also excluded; exclusions take precedence")
    for note in inclusions.notes:
        if _normalize_note(note) in {_normalize_note(n) for n in exclusions.notes}:
            warnings.append(f"Included note '{note}' is also excluded; exclusions take precedence")
        elif any(_folder_contains(folder, note) for folder in exclusions.folders):
            warnings.append(f"Included note '{note}' lives in an excluded folder")
    return warnings


def _matches_rules(task: Task, rules: FilterRules) -> bool:
    if any(_in_folder(task, folder) for folder in rules.folders):
        return True
    if any(tag in task.tags for tag in rules.tags):
        return True
    note = _normalize_note(task.source_path)
    return any(_normalize_note(item) == note for item in rules.notes)


def _matches_priority(task: Task, values: list[int | str]) -> bool:
    for value in values:
        if value == "any" and task.priority is not None:
            return True
        if value == "none" and task.priority is None:
            return True
        if value == task.priority:
            return True
    return False


def _matches_keywords(task: Task, keywords: list[str]) -> bool:
    text = task.text.lower()
    return any(keyword in text for keyword in keywords)


def _in_folder(task: Task, folder: str) -> bool:
    return _folder_contains(folder, task.source_path)


def _folder_contains(folder: str, path: str) -> bool:
    prefix = folder.strip().strip("/").lower()
    target = path.strip().strip("/").lower()
    if not prefix:
        return False
    return target == prefix or target.startswith(prefix + "/")


def _normalize_note(path: str) -> str:
    cleaned = path.strip().strip("/").lower()
    return cleaned[:-3] if cleaned.endswith(".md") else cleaned
