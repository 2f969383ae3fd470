from datetime import date, timedelta

from task_query.config import FilterRules, FilterSet
from task_query.retrieval.filters import FilterPipeline, find_rule_conflicts
from task_query.types import DateRange, ExpandedKeyword, ParsedQuery, Task

TODAY = date(2025, 3, 12)


def _tasks() -> list[Task]:
    return [
        Task("1", "Fix login bug", "open", priority=1, due_date=TODAY - timedelta(days=1),
             tags=("backend",), source_path="Work/Projects/api.md"),
        Task("2", "Write release notes", "in_progress", priority=2, due_date=TODAY,
             tags=("docs",), source_path="Work/notes.md"),
        Task("3", "Buy groceries", "open", due_date=TODAY + timedelta(days=3),
             tags=("home",), source_path="Personal/todo.md"),
        Task("4", "Old archived bug", "completed", priority=1,
             tags=("backend",), source_path="Archive/2023.md"),
    ]


def test_exclusions_run_before_inclusions_and_properties() -> None:
    filters = FilterSet(
        exclusions=FilterRules(folders=["Archive"]),
        inclusions=FilterRules(folders=["Work"]),
    )
    outcome = FilterPipeline().run(
        _tasks(), ParsedQuery(original_query="p1", priority=[1]), today=TODAY, filters=filters
    )
    assert [task.id for task in outcome.tasks] == ["1"]
    assert outcome.stage_counts == {
        "total": 4,
        "after_exclusions": 3,
        "after_inclusions": 2,
        "after_properties": 1,
        "after_keywords": 1,
    }


def test_inclusions_are_ored_across_criteria() -> None:
    filters = FilterSet(inclusions=FilterRules(tags=["#home"], notes=["Work/notes"]))
    outcome = FilterPipeline().run(
        _tasks(), ParsedQuery(original_query=""), today=TODAY, filters=filters
    )
    assert [task.id for task in outcome.tasks] == ["2", "3"]


def test_properties_are_anded_and_each_ors_its_values() -> None:
    query = ParsedQuery(
        original_query="open or in progress due today or tomorrow",
        status=["open", "in_progress"],
        due_date=["today", "tomorrow", "overdue"],
    )
    outcome = FilterPipeline().run(_tasks(), query, today=TODAY)
    assert [task.id for task in outcome.tasks] == ["1", "2"]


def test_due_range_replaces_due_keywords() -> None:
    query = ParsedQuery(original_query="what now", due_date_range=DateRange("<=", TODAY))
    outcome = FilterPipeline().run(_tasks(), query, today=TODAY)
    assert [task.id for task in outcome.tasks] == ["1", "2"]


def test_keywords_match_any_expanded_variant_as_substring() -> None:
    query = ParsedQuery(
        original_query="defect",
        core_keywords=["defect"],
        expanded_keywords=[ExpandedKeyword("bug", "English", "defect")],
    )
    outcome = FilterPipeline().run(_tasks(), query, today=TODAY)
    assert [task.id for task in outcome.tasks] == ["1", "4"]


def test_conflicting_inclusion_is_reported_not_resolved() -> None:
    filters = FilterSet(
        exclusions=FilterRules(folders=["Work"], tags=["docs"]),
        inclusions=FilterRules(folders=["Work/Projects"], tags=["docs"]),
    )
    warnings = find_rule_conflicts(filters)
    assert len(warnings) == 2

    outcome = FilterPipeline().run(
        _tasks(), ParsedQuery(original_query=""), today=TODAY, filters=filters
    )
    assert outcome.tasks == []
    assert outcome.warnings == warnings


def test_tasks_are_never_mutated() -> None:
    tasks = _tasks()
    snapshot = list(tasks)
    FilterPipeline().run(tasks, ParsedQuery(original_query="bug", core_keywords=["bug"]))
    assert tasks == snapshot
