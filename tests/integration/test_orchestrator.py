import json
import threading
from datetime import date, timedelta
from typing import Any

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from task_query.agent.errors import QueryCancelledError
from task_query.agent.orchestrator import QueryOrchestrator
from task_query.agent.semantic_parser import SemanticQueryParser
from task_query.agent.summarizer import TaskSummarizer
from task_query.config import FilterRules, QueryConfig
from task_query.index.provider import InMemoryTaskIndex
from task_query.obs.tracing import TraceStore
from task_query.types import DateRange

TODAY = date(2025, 3, 12)


class _FailingChain:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    def invoke(self, variables: dict[str, Any]) -> Any:
        self.calls += 1
        raise self.exc


class _CancellingChain:
    """Sets the cancel event while the request is in flight."""

    def __init__(self, event: threading.Event, content: str) -> None:
        self.event = event
        self.content = content

    def invoke(self, variables: dict[str, Any]) -> str:
        self.event.set()
        return self.content


def _records() -> list[dict[str, Any]]:
    overdue = (TODAY - timedelta(days=3)).isoformat()
    return [
        {"id": "od-1", "text": "Renew TLS certificate", "priority": 1, "due_date": overdue},
        {"id": "od-2", "text": "Pay supplier invoice", "priority": 1, "due_date": overdue},
        {"id": "bug-1", "text": "Fix login bug", "priority": 2, "due_date": TODAY.isoformat()},
        {"id": "bug-2", "text": "Investigate payment defect", "priority": 3},
        {"id": "doc-1", "text": "Write onboarding guide", "priority": 4,
         "due_date": (TODAY + timedelta(days=20)).isoformat()},
        {"id": "done-1", "text": "Correct typo in README", "status": "x", "priority": 1},
        {"id": "home-1", "text": "Buy groceries", "tags": ["home"],
         "due_date": (TODAY + timedelta(days=2)).isoformat(), "source_path": "Personal/todo.md"},
    ]


def _index() -> InMemoryTaskIndex:
    index = InMemoryTaskIndex()
    index.load(_records())
    return index


def _expansion_payload() -> str:
    return json.dumps(
        {
            "coreKeywords": ["fix", "bug"],
            "keywordExpansions": [
                {"core": "fix", "language": "English", "variants": ["fix", "repair", "resolve"]},
                {"core": "fix", "language": "Swedish", "variants": ["fixa", "laga", "åtgärda"]},
                {"core": "bug", "language": "English", "variants": ["bug", "defect", "error"]},
                {"core": "bug", "language": "Swedish", "variants": ["fel", "bugg", "defekt"]},
            ],
            "priority": [],
            "status": [],
            "timeContext": None,
            "dueDate": None,
            "isVague": False,
            "tags": [],
            "folder": None,
        }
    )


def test_scenario_a_properties_only_query() -> None:
    orchestrator = QueryOrchestrator(index=_index())
    result = orchestrator.run("p1 overdue", today=TODAY)

    assert {item.task.id for item in result.tasks} == {"od-1", "od-2"}
    for item in result.tasks:
        assert item.breakdown.activations["relevance"] == 0
        assert item.breakdown.activations["due_date"] == 1
        assert item.breakdown.activations["priority"] == 1
        assert item.breakdown.relevance * item.breakdown.activations["relevance"] == 0
    assert result.diagnostics.parser_tier == "deterministic"
    assert result.diagnostics.top_breakdown is not None


def test_scenario_b_semantic_expansion_statistics() -> None:
    config = QueryConfig(
        parser={"languages": ["English", "Swedish"], "expansions_per_language": 3}
    )
    parser = SemanticQueryParser(
        llm=FakeListChatModel(responses=[_expansion_payload()]), config=config
    )
    orchestrator = QueryOrchestrator(index=_index(), config=config, semantic_parser=parser)
    result = orchestrator.run("fix bug", today=TODAY)

    assert result.diagnostics.parser_tier == "semantic"
    assert len(result.query.expanded_keywords) == len(result.query.core_keywords) * 3 * 2
    assert result.diagnostics.expansion["languages_used"] == ["English", "Swedish"]
    assert result.diagnostics.expansion["target_per_core"] == 6
    ids = [item.task.id for item in result.tasks]
    assert ids[0] == "bug-1"
    assert "bug-2" in ids


def test_scenario_c_vague_query_uses_due_range() -> None:
    orchestrator = QueryOrchestrator(index=_index())
    result = orchestrator.run("what should I do today", today=TODAY)

    assert result.query.is_vague
    assert result.query.due_date_range == DateRange("<=", TODAY)
    assert result.query.due_date == []
    assert {item.task.id for item in result.tasks} == {"od-1", "od-2", "bug-1"}


def test_scenario_d_parser_failure_falls_back_to_deterministic() -> None:
    chain = _FailingChain(ConnectionError("connection refused"))
    parser = SemanticQueryParser(llm=None, chain=chain)
    orchestrator = QueryOrchestrator(index=_index(), semantic_parser=parser)
    result = orchestrator.run("fix bug", today=TODAY)

    assert chain.calls == 1
    assert result.diagnostics.parser_tier == "deterministic"
    assert [item.task.id for item in result.tasks] == ["bug-1"]
    assert result.diagnostics.errors[0]["category"] == "connectivity"
    assert result.diagnostics.errors[0]["fallback_used"] == "deterministic"
    assert result.diagnostics.fallback_messages == [
        "AI parser failed, used simple search fallback (1 tasks found)"
    ]


def test_results_survive_summary_failure() -> None:
    baseline = QueryOrchestrator(index=_index()).run("p1", today=TODAY)
    assert baseline.tasks

    summarizer = TaskSummarizer(llm=None, chain=_FailingChain(Exception("Error code: 429")))
    orchestrator = QueryOrchestrator(index=_index(), summarizer=summarizer)
    result = orchestrator.run("p1", mode="chat", today=TODAY)

    assert [item.task.id for item in result.tasks] == [item.task.id for item in baseline.tasks]
    assert result.summary is None
    assert result.diagnostics.summary_status == "failed"
    assert result.diagnostics.errors[-1]["category"] == "rate_limit"
    assert "search results without a summary" in result.diagnostics.fallback_messages[-1]


def test_summary_recommends_referenced_tasks() -> None:
    answer = "Start with [TASK_2], then [TASK_1]. Ignore [TASK_99]."
    summarizer = TaskSummarizer(llm=FakeListChatModel(responses=[answer]))
    orchestrator = QueryOrchestrator(index=_index(), summarizer=summarizer)
    result = orchestrator.run("p1 overdue", mode="chat", today=TODAY)

    assert result.diagnostics.summary_status == "ok"
    assert result.summary == answer
    assert result.recommended_task_ids == [result.tasks[1].task.id, result.tasks[0].task.id]


def test_cancellation_during_summary_keeps_stage_a_results() -> None:
    event = threading.Event()
    summarizer = TaskSummarizer(llm=None, chain=_CancellingChain(event, "[TASK_1]"))
    orchestrator = QueryOrchestrator(index=_index(), summarizer=summarizer)
    result = orchestrator.run("p1 overdue", mode="chat", today=TODAY, cancel_event=event)

    assert len(result.tasks) == 2
    assert result.summary is None
    assert result.diagnostics.summary_status == "cancelled"


def test_cancellation_before_parsing_raises() -> None:
    event = threading.Event()
    event.set()
    with pytest.raises(QueryCancelledError):
        QueryOrchestrator(index=_index()).run("fix bug", today=TODAY, cancel_event=event)


def test_index_not_ready_is_disclosed_not_an_error() -> None:
    orchestrator = QueryOrchestrator(index=InMemoryTaskIndex(ready=False))
    result = orchestrator.run("fix bug", today=TODAY)

    assert result.tasks == []
    assert result.diagnostics.index_state == "not_ready"
    assert result.diagnostics.fallback_messages


def test_repeated_query_hits_cache_until_index_reloads() -> None:
    index = _index()
    orchestrator = QueryOrchestrator(index=index)
    first = orchestrator.run("fix bug", today=TODAY)
    second = orchestrator.run("fix bug", today=TODAY)
    assert not first.diagnostics.cache_hit
    assert second.diagnostics.cache_hit

    index.load(_records()[:2])
    third = orchestrator.run("fix bug", today=TODAY)
    assert not third.diagnostics.cache_hit
    assert third.tasks == []


def test_inclusions_limit_and_trace_are_applied() -> None:
    store = TraceStore()
    orchestrator = QueryOrchestrator(index=_index(), trace_store=store)
    result = orchestrator.run(
        "groceries", inclusions=FilterRules(folders=["Personal"]), today=TODAY, limit=5
    )

    assert [item.task.id for item in result.tasks] == ["home-1"]
    assert store.get(result.trace_id).result_count == 1
    assert result.diagnostics.stage_counts["after_inclusions"] == 1


def test_per_request_overrides_do_not_evict_each_other() -> None:
    orchestrator = QueryOrchestrator(index=_index())
    orchestrator.run("fix", sort_order=["priority"], today=TODAY)
    orchestrator.run("fix", sort_order=["due_date"], today=TODAY)
    orchestrator.run("fix", inclusions=FilterRules(folders=["Personal"]), today=TODAY)

    again = orchestrator.run("fix", sort_order=["priority"], today=TODAY)
    assert again.diagnostics.cache_hit
