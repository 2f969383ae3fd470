"""FastAPI entrypoint for task loading, queries, traces and metrics."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from task_query.agent.errors import ConfigurationError, QueryCancelledError
from task_query.agent.orchestrator import QueryOrchestrator
from task_query.agent.providers import create_optional_chat_model
from task_query.agent.semantic_parser import SemanticQueryParser
from task_query.agent.summarizer import TaskSummarizer
from task_query.config import FilterRules, ProviderSettings, QueryConfig, SortCriterion
from task_query.index.provider import InMemoryTaskIndex
from task_query.obs.tracing import TraceStore
from task_query.types import QueryResult

logger = logging.getLogger(__name__)


def _create_llm(settings: ProviderSettings) -> Any:
    return create_optional_chat_model(settings)


class TaskRecord(BaseModel):
    id: str | None = None
    text: str = Field(min_length=1)
    status: str = " "
    priority: int | None = Field(default=None, ge=1, le=4)
    due_date: date | None = None
    created_date: date | None = None
    tags: list[str] = Field(default_factory=list)
    source_path: str = ""
    source_line: int = Field(default=0, ge=0)


class TasksRequest(BaseModel):
    tasks: list[TaskRecord]


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    mode: Literal["search", "chat"] = "search"
    limit: int | None = Field(default=None, ge=1, le=1000)
    sort_order: list[SortCriterion] | None = None
    inclusions: FilterRules | None = None


app = FastAPI(title="Task Query Service", version="0.1.0")

_config = QueryConfig()
_settings = ProviderSettings()
_index = InMemoryTaskIndex(_config)
_trace_store = TraceStore()
_llm = _create_llm(_settings)
_orchestrator = QueryOrchestrator(
    index=_index,
    config=_config,
    semantic_parser=(
        SemanticQueryParser(llm=_llm, config=_config, model_label=_settings.model_label)
        if _llm is not None
        else None
    ),
    summarizer=(
        TaskSummarizer(llm=_llm, config=_config, model_label=_settings.model_label)
        if _llm is not None
        else None
    ),
    trace_store=_trace_store,
)


@app.get("/health")
def health() -> dict[str, Any]:
    snapshot = _index.snapshot()
    return {
        "status": "ok",
        "llm_configured": _llm is not None,
        "parser_mode": "semantic" if _llm is not None else "deterministic",
        "model": _settings.model_label if _llm is not None else None,
        "index_state": "ready" if _index.is_ready() else "not_ready",
        "task_count": len(snapshot),
        "snapshot_version": snapshot.version,
    }


@app.post("/tasks")
def load_tasks(request: TasksRequest) -> dict[str, Any]:
    snapshot = _index.load(record.model_dump() for record in request.tasks)
    return {"snapshot_version": snapshot.version, "task_count": len(snapshot)}


@app.post("/query")
def query(request: QueryRequest) -> dict[str, Any]:
    try:
        result = _orchestrator.run(
            request.query,
            mode=request.mode,
            limit=request.limit,
            sort_order=request.sort_order,
            inclusions=request.inclusions,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except QueryCancelledError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Query failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return result_payload(result)


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()


def result_payload(result: QueryResult) -> dict[str, Any]:
    return {
        "trace_id": result.trace_id,
        "latency_ms": result.latency_ms,
        "query": result.query.as_dict(),
        "tasks": [
            {
                "rank": item.rank,
                "score": item.score,
                "id": item.task.id,
                "text": item.task.text,
                "status": item.task.status_category,
                "priority": item.task.priority,
                "due_date": item.task.due_date.isoformat() if item.task.due_date else None,
                "tags": list(item.task.tags),
                "source_path": item.task.source_path,
                "source_line": item.task.source_line,
                "breakdown": item.breakdown.as_dict(),
            }
            for item in result.tasks
        ],
        "summary": result.summary,
        "recommended_task_ids": result.recommended_task_ids,
        "diagnostics": asdict(result.diagnostics),
    }
