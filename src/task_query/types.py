"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

DateOperator = Literal["<", "<=", "=", ">=", ">", "between"]
PriorityValue = int | str
ParserTier = Literal["semantic", "syntax", "deterministic"]
SummaryStatus = Literal["skipped", "ok", "failed", "cancelled"]
QueryMode = Literal["search", "chat"]


@dataclass(frozen=True, slots=True)
class Task:
    """One task line from the index. Never mutated by the pipeline."""

    id: str
    text: str
    status_category: str
    status_symbol: str = " "
    priority: int | None = None
    due_date: date | None = None
    created_date: date | None = None
    tags: tuple[str, ...] = ()
    source_path: str = ""
    source_line: int = 0

    @property
    def folder(self) -> str:
        head, _, _ = self.source_path.rpartition("/")
        return head


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive date bound. `end` is only used by the `between` operator."""

    operator: DateOperator
    date: date
    end: date | None = None

    def contains(self, value: date | None) -> bool:
        if value is None:
            return False
        if self.operator == "<":
            return value < self.date
        if self.operator == "<=":
            return value <= self.date
        if self.operator == "=":
            return value == self.date
        if self.operator == ">=":
            return value >= self.date
        if self.operator == ">":
            return value > self.date
        upper = self.end if self.end is not None else self.date
        return self.date <= value <= upper

    def as_dict(self) -> dict[str, str]:
        payload = {"operator": self.operator, "date": self.date.isoformat()}
        if self.end is not None:
            payload["end"] = self.end.isoformat()
        return payload


@dataclass(frozen=True, slots=True)
class ExpandedKeyword:
    """A keyword variant together with the language and core word it came from."""

    text: str
    language: str
    core: str


@dataclass(slots=True)
class ParsedQuery:
    """Structured representation of one user query."""

    original_query: str
    core_keywords: list[str] = field(default_factory=list)
    expanded_keywords: list[ExpandedKeyword] = field(default_factory=list)
    priority: list[PriorityValue] = field(default_factory=list)
    status: list[str] = field(default_factory=list)
    due_date: list[str] = field(default_factory=list)
    due_date_range: DateRange | None = None
    tags: list[str] = field(default_factory=list)
    folder: str | None = None
    is_vague: bool = False
    vagueness_ratio: float = 0.0
    time_context_term: str | None = None
    consumed_terms: list[str] = field(default_factory=list)
    source: ParserTier = "deterministic"

    @property
    def keywords(self) -> list[str]:
        """Keywords used for matching: expansions when present, else core words."""
        if self.expanded_keywords:
            seen: list[str] = []
            for item in self.expanded_keywords:
                if item.text not in seen:
                    seen.append(item.text)
            for core in self.core_keywords:
                if core not in seen:
                    seen.append(core)
            return seen
        return list(self.core_keywords)

    @property
    def has_keywords(self) -> bool:
        return bool(self.core_keywords or self.expanded_keywords)

    @property
    def has_due_filter(self) -> bool:
        return bool(self.due_date) or self.due_date_range is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "original_query": self.original_query,
            "core_keywords": list(self.core_keywords),
            "expanded_keywords": [
                {"text": item.text, "language": item.language, "core": item.core}
                for item in self.expanded_keywords
            ],
            "priority": list(self.priority),
            "status": list(self.status),
            "due_date": list(self.due_date),
            "due_date_range": self.due_date_range.as_dict() if self.due_date_range else None,
            "tags": list(self.tags),
            "folder": self.folder,
            "is_vague": self.is_vague,
            "vagueness_ratio": self.vagueness_ratio,
            "time_context_term": self.time_context_term,
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Per-factor sub-scores, activations and coefficients for one task."""

    relevance: float
    due_date: float
    priority: float
    status: float
    activations: dict[str, int]
    coefficients: dict[str, float]
    final: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "relevance": self.relevance,
            "due_date": self.due_date,
            "priority": self.priority,
            "status": self.status,
            "activations": dict(self.activations),
            "coefficients": dict(self.coefficients),
            "final": self.final,
        }


@dataclass(frozen=True, slots=True)
class ScoredTask:
    """A task with its derived score annotation."""

    task: Task
    score: float
    breakdown: ScoreBreakdown
    rank: int = 0


@dataclass(slots=True)
class FilterOutcome:
    tasks: list[Task]
    stage_counts: dict[str, int]
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class QueryDiagnostics:
    """What happened while answering one query."""

    parser_tier: ParserTier = "deterministic"
    summary_status: SummaryStatus = "skipped"
    index_state: Literal["ready", "not_ready"] = "ready"
    errors: list[dict[str, Any]] = field(default_factory=list)
    fallback_messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    expansion: dict[str, Any] = field(default_factory=dict)
    quality: dict[str, Any] = field(default_factory=dict)
    stage_counts: dict[str, int] = field(default_factory=dict)
    cache_hit: bool = False
    top_breakdown: dict[str, Any] | None = None


@dataclass(slots=True)
class QueryResult:
    query: ParsedQuery
    tasks: list[ScoredTask]
    diagnostics: QueryDiagnostics
    summary: str | None = None
    recommended_task_ids: list[str] = field(default_factory=list)
    trace_id: str = ""
    latency_ms: float = 0.0
