"""Query tracing and aggregate metrics."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(slots=True)
class QueryTrace:
    trace_id: str
    timestamp_utc: str
    query: str
    mode: str
    parser_tier: str
    parser_fallback: bool
    summary_status: str
    index_state: str
    result_count: int
    latency_ms: float
    errors: list[dict[str, Any]] = field(default_factory=list)
    fallback_messages: list[str] = field(default_factory=list)


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, max_records: int = 1000) -> None:
        self.max_records = max_records
        self._records: dict[str, QueryTrace] = {}

    def create_record(
        self,
        *,
        query: str,
        mode: str,
        parser_tier: str,
        parser_fallback: bool,
        summary_status: str,
        index_state: str,
        result_count: int,
        latency_ms: float,
        errors: list[dict[str, Any]] | None = None,
        fallback_messages: list[str] | None = None,
    ) -> QueryTrace:
        record = QueryTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            query=query,
            mode=mode,
            parser_tier=parser_tier,
            parser_fallback=parser_fallback,
            summary_status=summary_status,
            index_state=index_state,
            result_count=result_count,
            latency_ms=latency_ms,
            errors=list(errors or []),
            fallback_messages=list(fallback_messages or []),
        )
        self._records[record.trace_id] = record
        while len(self._records) > self.max_records:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> QueryTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[QueryTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate query metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_result_count": 0.0,
                "parser_fallback_rate": 0.0,
                "summary_failure_rate": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        fallbacks = sum(1 for record in records if record.parser_fallback)
        attempted = [r for r in records if r.summary_status in {"ok", "failed"}]
        failed = sum(1 for record in attempted if record.summary_status == "failed")

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_result_count": sum(record.result_count for record in records) / total,
            "parser_fallback_rate": fallbacks / total,
            "summary_failure_rate": failed / len(attempted) if attempted else 0.0,
        }


class Timer:
    """Simple context timer used by the orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
