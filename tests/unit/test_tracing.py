import pytest

from task_query.obs.tracing import Timer, TraceStore


def _record(store: TraceStore, **overrides: object) -> str:
    fields: dict[str, object] = {
        "query": "fix bug",
        "mode": "search",
        "parser_tier": "semantic",
        "parser_fallback": False,
        "summary_status": "skipped",
        "index_state": "ready",
        "result_count": 3,
        "latency_ms": 10.0,
    }
    fields.update(overrides)
    return store.create_record(**fields).trace_id


def test_summary_reports_fallback_and_summary_failure_rates() -> None:
    store = TraceStore()
    _record(store)
    _record(store, parser_tier="deterministic", parser_fallback=True, latency_ms=30.0)
    _record(store, mode="chat", summary_status="ok", latency_ms=20.0)
    _record(store, mode="chat", summary_status="failed", latency_ms=40.0)

    summary = store.summary()
    assert summary["total_requests"] == 4
    assert summary["avg_latency_ms"] == pytest.approx(25.0)
    assert summary["parser_fallback_rate"] == pytest.approx(0.25)
    assert summary["summary_failure_rate"] == pytest.approx(0.5)


def test_empty_store_summary_and_missing_trace() -> None:
    store = TraceStore()
    assert store.summary()["total_requests"] == 0
    with pytest.raises(KeyError):
        store.get("missing")


def test_store_is_bounded() -> None:
    store = TraceStore(max_records=2)
    first = _record(store)
    _record(store)
    _record(store)
    assert len(store.list_recent(limit=10)) == 2
    with pytest.raises(KeyError):
        store.get(first)


def test_timer_measures_elapsed_time() -> None:
    with Timer() as timer:
        sum(range(1000))
    assert timer.elapsed_ms >= 0.0
