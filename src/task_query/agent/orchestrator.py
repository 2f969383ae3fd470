"""Two-stage query orchestrator with per-stage fallback."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import date

from task_query.agent.errors import QueryCancelledError, SemanticParseError, SummaryError
from task_query.agent.fallback import DeterministicQueryParser
from task_query.agent.semantic_parser import SemanticQueryParser
from task_query.agent.summarizer import TaskSummarizer
from task_query.config import FilterRules, QueryConfig, SortCriterion
from task_query.index.provider import TaskIndexProvider
from task_query.obs.tracing import Timer, TraceStore
from task_query.retrieval.cache import CachedScores, ScoreCache
from task_query.retrieval.filters import FilterPipeline
from task_query.retrieval.ranker import MultiCriteriaRanker, Ranker
from task_query.retrieval.scoring import ScoringEngine
from task_query.types import ParsedQuery, QueryDiagnostics, QueryMode, QueryResult

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """Runs parse -> filter -> score -> rank, then the optional summary.

    Stage A (parsing) tries the semantic parser and falls back to the
    deterministic parser on any failure, so it always yields a ranked list.
    Stage B (summary, chat mode only) never discards Stage A results: on
    failure or cancellation the ranked tasks are returned without a summary.
    Every degraded path is disclosed in `diagnostics.fallback_messages`.
    """

    def __init__(
        self,
        *,
        index: TaskIndexProvider,
        config: QueryConfig | None = None,
        semantic_parser: SemanticQueryParser | None = None,
        summarizer: TaskSummarizer | None = None,
        trace_store: TraceStore | None = None,
        cache: ScoreCache | None = None,
        ranker: Ranker | None = None,
    ) -> None:
        self.index = index
        self.config = config or QueryConfig()
        self.semantic_parser = semantic_parser
        self.summarizer = summarizer
        self.trace_store = trace_store or TraceStore()
        self.cache = cache or ScoreCache()
        self._fingerprint = self.config.fingerprint()
        self.ranker = ranker or MultiCriteriaRanker(self.config)
        self.deterministic_parser = DeterministicQueryParser(self.config)

    def run(
        self,
        query: str,
        *,
        mode: QueryMode = "search",
        limit: int | None = None,
        sort_order: Sequence[SortCriterion] | None = None,
        inclusions: FilterRules | None = None,
        today: date | None = None,
        cancel_event: threading.Event | None = None,
    ) -> QueryResult:
        """Answer one query.

        Raises:
            QueryCancelledError: cancelled before Stage A produced results.
        """
        today = today or date.today()
        config = self.config
        if inclusions is not None:
            config = config.with_inclusions(inclusions)
        if sort_order:
            config = config.model_copy(update={"sort_order": list(sort_order)})

        with Timer() as timer:
            result, parser_fallback = self._run(
                query,
                config=config,
                mode=mode,
                limit=limit,
                today=today,
                cancel_event=cancel_event,
            )

        record = self.trace_store.create_record(
            query=query,
            mode=mode,
            parser_tier=result.diagnostics.parser_tier,
            parser_fallback=parser_fallback,
            summary_status=result.diagnostics.summary_status,
            index_state=result.diagnostics.index_state,
            result_count=len(result.tasks),
            latency_ms=timer.elapsed_ms,
            errors=result.diagnostics.errors,
            fallback_messages=result.diagnostics.fallback_messages,
        )
        result.trace_id = record.trace_id
        result.latency_ms = timer.elapsed_ms
        logger.info(
            f"Query answered: tier={result.diagnostics.parser_tier} "
            f"results={len(result.tasks)} summary={result.diagnostics.summary_status} "
            f"latency={timer.elapsed_ms:.1f}ms"
        )
        return result

    def _run(
        self,
        query: str,
        *,
        config: QueryConfig,
        mode: QueryMode,
        limit: int | None,
        today: date,
        cancel_event: threading.Event | None,
    ) -> tuple[QueryResult, bool]:
        diagnostics = QueryDiagnostics()
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelledError()

        if not self.index.is_ready():
            parsed = self.deterministic_parser.parse(query, today=today)
            diagnostics.index_state = "not_ready"
            diagnostics.fallback_messages.append(
                "Task index is still loading; no tasks are available yet"
            )
            logger.warning("Task index not ready; returning no tasks")
            return QueryResult(query=parsed, tasks=[], diagnostics=diagnostics), False

        parsed, parser_fallback = self._parse(query, today, cancel_event, diagnostics)

        snapshot = self.index.snapshot()
        filters = config.filters
        cached = self.cache.get(
            version=snapshot.version,
            fingerprint=self._fingerprint,
            query=parsed,
            filters=filters,
            today=today,
            sort_order=config.sort_order,
        )
        scoring = ScoringEngine(config)
        if cached is None:
            outcome = FilterPipeline(config).run(
                snapshot.tasks, parsed, today=today, filters=filters
            )
            scored = scoring.score_all(outcome.tasks, parsed, today=today)
            self.cache.put(
                version=snapshot.version,
                fingerprint=self._fingerprint,
                query=parsed,
                filters=filters,
                today=today,
                sort_order=config.sort_order,
                entry=CachedScores(outcome=outcome, scored=tuple(scored)),
            )
        else:
            outcome, scored = cached.outcome, list(cached.scored)
            diagnostics.cache_hit = True

        requested = limit or (
            config.limits.max_tasks_for_ai if mode == "chat" else config.limits.max_direct_results
        )
        kept, quality = scoring.apply_quality_filter(scored, parsed, requested=requested)
        ranked = self.ranker.rank(kept, sort_order=config.sort_order, limit=requested)

        diagnostics.stage_counts = {
            **outcome.stage_counts,
            "after_quality": len(kept),
            "returned": len(ranked),
        }
        diagnostics.warnings.extend(outcome.warnings)
        diagnostics.quality = quality
        diagnostics.expansion = _expansion_stats(parsed, config)
        if ranked:
            diagnostics.top_breakdown = ranked[0].breakdown.as_dict()
        if parser_fallback:
            diagnostics.fallback_messages.append(
                f"AI parser failed, used simple search fallback ({len(ranked)} tasks found)"
            )

        result = QueryResult(query=parsed, tasks=ranked, diagnostics=diagnostics)
        if mode == "chat":
            self._summarize(result, today=today, cancel_event=cancel_event)
        return result, parser_fallback

    def _parse(
        self,
        query: str,
        today: date,
        cancel_event: threading.Event | None,
        diagnostics: QueryDiagnostics,
    ) -> tuple[ParsedQuery, bool]:
        if self.semantic_parser is None:
            parsed = self.deterministic_parser.parse(query, today=today)
            diagnostics.parser_tier = "deterministic"
            return parsed, False
        try:
            parsed = self.semantic_parser.parse(query, today=today, cancel_event=cancel_event)
        except SemanticParseError as exc:
            structured = exc.structured
            structured.fallback_used = "deterministic"
            diagnostics.errors.append(structured.as_dict())
            logger.warning(
                f"Semantic parsing failed ({structured.category}); using deterministic parser"
            )
            parsed = self.deterministic_parser.parse(query, today=today)
            diagnostics.parser_tier = "deterministic"
            return parsed, True
        diagnostics.parser_tier = parsed.source
        return parsed, False

    def _summarize(
        self,
        result: QueryResult,
        *,
        today: date,
        cancel_event: threading.Event | None,
    ) -> None:
        diagnostics = result.diagnostics
        if self.summarizer is None:
            diagnostics.fallback_messages.append(
                f"No AI model configured; showing {len(result.tasks)} search results"
            )
            return
        if not result.tasks:
            return
        try:
            summary = self.summarizer.summarize(
                result.query, result.tasks, today=today, cancel_event=cancel_event
            )
        except QueryCancelledError:
            diagnostics.summary_status = "cancelled"
            diagnostics.fallback_messages.append(
                f"Analysis cancelled, showing {len(result.tasks)} search results"
            )
            return
        except SummaryError as exc:
            structured = exc.structured
            structured.fallback_used = "search results"
            diagnostics.errors.append(structured.as_dict())
            diagnostics.summary_status = "failed"
            diagnostics.fallback_messages.append(
                f"AI analysis failed, showing {len(result.tasks)} search results without a summary"
            )
            logger.warning(f"Summary failed ({structured.category}); returning ranked tasks")
            return
        result.summary = summary.text
        result.recommended_task_ids = summary.recommended_task_ids
        diagnostics.summary_status = "ok"


def _expansion_stats(parsed: ParsedQuery, config: QueryConfig) -> dict[str, object]:
    languages = sorted({item.language for item in parsed.expanded_keywords})
    return {
        "core_count": len(parsed.core_keywords),
        "expanded_count": len(parsed.expanded_keywords),
        "target_per_core": config.parser.expansion_target if parsed.source == "semantic" else 0,
        "configured_languages": list(config.parser.languages),
        "languages_used": languages,
    }
