"""Deterministic query parser used when no LLM is available or the LLM fails."""

from __future__ import annotations

import logging
from datetime import date

from task_query.config import QueryConfig
from task_query.parsing.extractor import ExtractionResult, PropertyExtractor
from task_query.parsing.time_context import TimeContextResolver
from task_query.parsing.vagueness import VagueQueryDetector, VaguenessResult
from task_query.types import ParsedQuery, ParserTier
from task_query.vocabulary.stop_words import is_generic_word

logger = logging.getLogger(__name__)


class DeterministicQueryParser:
    """Parser that understands queries without any LLM dependency.

    It keeps the same output contract as `SemanticQueryParser` (a `ParsedQuery`)
    and is the fallback tier whenever the semantic parser is unavailable or its
    response cannot be trusted. Runs property extraction, vague-query detection
    and time-context resolution in that order.
    """

    def __init__(self, config: QueryConfig | None = None) -> None:
        self.config = config or QueryConfig()
        self.extractor = PropertyExtractor(self.config)
        self.detector = VagueQueryDetector(threshold=self.config.parser.vagueness_threshold)
        self.resolver = TimeContextResolver(week_start=self.config.parser.week_start)

    def parse(self, query: str, *, today: date | None = None) -> ParsedQuery:
        extraction = self.extractor.extract(query)
        vagueness = self.detector.detect(self.detector.tokenize(extraction.residual_text))
        parsed = build_parsed_query(
            query,
            extraction,
            vagueness,
            resolver=self.resolver,
            today=today,
            source="deterministic",
        )
        logger.debug(
            f"Deterministic parse: keywords={parsed.core_keywords} vague={parsed.is_vague} "
            f"ratio={vagueness.ratio:.2f}"
        )
        return parsed


def build_parsed_query(
    query: str,
    extraction: ExtractionResult,
    vagueness: VaguenessResult,
    *,
    resolver: TimeContextResolver,
    today: date | None,
    source: ParserTier,
) -> ParsedQuery:
    """Assemble a ParsedQuery, applying time resolution and keyword exclusivity."""
    due_date = list(extraction.due_date)
    due_date_range = None
    if extraction.time_context_term is not None:
        resolution = resolver.resolve(
            extraction.time_context_term, is_vague=vagueness.is_vague, today=today
        )
        if resolution.due_date_range is not None and not due_date:
            due_date_range = resolution.due_date_range
        elif resolution.term not in due_date:
            due_date.append(resolution.term)

    core_keywords = list(extraction.core_keywords)
    if vagueness.is_vague:
        core_keywords = [word for word in core_keywords if not is_generic_word(word)]

    consumed = set(extraction.consumed_terms)
    core_keywords = [word for word in core_keywords if word not in consumed]

    return ParsedQuery(
        original_query=query,
        core_keywords=core_keywords,
        priority=list(extraction.priority),
        status=list(extraction.status),
        due_date=due_date,
        due_date_range=due_date_range,
        tags=list(extraction.tags),
        folder=extraction.folder,
        is_vague=vagueness.is_vague,
        vagueness_ratio=vagueness.ratio,
        time_context_term=extraction.time_context_term,
        consumed_terms=list(extraction.consumed_terms),
        source=source,
    )
