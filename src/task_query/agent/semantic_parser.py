"""LangChain-based semantic query parser with a strict JSON contract."""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import replace
from datetime import date
from typing import Any

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from task_query.agent.errors import (
    QueryCancelledError,
    SemanticParseError,
    classify_llm_error,
    malformed_response,
)
from task_query.agent.fallback import build_parsed_query
from task_query.config import QueryConfig
from task_query.parsing.extractor import ExtractionResult, PropertyExtractor
from task_query.parsing.time_context import (
    TIME_CONTEXT_TERMS,
    TimeContextResolver,
    normalize_due_value,
)
from task_query.parsing.vagueness import VagueQueryDetector
from task_query.types import ExpandedKeyword, ParsedQuery
from task_query.vocabulary.stop_words import split_words
from task_query.vocabulary.terms import (
    DUE_DATE_TERMS,
    PRIORITY_TERMS,
    TIME_CONTEXT_NAMES,
    resolve_status_value,
    status_terms,
)

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You are a query analyzer for a personal task manager. Analyze the user's query
and return ONE JSON object. Return JSON only, no prose, no code fences.

Configured languages: {languages}
Expansions per language: {expansions_per_language}
Target variants per core keyword: {target_per_keyword}
Status categories (key: words): {status_categories}
Time context names: {time_terms}
Stop words (never keywords): {stop_words}

Rules:
1) coreKeywords: the content words of the query, lowercase, in query order.
   Never include words you used for priority, status, dates, tags or folder.
2) keywordExpansions: for EVERY core keyword and EVERY configured language,
   one entry with exactly {expansions_per_language} same-meaning variants.
   Variants are single words (no spaces) so they can match compound words.
3) priority: list of 1-4, "any" or "none". 1 is highest.
4) status: list of status category keys from the list above.
5) timeContext: the NAME of a relative time expression (one of the time context
   names) or null. Never convert it to a date.
6) dueDate: an explicit ISO date (YYYY-MM-DD), "any", "none" or null.
7) isVague: true when the query is an open-ended request ("what should I do")
   rather than a search for specific content.
8) tags: hashtags without "#". folder: folder path or null.

Output shape:
{{"coreKeywords": ["fix"],
  "keywordExpansions": [{{"core": "fix", "language": "English", "variants": ["fix", "repair"]}}],
  "priority": [], "status": [], "timeContext": null, "dueDate": null,
  "isVague": false, "tags": [], "folder": null}}
""".strip()

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class KeywordExpansion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    core: str = Field(min_length=1)
    language: str = Field(min_length=1)
    variants: list[str] = Field(min_length=1)

    @field_validator("variants")
    @classmethod
    def _atomic_variants(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for variant in value:
            if not isinstance(variant, str) or not variant.strip():
                raise ValueError("variants must be non-empty strings")
            if len(variant.strip().split()) > 1:
                raise ValueError(f"multi-word variant not allowed: {variant!r}")
            cleaned.append(variant.strip().lower())
        return cleaned


class SemanticParseResponse(BaseModel):
    """Shape the model must return. Any violation rejects the whole response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    core_keywords: list[str] = Field(alias="coreKeywords")
    keyword_expansions: list[KeywordExpansion] = Field(alias="keywordExpansions")
    priority: list[int | str] = Field(default_factory=list)
    status: list[str] = Field(default_factory=list)
    time_context: str | None = Field(default=None, alias="timeContext")
    due_date: str | None = Field(default=None, alias="dueDate")
    is_vague: StrictBool = Field(alias="isVague")
    tags: list[str] = Field(default_factory=list)
    folder: str | None = None

    @field_validator("core_keywords")
    @classmethod
    def _clean_core(cls, value: list[str]) -> list[str]:
        cleaned = [word.strip().lower() for word in value if word.strip()]
        return list(dict.fromkeys(cleaned))


def build_parser_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([("system", _SYSTEM_PROMPT), ("human", "{query}")])


class SemanticQueryParser:
    """Parses queries with an LLM and validates every field before use.

    Standard syntax (`p1`, `s:open`, `#tag`, ...) is stripped deterministically
    first; a query made only of such syntax never reaches the model. Relative
    time names returned by the model are converted by `TimeContextResolver`.
    """

    def __init__(
        self,
        *,
        llm: Any,
        config: QueryConfig | None = None,
        model_label: str = "",
        chain: Any | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or QueryConfig()
        self.model_label = model_label or str(getattr(llm, "model_name", "") or "llm")
        self.extractor = PropertyExtractor(self.config)
        self.detector = VagueQueryDetector(threshold=self.config.parser.vagueness_threshold)
        self.resolver = TimeContextResolver(week_start=self.config.parser.week_start)
        self._status_terms = status_terms(self.config)
        if chain is not None:
            self.chain = chain
        else:
            self.chain = build_parser_prompt() | self.llm

    def parse(
        self,
        query: str,
        *,
        today: date | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ParsedQuery:
        """Parse one query.

        Raises:
            SemanticParseError: transport failure or an untrustworthy response.
            QueryCancelledError: `cancel_event` was set before the result arrived.
        """
        syntax = self.extractor.extract_syntax(query)
        if not syntax.core_keywords:
            logger.info("Query holds only structured syntax; skipping the model call")
            vagueness = self.detector.detect(self.detector.tokenize(syntax.residual_text))
            return build_parsed_query(
                query,
                syntax,
                vagueness,
                resolver=self.resolver,
                today=today,
                source="syntax",
            )

        _raise_if_cancelled(cancel_event)
        try:
            result = self.chain.invoke(self.prompt_variables(syntax.residual_text))
        except Exception as exc:
            structured = classify_llm_error(exc, model=self.model_label, operation="parser")
            raise SemanticParseError(structured) from exc
        _raise_if_cancelled(cancel_event)

        response = self._validate(message_text(result))
        return self._merge(query, syntax, response, today=today)

    def prompt_variables(self, residual: str) -> dict[str, Any]:
        parser = self.config.parser
        per_language = parser.expansions_per_language if parser.semantic_expansion else 1
        return {
            "languages": ", ".join(parser.languages),
            "expansions_per_language": per_language,
            "target_per_keyword": per_language * len(parser.languages),
            "status_categories": "; ".join(
                f"{key}: {', '.join(words[:6])}" for key, words in self._status_terms.items()
            ),
            "time_terms": ", ".join(sorted(TIME_CONTEXT_TERMS)),
            "stop_words": ", ".join(sorted(self.extractor.stop_words)[:60]),
            "query": residual,
        }

    def _validate(self, content: str) -> SemanticParseResponse:
        payload = _load_json(content)
        if payload is None:
            raise malformed_response(f"Not a JSON object: {content[:200]}", model=self.model_label)
        try:
            response = SemanticParseResponse.model_validate(payload)
        except ValidationError as exc:
            raise malformed_response(str(exc), model=self.model_label) from exc

        languages = {language.lower() for language in self.config.parser.languages}
        for core in response.core_keywords:
            covered = {
                item.language.lower()
                for item in response.keyword_expansions
                if item.core.strip().lower() == core
            }
            missing = languages - covered
            if missing:
                raise malformed_response(
                    f"Keyword '{core}' has no expansions for: {', '.join(sorted(missing))}",
                    model=self.model_label,
                )

        if response.time_context is not None and _time_term(response.time_context) is None:
            raise malformed_response(
                f"Unknown time context: {response.time_context}", model=self.model_label
            )
        if response.due_date is not None and normalize_due_value(response.due_date) is None:
            raise malformed_response(
                f"Invalid dueDate: {response.due_date}", model=self.model_label
            )
        for value in response.priority:
            if _priority_value(value) is None:
                raise malformed_response(f"Invalid priority: {value}", model=self.model_label)
        for value in response.status:
            if resolve_status_value(value, self.config) is None:
                raise malformed_response(f"Unknown status: {value}", model=self.model_label)
        return response

    def _merge(
        self,
        query: str,
        syntax: ExtractionResult,
        response: SemanticParseResponse,
        *,
        today: date | None,
    ) -> ParsedQuery:
        merged = ExtractionResult(
            priority=list(syntax.priority)
            or list(dict.fromkeys(_priority_value(value) for value in response.priority)),
            status=list(syntax.status)
            or list(dict.fromkeys(resolve_status_value(v, self.config) for v in response.status)),
            due_date=list(syntax.due_date),
            tags=list(syntax.tags) or [tag.lstrip("#").lower() for tag in response.tags],
            folder=syntax.folder or response.folder,
            consumed_terms=list(syntax.consumed_terms),
            residual_text=syntax.residual_text,
        )

        if not merged.due_date:
            term = _time_term(response.time_context) if response.time_context else None
            due_value = normalize_due_value(response.due_date) if response.due_date else None
            if term is None and due_value in TIME_CONTEXT_TERMS:
                term = due_value
            if term is not None:
                merged.time_context_term = term
            elif due_value is not None:
                merged.due_date.append(due_value)
                merged.consume(response.due_date)
                for raw in (response.due_date.strip().lower(), due_value):
                    if raw not in merged.consumed_terms:
                        merged.consumed_terms.append(raw)

        for word in self._property_words(merged):
            if word not in merged.consumed_terms:
                merged.consumed_terms.append(word)

        consumed = set(merged.consumed_terms)
        merged.core_keywords = [word for word in response.core_keywords if word not in consumed]

        vagueness = self.detector.detect(self.detector.tokenize(syntax.residual_text))
        vagueness = replace(vagueness, is_vague=response.is_vague)
        parsed = build_parsed_query(
            query,
            merged,
            vagueness,
            resolver=self.resolver,
            today=today,
            source="semantic",
        )
        parsed.expanded_keywords = self._expanded(response, parsed.core_keywords, consumed)
        logger.debug(
            f"Semantic parse: core={parsed.core_keywords} "
            f"expanded={len(parsed.expanded_keywords)} vague={parsed.is_vague}"
        )
        return parsed

    def _expanded(
        self,
        response: SemanticParseResponse,
        core_keywords: list[str],
        consumed: set[str],
    ) -> list[ExpandedKeyword]:
        parser = self.config.parser
        per_language = parser.expansions_per_language if parser.semantic_expansion else 1
        language_names = {language.lower(): language for language in parser.languages}
        expanded: list[ExpandedKeyword] = []
        for core in core_keywords:
            for language_key, language in language_names.items():
                variants: list[str] = []
                for item in response.keyword_expansions:
                    if item.core.strip().lower() != core or item.language.lower() != language_key:
                        continue
                    for variant in item.variants:
                        if variant not in variants and variant not in consumed:
                            variants.append(variant)
                for variant in variants[:per_language]:
                    expanded.append(ExpandedKeyword(text=variant, language=language, core=core))
        return expanded

    def _property_words(self, merged: ExtractionResult) -> list[str]:
        """Vocabulary words that express the recognized properties."""
        phrases: list[str] = []
        if merged.priority:
            for group in PRIORITY_TERMS.values():
                phrases.extend(group)
        for key in merged.status:
            phrases.extend(self._status_terms.get(key, []))
        term = merged.time_context_term
        if term is not None or merged.due_date:
            phrases.extend(DUE_DATE_TERMS["general"])
        for group, name in TIME_CONTEXT_NAMES.items():
            if name == term or name in merged.due_date:
                phrases.extend(DUE_DATE_TERMS[group])
        words: list[str] = []
        for phrase in phrases:
            words.extend(split_words(phrase))
        words.extend(merged.tags)
        if merged.folder:
            words.extend(split_words(merged.folder))
            words.append(merged.folder.strip().lower())
        return words


def _raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise QueryCancelledError()


def _time_term(value: str) -> str | None:
    canonical = normalize_due_value(value)
    return canonical if canonical in TIME_CONTEXT_TERMS else None


def _priority_value(value: int | str) -> int | str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1 <= value <= 4 else None
    lowered = value.strip().lower()
    if lowered in {"1", "2", "3", "4"}:
        return int(lowered)
    if lowered in {"any", "all"}:
        return "any"
    if lowered == "none":
        return "none"
    return None


def _load_json(content: str) -> dict[str, Any] | None:
    text = _FENCE.sub("", content.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        payload = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def message_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content)

