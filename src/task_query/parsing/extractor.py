"""Deterministic extraction of structured properties from query text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache

from task_query.config import QueryConfig
from task_query.parsing.time_context import TIME_CONTEXT_TERMS, normalize_due_value
from task_query.types import PriorityValue
from task_query.vocabulary.stop_words import (
    build_stop_words,
    contains_cjk,
    deduplicate_keywords,
    filter_stop_words,
    split_words,
)
from task_query.vocabulary.terms import (
    DUE_DATE_TERMS,
    NO_DATE_TERMS,
    NO_PRIORITY_TERMS,
    PRIORITY_TERMS,
    TIME_CONTEXT_NAMES,
    resolve_status_value,
    status_terms,
)

logger = logging.getLogger(__name__)

_STATUS_SYNTAX = re.compile(r"\b(?:s|status):([^\s&|]+)", re.IGNORECASE)
_PRIORITY_SYNTAX = re.compile(r"\b(?:p|priority):([^\s&|]+)", re.IGNORECASE)
_PRIORITY_SHORT = re.compile(r"\bp([1-4])\b", re.IGNORECASE)
_DUE_SYNTAX = re.compile(r"\b(?:d|due):([^\s&|]+)", re.IGNORECASE)
_HASHTAG = re.compile(r"#([\w-]+)")
_FOLDER = re.compile(
    r"(?:\b(?:folder|directory):\s*"
    r"|\b(?:in|from|under)\s+(?:the\s+)?(?:folder|directory)\s+)"
    r"[\"']?([^\"'\s,&|]+)[\"']?",
    re.IGNORECASE,
)
_OVERDUE_SPECIAL = re.compile(r"\b(?:overdue|over\s+due|od)\b", re.IGNORECASE)
_RELATIVE_PHRASE = re.compile(r"\bin\s+(\d+)\s+(day|days|week|weeks|month|months)\b", re.IGNORECASE)
_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

_PRIORITY_LEVELS: dict[str, int] = {"high": 1, "medium": 2, "low": 3}
_URGENT_WORDS = ("urgent", "紧急", "brådskande")


@dataclass(slots=True)
class ExtractionResult:
    """Structured fields found in a query plus what is left of the text."""

    priority: list[PriorityValue] = field(default_factory=list)
    status: list[str] = field(default_factory=list)
    due_date: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    folder: str | None = None
    time_context_term: str | None = None
    consumed_terms: list[str] = field(default_factory=list)
    residual_text: str = ""
    core_keywords: list[str] = field(default_factory=list)

    @property
    def has_properties(self) -> bool:
        return bool(
            self.priority
            or self.status
            or self.due_date
            or self.tags
            or self.folder
            or self.time_context_term
        )

    def consume(self, raw: str) -> None:
        for word in split_words(raw):
            if word not in self.consumed_terms:
                self.consumed_terms.append(word)


class PropertyExtractor:
    """Regex/lexical property extraction.

    Every matched span is removed from the text before keywords are taken from
    the remainder, so a word used as a filter never becomes a keyword. When a
    word could mean several things, status wins over priority, which wins over
    due date. Never raises on user input.
    """

    def __init__(self, config: QueryConfig | None = None) -> None:
        self.config = config or QueryConfig()
        self._stop_words = build_stop_words(self.config.parser.stop_words)
        self._status_terms = status_terms(self.config)

    def extract(self, query: str) -> ExtractionResult:
        """Full deterministic pass: explicit syntax, then natural language."""
        result = self.extract_syntax(query)
        text = result.residual_text
        text = self._extract_status_terms(text, result)
        text = self._extract_priority_terms(text, result)
        text = self._extract_due_terms(text, result)
        self._finish(text, result)
        logger.debug(
            f"Extracted properties: priority={result.priority} status={result.status} "
            f"due={result.due_date} time={result.time_context_term} tags={result.tags} "
            f"folder={result.folder} keywords={result.core_keywords}"
        )
        return result

    def extract_syntax(self, query: str) -> ExtractionResult:
        """Only explicit syntax (`p1`, `s:`, `due:`, `#tag`, `folder:`, special words)."""
        result = ExtractionResult()
        text = query or ""
        text = self._extract_status_syntax(text, result)
        text = self._extract_priority_syntax(text, result)
        text = self._extract_due_syntax(text, result)
        text = self._extract_tags(text, result)
        text = self._extract_folder(text, result)
        text = self._extract_special_keywords(text, result)
        self._finish(text, result)
        return result

    @property
    def stop_words(self) -> frozenset[str]:
        return frozenset(self._stop_words)

    def keywords_from(self, text: str, *, exclude: list[str] | None = None) -> list[str]:
        words = filter_stop_words(split_words(text), self._stop_words)
        excluded = set(exclude or [])
        return deduplicate_keywords(word for word in words if word not in excluded)

    def _finish(self, text: str, result: ExtractionResult) -> None:
        result.residual_text = re.sub(r"\s+", " ", text).strip()
        result.core_keywords = self.keywords_from(
            result.residual_text, exclude=result.consumed_terms
        )

    def _extract_status_syntax(self, text: str, result: ExtractionResult) -> str:
        for match in _STATUS_SYNTAX.finditer(text):
            result.consume(match.group(0))
            for value in match.group(1).split(","):
                if value.strip().lower() in {"all", "any"}:
                    continue
                key = resolve_status_value(value, self.config)
                if key is not None and key not in result.status:
                    result.status.append(key)
        return _STATUS_SYNTAX.sub(" ", text)

    def _extract_priority_syntax(self, text: str, result: ExtractionResult) -> str:
        for match in _PRIORITY_SYNTAX.finditer(text):
            result.consume(match.group(0))
            for value in match.group(1).split(","):
                _add_priority(result, _parse_priority_value(value))
        text = _PRIORITY_SYNTAX.sub(" ", text)
        for match in _PRIORITY_SHORT.finditer(text):
            result.consume(match.group(0))
            _add_priority(result, int(match.group(1)))
        return _PRIORITY_SHORT.sub(" ", text)

    def _extract_due_syntax(self, text: str, result: ExtractionResult) -> str:
        for match in _DUE_SYNTAX.finditer(text):
            result.consume(match.group(0))
            for value in match.group(1).split(","):
                canonical = normalize_due_value(value)
                if canonical is not None and canonical not in result.due_date:
                    result.due_date.append(canonical)
        return _DUE_SYNTAX.sub(" ", text)

    def _extract_tags(self, text: str, result: ExtractionResult) -> str:
        for match in _HASHTAG.finditer(text):
            result.consume(match.group(0))
            tag = match.group(1).lower()
            if tag not in result.tags:
                result.tags.append(tag)
        return _HASHTAG.sub(" ", text)

    def _extract_folder(self, text: str, result: ExtractionResult) -> str:
        match = _FOLDER.search(text)
        if match is None:
            return text
        result.folder = match.group(1).strip("/")
        result.consume(match.group(0))
        return text[: match.start()] + " " + text[match.end() :]

    def _extract_special_keywords(self, text: str, result: ExtractionResult) -> str:
        if _OVERDUE_SPECIAL.search(text):
            for match in _OVERDUE_SPECIAL.finditer(text):
                result.consume(match.group(0))
            if "overdue" not in result.due_date:
                result.due_date.append("overdue")
            text = _OVERDUE_SPECIAL.sub(" ", text)
        for term in NO_DATE_TERMS:
            text, found = _remove_term(text, term, result)
            if found and "none" not in result.due_date:
                result.due_date.append("none")
        for term in NO_PRIORITY_TERMS:
            text, found = _remove_term(text, term, result)
            if found:
                _add_priority(result, "none")
        return text

    def _extract_status_terms(self, text: str, result: ExtractionResult) -> str:
        for key, words in self._status_terms.items():
            for word in sorted(words, key=len, reverse=True):
                text, found = _remove_term(text, word, result)
                if found and key not in result.status:
                    result.status.append(key)
        return text

    def _extract_priority_terms(self, text: str, result: ExtractionResult) -> str:
        general = sorted(PRIORITY_TERMS["general"], key=len, reverse=True)
        for level_name, level in _PRIORITY_LEVELS.items():
            for level_word in PRIORITY_TERMS[level_name]:
                for general_word in general:
                    for phrase in _level_phrases(level_word, general_word):
                        text, found = _remove_term(text, phrase, result)
                        if found:
                            _add_priority(result, level)
        for word in _URGENT_WORDS:
            text, found = _remove_term(text, word, result)
            if found:
                _add_priority(result, 1)
        for word in general:
            text, found = _remove_term(text, word, result)
            if found and not result.priority:
                _add_priority(result, "any")
        return text

    def _extract_due_terms(self, text: str, result: ExtractionResult) -> str:
        for group, terms in DUE_DATE_TERMS.items():
            if group == "general":
                continue
            for term in sorted(terms, key=len, reverse=True):
                text, found = _remove_term(text, term, result)
                if found and result.time_context_term is None and not result.due_date:
                    name = TIME_CONTEXT_NAMES[group]
                    if name in TIME_CONTEXT_TERMS:
                        result.time_context_term = name

        relative = _RELATIVE_PHRASE.search(text)
        if relative is not None:
            result.consume(relative.group(0))
            value = f"+{relative.group(1)}{relative.group(2)[0].lower()}"
            if result.time_context_term is None and value not in result.due_date:
                result.due_date.append(value)
            text = text[: relative.start()] + " " + text[relative.end() :]

        for match in _ISO_DATE.finditer(text):
            canonical = normalize_due_value(match.group(1))
            if canonical is None:
                continue
            result.consume(match.group(0))
            if result.time_context_term is None and canonical not in result.due_date:
                result.due_date.append(canonical)
        text = _ISO_DATE.sub(" ", text)

        for term in sorted(DUE_DATE_TERMS["general"], key=len, reverse=True):
            text, found = _remove_term(text, term, result)
            if found and not result.due_date and result.time_context_term is None:
                result.due_date.append("any")
        return text


def _parse_priority_value(value: str) -> PriorityValue | None:
    lowered = value.strip().lower()
    if lowered in {"all", "any"}:
        return "any"
    if lowered == "none":
        return "none"
    if lowered in {"1", "2", "3", "4"}:
        return int(lowered)
    return None


def _add_priority(result: ExtractionResult, value: PriorityValue | None) -> None:
    if value is not None and value not in result.priority:
        result.priority.append(value)


def _level_phrases(level_word: str, general_word: str) -> list[str]:
    if contains_cjk(level_word) and contains_cjk(general_word):
        return [f"{level_word}{general_word}", f"{level_word} {general_word}"]
    return [f"{level_word} {general_word}", f"{general_word} {level_word}"]


@lru_cache(maxsize=2048)
def _term_pattern(term: str) -> re.Pattern[str]:
    escaped = r"\s+".join(re.escape(part) for part in term.split())
    if contains_cjk(term):
        return re.compile(escaped)
    return re.compile(rf"(?<![\w-]){escaped}(?![\w-])", re.IGNORECASE)


def _remove_term(text: str, term: str, result: ExtractionResult) -> tuple[str, bool]:
    pattern = _term_pattern(term)
    if not pattern.search(text):
        return text, False
    result.consume(term)
    return pattern.sub(" ", text), True
