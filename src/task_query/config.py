"""Configuration models for the task query pipeline."""

from __future__ import annotations

import hashlib
import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SortCriterion = Literal["relevance", "due_date", "priority", "status", "created", "alphabetical"]
ProviderName = Literal["openai", "openrouter", "anthropic", "ollama"]

OTHER_CATEGORY = "other"


class StatusCategory(BaseModel):
    """One user-definable status category.

    Categories are plain data: adding a category never requires code changes.
    `order` controls status sorting; `aliases` are extra words accepted in
    `s:` syntax and natural-language queries.
    """

    model_config = ConfigDict(frozen=True)

    symbols: list[str] = Field(default_factory=list)
    score: float = Field(default=0.5, ge=0.0)
    display_name: str = ""
    aliases: list[str] = Field(default_factory=list)
    order: int = Field(default=999, ge=0)
    description: str = ""


def _default_status_categories() -> dict[str, StatusCategory]:
    return {
        "open": StatusCategory(
            symbols=[" ", ""],
            score=1.0,
            display_name="Open",
            aliases=["todo", "to-do", "unstarted", "incomplete"],
            order=1,
            description="Tasks not yet started or awaiting action",
        ),
        "in_progress": StatusCategory(
            symbols=["/", "~"],
            score=0.75,
            display_name="In progress",
            aliases=["inprogress", "in-progress", "wip", "doing", "ongoing", "active"],
            order=2,
            description="Tasks currently being worked on",
        ),
        "completed": StatusCategory(
            symbols=["x", "X"],
            score=0.2,
            display_name="Completed",
            aliases=["done", "finished", "closed", "resolved", "complete"],
            order=6,
            description="Tasks that have been finished",
        ),
        "cancelled": StatusCategory(
            symbols=["-"],
            score=0.1,
            display_name="Cancelled",
            aliases=["canceled", "abandoned", "dropped"],
            order=7,
            description="Tasks that were abandoned or cancelled",
        ),
        OTHER_CATEGORY: StatusCategory(
            symbols=[],
            score=0.5,
            display_name="Other",
            order=999,
            description="Any status symbol that no other category claims",
        ),
    }


class ScoringWeights(BaseModel):
    """Factor coefficients and per-factor sub-score tables."""

    model_config = ConfigDict(frozen=True)

    relevance_coefficient: float = Field(default=20.0, ge=0.0)
    due_date_coefficient: float = Field(default=4.0, ge=0.0)
    priority_coefficient: float = Field(default=1.0, ge=0.0)
    status_coefficient: float = Field(default=1.0, ge=0.0)

    relevance_core_weight: float = Field(default=0.2, ge=0.0, le=1.0)

    due_date_overdue: float = Field(default=1.5, ge=0.0)
    due_date_within_7_days: float = Field(default=1.0, ge=0.0)
    due_date_within_month: float = Field(default=0.5, ge=0.0)
    due_date_later: float = Field(default=0.2, ge=0.0)
    due_date_none: float = Field(default=0.1, ge=0.0)

    priority_p1: float = Field(default=1.0, ge=0.0)
    priority_p2: float = Field(default=0.75, ge=0.0)
    priority_p3: float = Field(default=0.5, ge=0.0)
    priority_p4: float = Field(default=0.2, ge=0.0)
    priority_none: float = Field(default=0.1, ge=0.0)

    def due_date_table(self) -> dict[str, float]:
        return {
            "overdue": self.due_date_overdue,
            "within_7_days": self.due_date_within_7_days,
            "within_month": self.due_date_within_month,
            "later": self.due_date_later,
            "none": self.due_date_none,
        }

    def priority_table(self) -> dict[int | None, float]:
        return {
            1: self.priority_p1,
            2: self.priority_p2,
            3: self.priority_p3,
            4: self.priority_p4,
            None: self.priority_none,
        }


class QualityConfig(BaseModel):
    """Quality threshold settings.

    `strength` and `minimum_relevance` at 0 mean "adaptive": the pipeline uses
    `adaptive_strength` and may fall back to the top-N by raw score. Any
    explicit non-zero value is honored strictly.
    """

    model_config = ConfigDict(frozen=True)

    strength: float = Field(default=0.0, ge=0.0, le=1.0)
    minimum_relevance: float = Field(default=0.0, ge=0.0, le=2.0)
    adaptive_strength: float = Field(default=0.2, ge=0.0, le=1.0)

    @property
    def is_adaptive(self) -> bool:
        return self.strength == 0.0 and self.minimum_relevance == 0.0


class ResultLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_direct_results: int = Field(default=50, ge=1)
    max_tasks_for_ai: int = Field(default=100, ge=1)
    max_recommendations: int = Field(default=20, ge=1)


class ParserConfig(BaseModel):
    """Configures keyword expansion and vague-query detection."""

    model_config = ConfigDict(frozen=True)

    languages: list[str] = Field(default_factory=lambda: ["English"], min_length=1)
    expansions_per_language: int = Field(default=5, ge=1, le=20)
    semantic_expansion: bool = True
    vagueness_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    stop_words: list[str] = Field(default_factory=list)
    week_start: int = Field(default=0, ge=0, le=6)

    @property
    def expansion_target(self) -> int:
        """Expanded keywords expected per core keyword."""
        if not self.semantic_expansion:
            return len(self.languages)
        return self.expansions_per_language * len(self.languages)


class FilterRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    folders: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _strip_hash(cls, value: list[str]) -> list[str]:
        return [tag.lstrip("#").lower() for tag in value if tag.strip("# ")]

    @property
    def is_empty(self) -> bool:
        return not (self.folders or self.tags or self.notes)


class FilterSet(BaseModel):
    """Global exclusions plus session-scoped inclusions."""

    model_config = ConfigDict(frozen=True)

    exclusions: FilterRules = Field(default_factory=FilterRules)
    inclusions: FilterRules = Field(default_factory=FilterRules)


class QueryConfig(BaseModel):
    """Immutable configuration threaded through every pipeline stage."""

    model_config = ConfigDict(frozen=True)

    status_categories: dict[str, StatusCategory] = Field(
        default_factory=_default_status_categories
    )
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    limits: ResultLimits = Field(default_factory=ResultLimits)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    filters: FilterSet = Field(default_factory=FilterSet)
    sort_order: list[SortCriterion] = Field(
        default_factory=lambda: ["relevance", "due_date", "priority"]
    )

    @field_validator("status_categories")
    @classmethod
    def _ensure_other_category(
        cls, value: dict[str, StatusCategory]
    ) -> dict[str, StatusCategory]:
        if OTHER_CATEGORY not in value:
            value = {**value, OTHER_CATEGORY: _default_status_categories()[OTHER_CATEGORY]}
        return value

    def categorize_symbol(self, symbol: str | None) -> str:
        """Resolve a raw status symbol to exactly one category key."""
        value = symbol if symbol is not None else ""
        for key, category in self.status_categories.items():
            if value in category.symbols:
                return key
        if value.strip() == "":
            return "open" if "open" in self.status_categories else OTHER_CATEGORY
        return OTHER_CATEGORY

    def status_order(self, category_key: str) -> int:
        category = self.status_categories.get(category_key)
        return category.order if category is not None else 999

    def fingerprint(self) -> str:
        """Stable digest used to key score caches."""
        return hashlib.sha1(self.model_dump_json().encode("utf-8")).hexdigest()

    def with_inclusions(self, inclusions: FilterRules) -> "QueryConfig":
        return self.model_copy(
            update={"filters": FilterSet(exclusions=self.filters.exclusions, inclusions=inclusions)}
        )


_PROVIDER_BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "openrouter": "https://openrouter.ai/api/v1",
    "anthropic": "https://api.anthropic.com/v1/",
    "ollama": "http://localhost:11434/v1",
}

_PROVIDER_DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "openrouter": "openai/gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "ollama": "qwen2.5:7b",
}


class ProviderSettings(BaseSettings):
    """LLM provider settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TASK_QUERY_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    provider: ProviderName = "openai"
    model: str | None = None
    api_key: SecretStr | None = None
    base_url: str | None = None
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    timeout_seconds: float = Field(default=60.0, gt=0.0)

    @property
    def resolved_model(self) -> str:
        return self.model or _PROVIDER_DEFAULT_MODELS[self.provider]

    @property
    def resolved_base_url(self) -> str | None:
        return self.base_url or _PROVIDER_BASE_URLS[self.provider]

    @property
    def resolved_api_key(self) -> str | None:
        if self.api_key is not None and self.api_key.get_secret_value():
            return self.api_key.get_secret_value()
        if self.provider == "openai":
            return os.getenv("OPENAI_API_KEY") or None
        return None

    @property
    def requires_api_key(self) -> bool:
        return self.provider != "ollama"

    @property
    def model_label(self) -> str:
        return f"{self.provider}: {self.resolved_model}"
