"""Multi-factor task scoring and the quality threshold."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from typing import Any

from task_query.config import QueryConfig
from task_query.types import ParsedQuery, ScoreBreakdown, ScoredTask, Task

logger = logging.getLogger(__name__)

FACTORS = ("relevance", "due_date", "priority", "status")


class ScoringEngine:
    """Scores filtered tasks against a parsed query.

    Final score = sum(sub_score * activation * coefficient) over the four
    factors. A factor is active only when the query filters or sorts on it;
    relevance is active only when the query has keywords. The theoretical
    maximum used by the quality filter is rebuilt from the live sub-score
    tables on every call.
    """

    def __init__(self, config: QueryConfig | None = None) -> None:
        self.config = config or QueryConfig()

    def activations(self, query: ParsedQuery) -> dict[str, int]:
        sort_order = set(self.config.sort_order)
        return {
            "relevance": int(query.has_keywords),
            "due_date": int(query.has_due_filter or "due_date" in sort_order),
            "priority": int(bool(query.priority) or "priority" in sort_order),
            "status": int(bool(query.status) or "status" in sort_order),
        }

    def coefficients(self) -> dict[str, float]:
        weights = self.config.weights
        return {
            "relevance": weights.relevance_coefficient,
            "due_date": weights.due_date_coefficient,
            "priority": weights.priority_coefficient,
            "status": weights.status_coefficient,
        }

    def max_sub_scores(self) -> dict[str, float]:
        weights = self.config.weights
        status_scores = [c.score for c in self.config.status_categories.values()]
        return {
            "relevance": weights.relevance_core_weight + 1.0,
            "due_date": max(weights.due_date_table().values()),
            "priority": max(weights.priority_table().values()),
            "status": max(status_scores) if status_scores else 0.0,
        }

    def max_score(self, activations: dict[str, int]) -> float:
        """Highest score attainable with the active factors."""
        coefficients = self.coefficients()
        maxima = self.max_sub_scores()
        return sum(maxima[f] * coefficients[f] * activations.get(f, 0) for f in FACTORS)

    def score_all(
        self,
        tasks: Sequence[Task],
        query: ParsedQuery,
        *,
        today: date | None = None,
    ) -> list[ScoredTask]:
        today = today or date.today()
        activations = self.activations(query)
        scored = [self.score(task, query, today=today, activations=activations) for task in tasks]
        logger.debug(
            f"Scored {len(scored)} tasks; active factors: "
            f"{[f for f in FACTORS if activations[f]]}"
        )
        return scored

    def score(
        self,
        task: Task,
        query: ParsedQuery,
        *,
        today: date,
        activations: dict[str, int] | None = None,
    ) -> ScoredTask:
        activations = activations or self.activations(query)
        coefficients = self.coefficients()
        sub_scores = {
            "relevance": self.relevance_score(task, query) if activations["relevance"] else 0.0,
            "due_date": self.due_date_score(task.due_date, today),
            "priority": self.priority_score(task.priority),
            "status": self.status_score(task.status_category),
        }
        final = sum(sub_scores[f] * activations[f] * coefficients[f] for f in FACTORS)
        breakdown = ScoreBreakdown(
            relevance=sub_scores["relevance"],
            due_date=sub_scores["due_date"],
            priority=sub_scores["priority"],
            status=sub_scores["status"],
            activations=dict(activations),
            coefficients=coefficients,
            final=final,
        )
        return ScoredTask(task=task, score=final, breakdown=breakdown)

    def relevance_score(self, task: Task, query: ParsedQuery) -> float:
        text = task.text.lower()
        core = [keyword.lower() for keyword in query.core_keywords]
        keywords = [keyword.lower() for keyword in query.keywords]
        core_total = max(len(core), 1)
        core_hits = sum(1 for keyword in core if keyword in text)
        all_hits = sum(1 for keyword in keywords if keyword in text)
        core_ratio = core_hits / core_total
        all_ratio = min(all_hits / core_total, 1.0)
        return core_ratio * self.config.weights.relevance_core_weight + all_ratio

    def due_date_score(self, due: date | None, today: date) -> float:
        table = self.config.weights.due_date_table()
        if due is None:
            return table["none"]
        days = (due - today).days
        if days < 0:
            return table["overdue"]
        if days <= 7:
            return table["within_7_days"]
        if days <= 30:
            return table["within_month"]
        return table["later"]

    def priority_score(self, priority: int | None) -> float:
        table = self.config.weights.priority_table()
        return table.get(priority, table[None])

    def status_score(self, category_key: str) -> float:
        category = self.config.status_categories.get(category_key)
        return category.score if category is not None else 0.0

    def apply_quality_filter(
        self,
        scored: Sequence[ScoredTask],
        query: ParsedQuery,
        *,
        requested: int,
    ) -> tuple[list[ScoredTask], dict[str, Any]]:
        """Drop low-scoring tasks.

        Adaptive mode (strength and minimum relevance both 0) uses
        `adaptive_strength` and keeps the top `requested` tasks by raw score
        when the threshold leaves fewer than that. Explicit settings are
        applied strictly. Input order is preserved.
        """
        quality = self.config.quality
        activations = self.activations(query)
        max_score = self.max_score(activations)
        adaptive = quality.is_adaptive
        strength = quality.adaptive_strength if adaptive else quality.strength
        threshold = strength * max_score
        minimum_relevance = quality.minimum_relevance if query.has_keywords else 0.0

        kept = [
            item
            for item in scored
            if item.score >= threshold and item.breakdown.relevance >= minimum_relevance
        ]
        safety_valve = False
        if adaptive and len(kept) < requested and len(kept) < len(scored):
            kept = top_by_score(scored, requested)
            safety_valve = True

        info: dict[str, Any] = {
            "mode": "adaptive" if adaptive else "strict",
            "strength": strength,
            "threshold": threshold,
            "max_score": max_score,
            "minimum_relevance": minimum_relevance,
            "before": len(scored),
            "after": len(kept),
            "safety_valve": safety_valve,
        }
        logger.debug(f"Quality filter: {info}")
        return kept, info


def top_by_score(scored: Sequence[ScoredTask], count: int) -> list[ScoredTask]:
    """Highest `count` tasks by raw score, returned in input order."""
    order = sorted(range(len(scored)), key=lambda i: scored[i].score, reverse=True)
    chosen = set(order[:count])
    return [item for i, item in enumerate(scored) if i in chosen]
