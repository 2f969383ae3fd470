"""Ranking strategies for scored tasks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from typing import Any, Callable

from task_query.config import QueryConfig, SortCriterion
from task_query.types import ScoredTask

_FAR_FUTURE = date.max.toordinal()


class Ranker(ABC):
    """Ranker interface used after scoring and quality filtering."""

    @abstractmethod
    def rank(
        self,
        items: Sequence[ScoredTask],
        *,
        sort_order: Sequence[SortCriterion] | None = None,
        limit: int | None = None,
    ) -> list[ScoredTask]:
        """Return items in final order with `rank` set (1-based)."""


class MultiCriteriaRanker(Ranker):
    """Stable sort over a user-ordered list of criteria.

    The first criterion is primary and later ones break ties. Items equal on
    every criterion keep their input order.
    """

    def __init__(self, config: QueryConfig | None = None) -> None:
        self.config = config or QueryConfig()
        self._keys: dict[str, Callable[[ScoredTask], Any]] = {
            "relevance": lambda item: -item.score,
            "due_date": lambda item: (
                item.task.due_date.toordinal() if item.task.due_date else _FAR_FUTURE
            ),
            "priority": lambda item: item.task.priority if item.task.priority else 5,
            "status": lambda item: self.config.status_order(item.task.status_category),
            "created": lambda item: (
                -item.task.created_date.toordinal() if item.task.created_date else 0
            ),
            "alphabetical": lambda item: item.task.text.casefold(),
        }

    def rank(
        self,
        items: Sequence[ScoredTask],
        *,
        sort_order: Sequence[SortCriterion] | None = None,
        limit: int | None = None,
    ) -> list[ScoredTask]:
        criteria = [c for c in (sort_order or self.config.sort_order) if c in self._keys]
        ordered = sorted(
            items,
            key=lambda item: tuple(self._keys[criterion](item) for criterion in criteria),
        )
        if limit is not None:
            ordered = ordered[:limit]
        return [replace(item, rank=position) for position, item in enumerate(ordered, start=1)]
